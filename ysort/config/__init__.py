"""配置模块

提供配置类与 YAML 加载工具。

使用示例:
    from ysort.config import AppSettings, load_yaml_config

    settings = load_yaml_config("config/settings.yaml", AppSettings)
    print(settings.sortable.ordered_update_dialects)
"""

from .settings import (
    AppSettings,
    DatabaseSettings,
    LoggingSettings,
    SortableSettings,
)
from .loader import ConfigLoader, load_yaml_config

__all__ = [
    "AppSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "SortableSettings",
    "ConfigLoader",
    "load_yaml_config",
]
