"""
YSort - 有序列表位置维护组件

为 SQLAlchemy 模型维护连续的排序位置，提供移动、批量排序、
多维度排序与分组排序，以及配套的配置、日志和异常处理。
"""

from .version import __version__, __description__

from .exceptions import (
    Err,
    ErrorCode,
    BusinessException,
    ConfigurationException,
    InvalidArgumentException,
    StorageFailureException,
)
from .log import get_logger, setup_logger, setup_root_logger
from .config import AppSettings, SortableSettings, load_yaml_config
from .orm import (
    CoreModel,
    SortableMixin,
    Reorderer,
    init_database,
    transaction_manager,
    configure_sortable,
)

__all__ = [
    "__version__",
    "__description__",
    "Err",
    "ErrorCode",
    "BusinessException",
    "ConfigurationException",
    "InvalidArgumentException",
    "StorageFailureException",
    "get_logger",
    "setup_logger",
    "setup_root_logger",
    "AppSettings",
    "SortableSettings",
    "load_yaml_config",
    "CoreModel",
    "SortableMixin",
    "Reorderer",
    "init_database",
    "transaction_manager",
    "configure_sortable",
]
