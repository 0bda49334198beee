"""日志模块

提供日志器获取与配置功能。

使用示例:
    from ysort.log import get_logger, setup_root_logger

    setup_root_logger(level="DEBUG")
    logger = get_logger()
    logger.info("应用启动")
"""

from .logger import (
    DEFAULT_LOG_FORMAT,
    MicrosecondFormatter,
    create_formatter,
    get_logger,
    logger,
    setup_logger,
    setup_root_logger,
)

__all__ = [
    "get_logger",
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "logger",
]
