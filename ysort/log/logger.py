"""日志工具

组件内部的日志器都挂在 "ysort" 之下：
- ysort.orm.sortable.*: 位置分配、移动、补位（移动明细为 DEBUG）
- ysort.orm.transaction: 事务开始、提交、回滚、保存点
- ysort.orm.session: 数据库初始化
"""

import inspect
import logging
import time
from pathlib import Path
from typing import List, Optional

DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s"

_PACKAGE = "ysort"


class MicrosecondFormatter(logging.Formatter):
    """时间戳精确到微秒，便于对照同一次重排中的多条 SQL 日志"""

    default_datefmt = "%Y-%m-%d %H:%M:%S"

    def formatTime(self, record, datefmt=None):
        stamp = time.strftime(datefmt or self.default_datefmt, self.converter(record.created))
        micros = int((record.created % 1) * 1_000_000)
        return f"{stamp}.{micros:06d}"


def create_formatter(
    log_format: Optional[str] = None,
    datefmt: Optional[str] = None,
    use_microseconds: bool = True
) -> logging.Formatter:
    formatter_class = MicrosecondFormatter if use_microseconds else logging.Formatter
    return formatter_class(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt=datefmt)


def _level(value) -> int:
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else logging.INFO


def _handlers(log_file: Optional[str], console: bool, encoding: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding=encoding))
    return handlers


def setup_logger(
    name: Optional[str] = _PACKAGE,
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    console: bool = True,
    use_microseconds: bool = True,
    propagate: bool = True,
    encoding: str = "utf-8",
) -> logging.Logger:
    """配置一个日志器并返回，重复调用时替换原有处理器

    使用示例:
        from ysort.log import setup_logger

        # 查看每次移动的区间与范围
        setup_logger("ysort.orm.sortable", level="DEBUG")

        setup_logger(level="INFO", log_file="logs/ysort.log")
    """
    target = logging.getLogger(name)
    target.setLevel(_level(level))
    target.propagate = propagate

    for handler in list(target.handlers):
        target.removeHandler(handler)

    formatter = create_formatter(log_format, use_microseconds=use_microseconds)
    for handler in _handlers(log_file, console, encoding):
        handler.setFormatter(formatter)
        target.addHandler(handler)
    return target


def setup_root_logger(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    use_microseconds: bool = True,
    config=None,
    config_path: Optional[str] = None,
    config_base_dir: Optional[str] = None,
) -> logging.Logger:
    """按 LoggingSettings 配置根日志器

    config_path 指向 YAML 文件时读取其中的 logging 段；
    提供 config 或 config_path 后忽略 level、log_file、console 参数。

    使用示例:
        setup_root_logger(level="INFO", log_file="logs/app.log")
        setup_root_logger(config=settings.logging)
        setup_root_logger(config_path="config/settings.yaml")
    """
    encoding = "utf-8"
    if config_path is not None:
        from ysort.config import LoggingSettings, load_yaml_config
        config = load_yaml_config(config_path, LoggingSettings, section="logging", base_dir=config_base_dir)
    if config is not None:
        level = config.level
        log_file = config.file_path or None
        console = config.enable_console
        encoding = config.file_encoding

    return setup_logger(
        name=None,
        level=level,
        log_file=log_file,
        console=console,
        use_microseconds=use_microseconds,
        propagate=False,
        encoding=encoding,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """获取日志器

    不传 name 时取调用方模块的 __name__；
    不含点号的简写自动加 "ysort." 前缀，例如 "orm" -> "ysort.orm"。
    """
    if name is None:
        caller = inspect.currentframe().f_back
        name = caller.f_globals.get("__name__", _PACKAGE) if caller else _PACKAGE
    elif "." not in name and name != _PACKAGE:
        name = f"{_PACKAGE}.{name}"
    return logging.getLogger(name)


logger = logging.getLogger(_PACKAGE)
