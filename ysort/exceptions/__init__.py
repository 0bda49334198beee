"""异常模块

使用示例:
    from ysort.exceptions import InvalidArgumentException, StorageFailureException

    try:
        banner.move_to_position(position)
    except InvalidArgumentException as e:
        return {"message": e.message, "code": e.code}
    except StorageFailureException:
        # 事务已回滚，可以重试
        ...
"""

from .exceptions import (
    Err,
    ErrorCode,
    ErrorCodeType,
    BusinessException,
    ConfigurationException,
    InvalidArgumentException,
    StorageFailureException,
)

__all__ = [
    "Err",
    "ErrorCode",
    "ErrorCodeType",
    "BusinessException",
    "ConfigurationException",
    "InvalidArgumentException",
    "StorageFailureException",
]
