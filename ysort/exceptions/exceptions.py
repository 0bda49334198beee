"""排序组件异常

三类错误对应三种处理方式：
- ConfigurationException: 模型配置写错，属于开发期错误
- InvalidArgumentException: 调用方传入了非法参数，可以直接提示给用户
- StorageFailureException: 数据库报错，事务已回滚，可以重试
"""

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ErrorCode(str, Enum):
    """错误代码

    继承 str，可直接与字符串比较或写入日志。
    """

    BUSINESS_ERROR = "BUSINESS_ERROR"

    # 配置
    SORTABLE_CONFIG_ERROR = "SORTABLE_CONFIG_ERROR"
    DIMENSION_NOT_FOUND = "DIMENSION_NOT_FOUND"

    # 参数
    INVALID_PARAMETER = "INVALID_PARAMETER"
    INVALID_POSITION = "INVALID_POSITION"
    INVALID_ORDER = "INVALID_ORDER"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"

    # 存储
    DATABASE_ERROR = "DATABASE_ERROR"


ErrorCodeType = Union[str, ErrorCode]


class BusinessException(Exception):
    """排序组件异常基类

    属性:
        message: 错误消息
        code: 错误代码，ErrorCode 或自定义字符串
        details: 补充说明列表
        extra: 出错时的上下文（字段名、维度、目标位置等）
    """

    default_message = "操作失败"
    default_code: ErrorCodeType = ErrorCode.BUSINESS_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCodeType] = None,
        details: Optional[List[str]] = None,
        **extra: Any
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or []
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """导出为字典，details 与 extra 为深拷贝"""
        return {
            "message": self.message,
            "code": self.code,
            "details": copy.deepcopy(self.details),
            "extra": copy.deepcopy(self.extra),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, code={self.code!r})"


class ConfigurationException(BusinessException):
    """__sortable__ 配置不合法，或引用了不存在的排序维度"""

    default_message = "排序配置错误"
    default_code = ErrorCode.SORTABLE_CONFIG_ERROR


class InvalidArgumentException(BusinessException):
    """目标位置不是正整数、排序方向非法、ID 不存在等"""

    default_message = "参数错误"
    default_code = ErrorCode.INVALID_PARAMETER


class StorageFailureException(BusinessException):
    """重排时数据库报错

    事务已回滚，原始异常保存在 __cause__ 中。

    使用示例:
        try:
            ...
        except SQLAlchemyError as e:
            raise StorageFailureException("重排失败", operation="move") from e
    """

    default_message = "数据库操作失败"
    default_code = ErrorCode.DATABASE_ERROR


class Err:
    """异常快捷创建

    使用示例:
        raise Err.config("排序维度不存在", code=ErrorCode.DIMENSION_NOT_FOUND, dimension=3)
        raise Err.invalid("排序方向必须是 asc 或 desc")
    """

    @staticmethod
    def config(message: Optional[str] = None, **kwargs) -> ConfigurationException:
        return ConfigurationException(message, **kwargs)

    @staticmethod
    def invalid(message: Optional[str] = None, **kwargs) -> InvalidArgumentException:
        return InvalidArgumentException(message, **kwargs)

    @staticmethod
    def storage(message: Optional[str] = None, **kwargs) -> StorageFailureException:
        return StorageFailureException(message, **kwargs)

    @staticmethod
    def fail(message: Optional[str] = None, **kwargs) -> BusinessException:
        return BusinessException(message, **kwargs)
