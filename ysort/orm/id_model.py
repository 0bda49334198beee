"""ID模型基类

提供自增整数主键。一般情况下应使用 CoreModel，
只需要主键而不需要时间戳和 CRUD 方法时可以直接继承 IdModel。
"""

from sqlalchemy import Column, Integer
from sqlalchemy.orm import declared_attr, declarative_base

# 声明基类
Base = declarative_base()


class IdModel(Base):
    """ID模型基类

    使用示例:
        class Tag(IdModel):
            __tablename__ = "tag"
            name = Column(String(50))
    """
    __abstract__ = True

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

    @declared_attr
    def id(cls):
        """自增主键；子类设置 __use_auto_pk__ = False 时自行定义主键"""
        if getattr(cls, '__use_auto_pk__', True) is False:
            return None
        return Column(Integer, primary_key=True, autoincrement=True, comment='主键ID')
