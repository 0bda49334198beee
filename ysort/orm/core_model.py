"""带时间戳和版本号的抽象基类"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, Query, Session, declared_attr, mapped_column

from ysort.log import get_logger
from .id_model import IdModel
from .utils import to_snake_case

logger = get_logger()


class CoreModel(IdModel):
    """业务模型基类

    - 表名由类名转下划线得到（BannerSlot -> banner_slot）
    - created_at / updated_at 时间戳，ver 乐观锁版本号
    - save / delete / get；处于事务中时 commit=True 只 flush，由事务统一提交

    使用示例:
        class Banner(CoreModel, SortableMixin):
            __sortable__ = {"unique_by": ["slot_id"]}

            title = Column(String(100))
            slot_id = Column(Integer, ForeignKey("banner_slot.id"))

        Banner(title="首页", slot_id=1).save(commit=True)
    """
    __abstract__ = True
    __allow_unmapped__ = True

    # init_database() 注入 scoped_session.query_property()
    if TYPE_CHECKING:
        query: ClassVar[Query]

    _session: Session = None

    @declared_attr.directive
    def __tablename__(cls) -> str:
        if '_' in cls.__name__:
            raise ValueError(f'类名 {cls.__name__} 含下划线，无法推导表名')
        return to_snake_case(cls.__name__)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), server_default=func.now(), comment="创建时间"
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True, onupdate=func.now(), comment="更新时间"
    )
    ver: Mapped[int] = mapped_column(Integer, default=1, nullable=False, comment="版本号")

    __mapper_args__ = {"version_id_col": ver}

    # 由数据库或 ORM 维护，构造参数中出现时丢弃
    _managed_fields: ClassVar[frozenset] = frozenset({'id', 'created_at', 'updated_at', 'ver'})

    def __init__(self, **kwargs):
        super().__init__(**{k: v for k, v in kwargs.items() if k not in self._managed_fields})

    def __repr__(self):
        return f"<{type(self).__name__} id={self.id}>"

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = type(self).get_session()
        return self._session

    @classmethod
    def get_session(cls) -> Session:
        """query 属性可用时用它的 session，否则取全局 scoped_session"""
        query = getattr(cls, 'query', None)
        if query is not None:
            return query.session
        from .db_session import db_manager
        return db_manager.get_session()

    # ==================== 持久化 ====================

    def save(self, commit: bool = False) -> "CoreModel":
        """加入 session，commit=True 时提交（事务中降级为 flush），返回自身"""
        self.session.add(self)
        self._finish(commit)
        return self

    def delete(self, commit: bool = False) -> None:
        self.session.delete(self)
        self._finish(commit)

    @classmethod
    def get(cls, id: int):
        """按主键取记录，不存在返回 None"""
        return cls.get_session().get(cls, id)

    def _finish(self, commit: bool) -> None:
        if not commit:
            return
        if self._in_suppressing_transaction():
            self.session.flush()
        else:
            self.session.commit()

    @staticmethod
    def _in_suppressing_transaction() -> bool:
        from .transaction import get_current_transaction

        tx = get_current_transaction()
        if tx is None or not tx.should_suppress_commit():
            return False
        logger.debug("处于事务中，commit 改为 flush")
        return True
