"""事务管理器

当前事务保存在 ContextVar 中，同一线程/协程内的嵌套调用共享一个 TransactionContext。
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from ysort.log import get_logger

from .context import TransactionContext
from .exceptions import PropagationError
from .propagation import TransactionPropagation

logger = get_logger("ysort.orm.transaction")

_current_transaction: ContextVar[Optional[TransactionContext]] = ContextVar(
    "ysort_current_transaction", default=None
)

# 需要外层事务才能执行的传播方式
_NEEDS_OUTER = (TransactionPropagation.MANDATORY, TransactionPropagation.NESTED)
# 有外层事务时直接加入的传播方式
_JOINS_OUTER = (TransactionPropagation.REQUIRED, TransactionPropagation.MANDATORY)


def get_current_transaction() -> Optional[TransactionContext]:
    return _current_transaction.get()


class TransactionManager:
    """事务管理器（进程内单例）

    使用示例:
        from ysort.orm import transaction_manager as tm

        with tm.transaction(session):
            first.move_to_last()
            second.move_to_first()
        # 两次移动一起提交，任一失败则一起回滚
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.suppress_commit_by_default = True
        return cls._instance

    def get_session(self) -> Session:
        from ..db_session import db_manager
        return db_manager.get_session()

    @property
    def current_transaction(self) -> Optional[TransactionContext]:
        return _current_transaction.get()

    @contextmanager
    def transaction(
        self,
        session: Optional[Session] = None,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        auto_commit: bool = True,
        suppress_commit: Optional[bool] = None,
    ) -> Iterator[TransactionContext]:
        """开启或加入事务

        Args:
            session: 不传时从 db_manager 获取
            propagation: 传播方式，见 TransactionPropagation
            auto_commit: 最外层正常退出时是否提交
            suppress_commit: 事务内 model.save(commit=True) 是否只 flush，默认开启

        内层抛出的异常会继续向外抛出，由最外层回滚。
        """
        current = self.current_transaction
        has_outer = current is not None and current.is_active

        if not has_outer and propagation in _NEEDS_OUTER:
            raise PropagationError(propagation.name, "需要在已有事务中执行")

        if has_outer:
            if propagation in _JOINS_OUTER:
                with current.joined():
                    yield current
            else:
                logger.debug(f"{propagation.name}: 在外层事务中使用保存点")
                with current.savepoint():
                    yield current
            return

        ctx = TransactionContext(
            session if session is not None else self.get_session(),
            auto_commit=auto_commit,
            propagation=propagation,
            suppress_commit=self.suppress_commit_by_default if suppress_commit is None else suppress_commit,
        )
        token = _current_transaction.set(ctx)
        try:
            with ctx:
                yield ctx
        finally:
            _current_transaction.reset(token)

    def transactional(
        self,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        suppress_commit: Optional[bool] = None,
    ):
        """把整个函数放进一个事务，支持 async 函数

        使用示例:
            @tm.transactional()
            def pin_to_top(banner_ids):
                for banner_id in reversed(banner_ids):
                    Banner.get(banner_id).move_to_first()
        """
        def decorator(func):
            if asyncio.iscoroutinefunction(func):
                @wraps(func)
                async def async_wrapper(*args, **kwargs):
                    with self.transaction(propagation=propagation, suppress_commit=suppress_commit):
                        return await func(*args, **kwargs)
                return async_wrapper

            @wraps(func)
            def wrapper(*args, **kwargs):
                with self.transaction(propagation=propagation, suppress_commit=suppress_commit):
                    return func(*args, **kwargs)
            return wrapper

        return decorator

    def is_in_transaction(self) -> bool:
        tx = self.current_transaction
        return tx is not None and tx.is_active

    def nesting_level(self) -> int:
        """当前嵌套层级，不在事务中为 0"""
        tx = self.current_transaction
        return tx.depth if tx is not None and tx.is_active else 0


transaction_manager = TransactionManager()
