"""事务上下文

一个 TransactionContext 对应一次最外层的 transaction() 调用。
内层以 REQUIRED / MANDATORY 方式加入时只增加 depth，不开新事务；
只有最外层退出时才真正提交或回滚。

开始时 session 中已有调用方未提交的修改（未 flush 的对象，或本事务内已 flush 的写入），
则在保存点中执行：退出时只释放或回滚保存点，调用方的修改留给调用方提交或回滚。
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Optional

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from ysort.log import get_logger

from .exceptions import (
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    TransactionNotActiveError,
)
from .propagation import TransactionPropagation

logger = get_logger("ysort.orm.transaction")

_WRITES_KEY = "ysort_uncommitted_writes"


def has_uncommitted_writes(session: Session) -> bool:
    """session 当前事务中是否有尚未提交的修改"""
    if session.new or session.dirty or session.deleted:
        return True
    return bool(session.info.get(_WRITES_KEY))


@event.listens_for(Session, "after_flush")
def _mark_uncommitted_writes(session, flush_context):
    session.info[_WRITES_KEY] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_uncommitted_writes(session, transaction):
    if transaction.parent is None:
        session.info.pop(_WRITES_KEY, None)


def _rollback_savepoint(session: Session, nested: SessionTransaction) -> bool:
    """回滚保存点，返回是否执行了回滚

    保存点内 flush 失败后保存点变为未激活，仍需 rollback() 才能回到外层事务。
    """
    if nested.is_active or session.get_nested_transaction() is nested:
        nested.rollback()
        return True
    return False


class TransactionState(str, Enum):
    """事务状态：INACTIVE → ACTIVE → COMMITTED / ROLLED_BACK，出错时为 FAILED"""

    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class TransactionContext:
    """事务上下文

    Attributes:
        depth: 当前嵌套层级，最外层为 1；批量重排据此判断是否处于外层事务中

    使用示例:
        with TransactionContext(session) as tx:
            banner.move_to_first()
            with tx.savepoint():
                other.move_to_last()
    """

    def __init__(
        self,
        session: Session,
        auto_commit: bool = True,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        suppress_commit: bool = True,
    ):
        self.session = session
        self.auto_commit = auto_commit
        self.propagation = propagation
        self._suppress_commit = suppress_commit
        self._commit_allowed = 0
        self._savepoints = 0
        self._isolation: Optional[SessionTransaction] = None
        self.state = TransactionState.INACTIVE
        self.depth = 0

    @property
    def is_active(self) -> bool:
        return self.state is TransactionState.ACTIVE

    @property
    def nesting_level(self) -> int:
        return self.depth

    # ==================== 生命周期 ====================

    @property
    def isolated(self) -> bool:
        """是否运行在保存点中（调用方已有未提交的修改）"""
        return self._isolation is not None

    def begin(self) -> "TransactionContext":
        # session 默认 autobegin
        if has_uncommitted_writes(self.session):
            self.session.flush()
            self._isolation = self.session.begin_nested()
            logger.debug("session 中有未提交的修改，事务在保存点中执行")
        self.state = TransactionState.ACTIVE
        self.depth = 1
        logger.debug("事务开始")
        return self

    @contextmanager
    def joined(self):
        """内层调用加入本事务，退出时 depth 复原"""
        if not self.is_active:
            raise TransactionNotActiveError("加入", self.state.value)
        self.depth += 1
        logger.debug(f"加入现有事务 (depth={self.depth})")
        try:
            yield self
        finally:
            if self.depth > 1:
                self.depth -= 1

    def commit(self) -> None:
        self._check_open("提交")
        try:
            if self._isolation is not None:
                self._isolation.commit()
            else:
                self.session.commit()
        except Exception:
            self.state = TransactionState.FAILED
            raise
        self.state = TransactionState.COMMITTED
        self.depth = 0
        logger.debug("事务已提交")

    def rollback(self) -> None:
        """回滚；已回滚时再调用不做任何事"""
        if self.state is TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError("回滚")
        if self.state not in (TransactionState.ACTIVE, TransactionState.FAILED):
            return
        try:
            if self._isolation is not None:
                _rollback_savepoint(self.session, self._isolation)
            else:
                self.session.rollback()
        except Exception as e:
            self.state = TransactionState.FAILED
            logger.error(f"事务回滚失败: {e}")
            raise
        self.state = TransactionState.ROLLED_BACK
        self.depth = 0
        logger.debug("事务已回滚")

    def flush(self) -> None:
        if not self.is_active:
            raise TransactionNotActiveError("flush", self.state.value)
        self.session.flush()

    def _check_open(self, action: str) -> None:
        if self.state is TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError(action)
        if self.state is TransactionState.ROLLED_BACK:
            raise TransactionAlreadyRolledBackError(action)
        if self.state is not TransactionState.ACTIVE:
            raise TransactionNotActiveError(action, self.state.value)

    # ==================== 保存点 ====================

    @contextmanager
    def savepoint(self):
        """在本事务内开启保存点，块内出错只回滚到保存点并继续抛出"""
        if not self.is_active:
            raise TransactionNotActiveError("创建保存点", self.state.value)
        self._savepoints += 1
        name = f"sp_{self._savepoints}"
        nested = self.session.begin_nested()
        logger.debug(f"保存点 {name} 已创建")
        try:
            yield nested
        except Exception:
            if _rollback_savepoint(self.session, nested):
                logger.debug(f"保存点 {name} 已回滚")
            raise
        if nested.is_active:
            nested.commit()

    # ==================== 提交抑制 ====================

    @property
    def suppress_commit(self) -> bool:
        return self._suppress_commit and not self._commit_allowed

    @contextmanager
    def allow_commit(self):
        """块内 model.save(commit=True) 真正提交"""
        self._commit_allowed += 1
        try:
            yield
        finally:
            self._commit_allowed -= 1

    def should_suppress_commit(self) -> bool:
        return self.is_active and self.suppress_commit

    # ==================== 上下文管理器 ====================

    def __enter__(self) -> "TransactionContext":
        return self.begin()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.rollback()
        elif self.auto_commit and self.is_active:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        return False

    def __repr__(self) -> str:
        return f"<TransactionContext state={self.state.value} depth={self.depth}>"
