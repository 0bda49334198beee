"""事务管理模块

- 传播方式：REQUIRED, REQUIRES_NEW, MANDATORY, NESTED
- 嵌套层级：内层加入外层事务时 +1，排序组件据此决定是否走批量重排
- 提交抑制：事务中 model.save(commit=True) 只 flush
- 保存点隔离：会话已有未提交写入时，事务只提交或回滚自己的保存点

使用示例:
    from ysort.orm import transaction_manager as tm

    with tm.transaction(session) as tx:
        banner.move_to_position(2)
        with tx.savepoint():
            risky_operation()
"""

from .exceptions import (
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    TransactionAlreadyRolledBackError,
    PropagationError,
)
from .propagation import TransactionPropagation
from .context import TransactionContext, TransactionState, has_uncommitted_writes
from .manager import (
    TransactionManager,
    transaction_manager,
    get_current_transaction,
)

__all__ = [
    "TransactionState",
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "TransactionAlreadyRolledBackError",
    "PropagationError",
    "TransactionPropagation",
    "TransactionContext",
    "has_uncommitted_writes",
    "TransactionManager",
    "transaction_manager",
    "get_current_transaction",
]
