"""ORM模块

提供：
- CoreModel / IdModel: 模型基类（自增主键、时间戳、版本号、CRUD）
- 数据库会话管理
- 事务管理（传播行为、嵌套层级、提交抑制）
- 排序扩展 SortableMixin

使用示例:
    from ysort.orm import CoreModel, SortableMixin, init_database

    init_database("sqlite:///./app.db")

    class Banner(CoreModel, SortableMixin):
        title = Column(String(100))

    Banner(title="A").save(commit=True)
    Banner.find_all_sorted().all()
"""

from .id_model import IdModel, Base
from .core_model import CoreModel
from .db_session import (
    db_manager,
    DatabaseManager,
    init_database,
    get_engine,
    db_session_scope,
)
from .transaction import (
    TransactionManager,
    TransactionPropagation,
    TransactionContext,
    transaction_manager,
    get_current_transaction,
)
from .sortable import (
    SortableMixin,
    SortableConfig,
    SortableConfigSet,
    PositionPolicy,
    Reorderer,
    SortableStorage,
    SQLAlchemySortableStorage,
    configure_sortable,
    get_sortable_settings,
)
from .utils import to_snake_case

__all__ = [
    "IdModel",
    "Base",
    "CoreModel",
    "db_manager",
    "DatabaseManager",
    "init_database",
    "get_engine",
    "db_session_scope",
    "TransactionManager",
    "TransactionPropagation",
    "TransactionContext",
    "transaction_manager",
    "get_current_transaction",
    "SortableMixin",
    "SortableConfig",
    "SortableConfigSet",
    "PositionPolicy",
    "Reorderer",
    "SortableStorage",
    "SQLAlchemySortableStorage",
    "configure_sortable",
    "get_sortable_settings",
    "to_snake_case",
]
