"""排序存储层

Reorderer 只通过 SortableStorage 访问数据库。
SQLAlchemySortableStorage 是基于 Session 的实现：
- 事务交给 TransactionManager（REQUIRED 传播）
- 方言支持 UPDATE ... ORDER BY 且嵌套层级足够浅时走批量重排，否则逐行重排
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, ContextManager, Dict, List, Optional

from sqlalchemy import String, func, inspect, or_, select, update
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.expression import Update

from ysort.config import SortableSettings
from ysort.log import get_logger
from ysort.orm.transaction import (
    TransactionManager,
    TransactionPropagation,
    get_current_transaction,
    transaction_manager as default_transaction_manager,
)
from .position_policy import Bound, is_empty_scope_value
from .sortable_config import get_sortable_settings

logger = get_logger()

# 会渲染 ORDER BY 的方言
_ORDER_BY_DIALECTS = ("mysql", "mariadb")


class OrderedUpdate(Update):
    """带 ORDER BY 的 UPDATE

    MySQL/MariaDB 逐行检查唯一约束，批量 +1/-1 时必须指定处理顺序；
    其他方言不渲染 ORDER BY。
    """

    inherit_cache = False

    _ordered_by: tuple = ()

    def ordered_by(self, *clauses) -> "OrderedUpdate":
        new = self._generate()
        new._ordered_by = tuple(clauses)
        return new


@compiles(OrderedUpdate)
def _compile_ordered_update(element, compiler, **kw):
    text = compiler.visit_update(element, **kw)
    if element._ordered_by and compiler.dialect.name in _ORDER_BY_DIALECTS:
        text += " ORDER BY " + ", ".join(
            compiler.process(clause, **kw) for clause in element._ordered_by
        )
    return text


class SortableStorage(ABC):
    """排序存储契约"""

    @abstractmethod
    def transaction(self) -> ContextManager:
        """事务上下文：正常退出提交，异常退出回滚并继续抛出"""

    @abstractmethod
    def transaction_nesting_level(self) -> int:
        """当前事务嵌套层级，不在事务中为 0"""

    @abstractmethod
    def driver_identity(self) -> str:
        """数据库方言名"""

    @abstractmethod
    def supports_ordered_bulk_update(self) -> bool:
        """当前能否用一条 UPDATE ... ORDER BY 完成重排"""

    @abstractmethod
    def point_read(self, record: Any, field: str) -> Optional[int]:
        ...

    @abstractmethod
    def point_update(self, record: Any, field: str, value: Optional[int], flush: bool = True) -> None:
        ...

    @abstractmethod
    def get_by_id(self, model, id: Any) -> Optional[Any]:
        ...

    @abstractmethod
    def range_query(self, model, field: str, lower: Optional[Bound], upper: Optional[Bound],
                    scope: Dict[str, Any], order_by: str = "asc") -> List[Any]:
        ...

    @abstractmethod
    def bulk_arithmetic_update(self, model, field: str, delta: int, lower: Optional[Bound],
                               upper: Optional[Bound], scope: Dict[str, Any], order_by: str = "asc") -> int:
        ...

    @abstractmethod
    def max_position(self, model, field: str, scope: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    def sorted_query(self, model, field: str, order: str = "asc",
                     filters: Optional[Dict[str, Any]] = None):
        ...

    @abstractmethod
    def close_gap(self, model, field: str, scope: Dict[str, Any], position: int) -> int:
        """把 position 之后的记录逐行前移一位，返回移动的行数"""


class SQLAlchemySortableStorage(SortableStorage):
    """基于 SQLAlchemy Session 的排序存储

    使用示例:
        storage = SQLAlchemySortableStorage(session)
        with storage.transaction():
            storage.point_update(banner, "position", None)
    """

    def __init__(
        self,
        session: Session,
        settings: Optional[SortableSettings] = None,
        transaction_manager: Optional[TransactionManager] = None,
    ):
        self.session = session
        self.settings = settings or get_sortable_settings()
        self.transaction_manager = transaction_manager or default_transaction_manager

    # ==================== 事务 ====================

    @contextmanager
    def transaction(self):
        with self.transaction_manager.transaction(
            session=self.session,
            propagation=TransactionPropagation.REQUIRED,
        ) as tx:
            yield tx

    def transaction_nesting_level(self) -> int:
        tx = get_current_transaction()
        if tx is None or not tx.is_active:
            return 0
        return tx.nesting_level

    def driver_identity(self) -> str:
        return self.session.get_bind().dialect.name

    def supports_ordered_bulk_update(self) -> bool:
        dialect = self.driver_identity()
        if dialect not in self.settings.ordered_update_dialects:
            return False
        # 外层事务中（如 sort_table_proxy 内的每次移动）退回逐行重排
        return self.transaction_nesting_level() < self.settings.bulk_update_max_nesting_level

    # ==================== 单行读写 ====================

    def point_read(self, record: Any, field: str) -> Optional[int]:
        return getattr(record, field)

    def point_update(self, record: Any, field: str, value: Optional[int], flush: bool = True) -> None:
        setattr(record, field, value)
        if flush:
            # 每行立即写入，避免同一批 UPDATE 按主键顺序执行触发唯一约束
            self.session.flush()

    def get_by_id(self, model, id: Any) -> Optional[Any]:
        return self.session.get(model, id)

    # ==================== 区间操作 ====================

    def range_query(self, model, field, lower=None, upper=None, scope=None, order_by="asc"):
        column = getattr(model, field)
        query = self.session.query(model).filter(
            *self._range_criteria(column, lower, upper),
            *self._scope_criteria(model, scope),
        )
        return query.order_by(column.desc() if order_by == "desc" else column.asc()).all()

    def bulk_arithmetic_update(self, model, field, delta, lower=None, upper=None, scope=None, order_by="asc") -> int:
        self.session.flush()

        mapper = inspect(model)
        column = mapper.get_property(field).columns[0]
        criteria = [
            *self._range_criteria(column, lower, upper),
            *self._scope_criteria(model, scope, columns=True),
        ]
        stmt = (
            OrderedUpdate(mapper.local_table)
            .where(*criteria)
            .values({column: column + delta})
            .ordered_by(column.desc() if order_by == "desc" else column.asc())
        )
        result = self.session.execute(stmt)
        self.expire_field(model, field)

        logger.debug(
            f"批量重排 {model.__name__}.{field}: delta={delta:+d}, "
            f"lower={lower}, upper={upper}, rows={result.rowcount}"
        )
        return result.rowcount

    def max_position(self, model, field: str, scope: Dict[str, Any]) -> int:
        column = getattr(model, field)
        with self.session.no_autoflush:
            value = self.session.query(func.max(column)).filter(
                *self._scope_criteria(model, scope)
            ).scalar()
        return int(value or 0)

    def sorted_query(self, model, field, order="asc", filters=None) -> Query:
        column = getattr(model, field)
        query = self.session.query(model).filter(*self._scope_criteria(model, filters))
        return query.order_by(column.desc() if order == "desc" else column.asc())

    def close_gap(self, model, field: str, scope: Dict[str, Any], position: int) -> int:
        # 可能在 after_flush 中调用，不能再触发 flush，直接走连接
        mapper = inspect(model)
        column = mapper.get_property(field).columns[0]
        pk_columns = list(mapper.primary_key)
        connection = self.session.connection()

        rows = connection.execute(
            select(*pk_columns, column)
            .where(column > position, *self._scope_criteria(model, scope, columns=True))
            .order_by(column.asc())
        ).all()

        for row in rows:
            *pk_values, current = row
            connection.execute(
                update(mapper.local_table)
                .where(*[pk == value for pk, value in zip(pk_columns, pk_values)])
                .values({column: current - 1})
            )
        return len(rows)

    def expire_field(self, model, field: str) -> None:
        """让会话中已加载的实例在下次访问时重新读取该字段"""
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, model):
                self.session.expire(obj, [field])

    # ==================== 条件构造 ====================

    @staticmethod
    def _range_criteria(column, lower: Optional[Bound], upper: Optional[Bound]) -> list:
        criteria = []
        if lower is not None:
            criteria.append(column >= lower.value if lower.inclusive else column > lower.value)
        if upper is not None:
            criteria.append(column <= upper.value if upper.inclusive else column < upper.value)
        return criteria

    @staticmethod
    def _scope_criteria(model, scope: Optional[Dict[str, Any]], columns: bool = False) -> list:
        """范围条件

        None 与空字符串视为同一个空范围：字符串列匹配 NULL 或 ''，其他列匹配 NULL。
        """
        criteria = []
        if not scope:
            return criteria
        mapper = inspect(model)
        for name, value in scope.items():
            table_column = mapper.get_property(name).columns[0]
            column = table_column if columns else getattr(model, name)
            if not is_empty_scope_value(value):
                criteria.append(column == value)
            elif isinstance(table_column.type, String):
                criteria.append(or_(column.is_(None), column == ""))
            else:
                criteria.append(column.is_(None))
        return criteria
