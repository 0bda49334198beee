"""排序管理 Mixin

为模型提供可排序能力：根据 __sortable__ 自动添加位置列和唯一约束，
新增记录自动追加到末尾，删除记录后自动补齐空位，
并提供移动、批量排序、按位置查询等方法。

使用示例:
    from ysort.orm import CoreModel
    from ysort.orm.sortable import SortableMixin

    class Banner(CoreModel, SortableMixin):
        __tablename__ = "banner"
        __sortable__ = {"unique_by": ["slot_id"]}

        title = Column(String(100))
        slot_id = Column(Integer, ForeignKey("banner_slot.id"))
        slot = relationship("BannerSlot")

    banner = Banner(title="首页", slot_id=1).save(commit=True)  # position 自动分配
    banner.promote()              # 前移一位
    banner.demote()               # 后移一位
    banner.move_to_first()        # 置顶
    banner.move_to_last()         # 置底
    banner.move_to_position(3)    # 移动到第3位

    Banner.sort_table_proxy([3, 1, 2])                  # 按拖拽结果重排
    Banner.find_all_sorted("desc").all()                # 按位置倒序
    Banner.find_all_sorted_with_parent(1).all()         # 某个 slot 下的横幅
"""

from typing import Any, Iterable, Optional, Union

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from ysort.log import get_logger
from .position_policy import PositionPolicy
from .reorderer import Reorderer
from .sortable_config import SortableConfigSet, get_sortable_settings
from .sortable_fields import build_position_column, build_unique_constraints, merge_table_args
from .storage import SQLAlchemySortableStorage

logger = get_logger()

Dimension = Union[int, str]


class SortableMixin:
    """排序管理 Mixin

    可配置属性:
        - __sortable__: 排序配置，见 SortableConfigSet.from_options
            - None / {}: 单维度，列名 position，全表唯一
            - {"unique_by": [...], ...}: 单维度
            - {0: {...}, 1: {...}}: 多维度，未命名的维度列名为 position_<索引>

    所有方法都接受 dimension 参数（维度索引或字段名），默认第 0 维。
    """

    __sortable__ = None

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        if cls.__dict__.get('__abstract__', False):
            return
        # 未参与声明式映射的普通子类（如组合 Mixin）
        if not hasattr(cls, 'metadata'):
            return
        # 单表继承的子类沿用父类配置
        if '__sortable__' not in cls.__dict__ and any(
            '_sortable_config_set' in base.__dict__ for base in cls.__mro__[1:]
        ):
            return

        config_set = SortableConfigSet.from_options(getattr(cls, '__sortable__', None))
        config_set.validate_fields(cls)
        cls._sortable_config_set = config_set

        for _, config in config_set:
            if config.attribute not in cls.__dict__:
                setattr(cls, config.attribute, build_position_column(config))

        table_name = getattr(cls, '__tablename__', None)
        if table_name:
            constraints = build_unique_constraints(table_name, config_set)
            if constraints:
                cls.__table_args__ = merge_table_args(getattr(cls, '__table_args__', None), constraints)

    # ==================== 配置与重排器 ====================

    @classmethod
    def get_sortable_configs(cls) -> SortableConfigSet:
        config_set = getattr(cls, '_sortable_config_set', None)
        if config_set is None:
            config_set = SortableConfigSet.from_options(getattr(cls, '__sortable__', None))
            cls._sortable_config_set = config_set
        return config_set

    @classmethod
    def _resolve_session(cls, session: Optional[Session] = None) -> Session:
        if session is not None:
            return session
        getter = getattr(cls, 'get_session', None)
        if getter is not None:
            return getter()
        query = getattr(cls, 'query', None)
        if query is not None:
            return query.session
        from ..db_session import db_manager
        return db_manager.get_session()

    @classmethod
    def get_reorderer(cls, session: Optional[Session] = None, settings=None) -> Reorderer:
        """构造绑定到 session 的重排器"""
        settings = settings or get_sortable_settings()
        storage = SQLAlchemySortableStorage(cls._resolve_session(session), settings=settings)
        return Reorderer(cls, cls.get_sortable_configs(), storage, settings=settings)

    def _own_reorderer(self) -> Reorderer:
        return self.__class__.get_reorderer(object_session(self))

    # ==================== 实例方法 ====================

    def move_to_position(self, new_position: int, dimension: Dimension = 0) -> bool:
        """移动到指定位置（1 开始），超过末位时移到末位

        Returns:
            是否发生了移动
        """
        return self._own_reorderer().move_to_position(self, new_position, dimension)

    def promote(self, dimension: Dimension = 0) -> bool:
        """前移一位，已在首位返回 False"""
        return self._own_reorderer().promote(self, dimension)

    def demote(self, dimension: Dimension = 0) -> bool:
        """后移一位，已在末位返回 False"""
        return self._own_reorderer().demote(self, dimension)

    def move_to_first(self, dimension: Dimension = 0) -> bool:
        return self._own_reorderer().move_to_first(self, dimension)

    def move_to_last(self, dimension: Dimension = 0) -> bool:
        return self._own_reorderer().move_to_last(self, dimension)

    def get_final_position(self, dimension: Dimension = 0) -> int:
        """当前记录所在排序范围的最大位置"""
        return self._own_reorderer().get_final_position(self, dimension)

    # ==================== 类方法 ====================

    @classmethod
    def sort_table_proxy(cls, ordered_ids: Iterable[Any], dimension: Dimension = 0,
                         session: Optional[Session] = None) -> int:
        """按 ID 顺序重排，返回移动次数"""
        return cls.get_reorderer(session).sort_table_proxy(ordered_ids, dimension)

    @classmethod
    def find_all_sorted(cls, order: str = "asc", dimension: Dimension = 0,
                        session: Optional[Session] = None):
        return cls.get_reorderer(session).find_all_sorted(order, dimension)

    @classmethod
    def find_all_sorted_with_parent(cls, parent_value: Any, parent_column: Optional[str] = None,
                                    order: str = "asc", dimension: Dimension = 0,
                                    session: Optional[Session] = None):
        return cls.get_reorderer(session).find_all_sorted_with_parent(
            parent_value, parent_column, order, dimension
        )


# ==================== 会话事件 ====================

_PENDING_GAPS_KEY = "ysort_pending_gaps"
_EXPIRE_FIELDS_KEY = "ysort_expire_fields"


@event.listens_for(Session, "before_flush")
def _sortable_before_flush(session, flush_context, instances):
    """新记录追加到末尾；记下被删除记录的位置，留给 after_flush 补齐"""
    counters = {}
    for obj in list(session.new):
        if isinstance(obj, SortableMixin):
            type(obj).get_reorderer(session).assign_initial_position(obj, counters)

    if not get_sortable_settings().close_gap_on_delete:
        return

    gaps = []
    for obj in list(session.deleted):
        if not isinstance(obj, SortableMixin):
            continue
        for index, config in type(obj).get_sortable_configs():
            position = getattr(obj, config.attribute)
            if position is None:
                continue
            scope = PositionPolicy(config).scope_values(obj)
            gaps.append((type(obj), index, config.attribute, scope, position))

    if gaps:
        session.info.setdefault(_PENDING_GAPS_KEY, []).extend(gaps)


@event.listens_for(Session, "after_flush")
def _sortable_after_flush(session, flush_context):
    gaps = session.info.pop(_PENDING_GAPS_KEY, None)
    if not gaps:
        return

    # 从大到小补齐，同一范围删除多条时前面的补位不受影响
    gaps.sort(key=lambda gap: gap[4], reverse=True)
    touched = session.info.setdefault(_EXPIRE_FIELDS_KEY, set())
    for model, index, field, scope, position in gaps:
        model.get_reorderer(session).close_gap(scope, position, index)
        touched.add((model, field))


@event.listens_for(Session, "after_flush_postexec")
def _sortable_after_flush_postexec(session, flush_context):
    touched = session.info.pop(_EXPIRE_FIELDS_KEY, None)
    if not touched:
        return
    storage = SQLAlchemySortableStorage(session)
    for model, field in touched:
        storage.expire_field(model, field)


@event.listens_for(Session, "after_soft_rollback")
def _sortable_after_rollback(session, previous_transaction):
    session.info.pop(_PENDING_GAPS_KEY, None)
    session.info.pop(_EXPIRE_FIELDS_KEY, None)
