"""排序模块

为模型维护一个或多个从 1 开始连续编号的位置字段：
- SortableMixin: 模型 Mixin，自动建列、插入追加、删除补位、移动与批量排序
- SortableConfig / SortableConfigSet: 每个维度的列名、类型、唯一范围
- PositionPolicy: 纯计算，给出一次移动需要的区间重排指令
- Reorderer: 在一个事务中执行重排
- SortableStorage: 存储抽象，SQLAlchemySortableStorage 为默认实现

使用示例:
    from ysort.orm import CoreModel
    from ysort.orm.sortable import SortableMixin, configure_sortable

    configure_sortable(close_gap_on_delete=True)

    class MenuItem(CoreModel, SortableMixin):
        __sortable__ = {
            0: {"name": "position", "unique_by": ["menu_id"]},
            1: {"name": "mobile_position", "unique_by": ["menu_id"]},
        }
        menu_id = Column(Integer)

    item.move_to_position(2)                       # 第 0 维
    item.move_to_first(dimension="mobile_position")
"""

from .sortable_config import (
    KNOWN_OPTIONS,
    SortableConfig,
    SortableConfigSet,
    configure_sortable,
    get_sortable_settings,
    reset_sortable_settings,
)
from .position_policy import (
    Bound,
    PositionPolicy,
    RenumberInstruction,
    is_empty_scope_value,
    normalize_order,
)
from .storage import OrderedUpdate, SortableStorage, SQLAlchemySortableStorage
from .reorderer import Reorderer
from .sortable_fields import (
    build_position_column,
    build_unique_constraint,
    build_unique_constraints,
    merge_table_args,
    sortable_index_name,
)
from .sortable_mixin import SortableMixin

__all__ = [
    # 配置
    "KNOWN_OPTIONS",
    "SortableConfig",
    "SortableConfigSet",
    "configure_sortable",
    "get_sortable_settings",
    "reset_sortable_settings",
    # 位置计算
    "Bound",
    "PositionPolicy",
    "RenumberInstruction",
    "is_empty_scope_value",
    "normalize_order",
    # 存储
    "OrderedUpdate",
    "SortableStorage",
    "SQLAlchemySortableStorage",
    # 重排
    "Reorderer",
    # 字段
    "build_position_column",
    "build_unique_constraint",
    "build_unique_constraints",
    "merge_table_args",
    "sortable_index_name",
    # Mixin
    "SortableMixin",
]
