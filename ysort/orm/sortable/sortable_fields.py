"""排序字段定义

根据 SortableConfig 生成位置列和唯一约束。
"""

from typing import List, Optional

from sqlalchemy import BigInteger, Column, Integer, SmallInteger, UniqueConstraint

from .sortable_config import SortableConfig, SortableConfigSet

_COLUMN_TYPES = {
    "integer": Integer,
    "smallinteger": SmallInteger,
    "biginteger": BigInteger,
}


def build_position_column(config: SortableConfig) -> Column:
    """位置列：可为空（移动时先清空），列名为 config.name"""
    kwargs = {"nullable": True, "comment": "排序位置"}
    kwargs.update(config.options)
    return Column(config.name, _COLUMN_TYPES[config.type](), **kwargs)


def sortable_index_name(table_name: str, config: SortableConfig) -> str:
    return f"{table_name}_{config.name}_{config.index_name}"


def build_unique_constraint(table_name: str, config: SortableConfig) -> Optional[UniqueConstraint]:
    """唯一约束

    - unique_index 且有 unique_by: (位置, *unique_by)
    - 否则 unique 为真: (位置)
    - 都不满足: 不建约束
    """
    if config.unique_index and config.unique_by:
        return UniqueConstraint(
            config.name, *config.unique_by,
            name=sortable_index_name(table_name, config),
        )
    if config.unique:
        return UniqueConstraint(config.name, name=sortable_index_name(table_name, config))
    return None


def build_unique_constraints(table_name: str, config_set: SortableConfigSet) -> List[UniqueConstraint]:
    constraints = []
    for _, config in config_set:
        constraint = build_unique_constraint(table_name, config)
        if constraint is not None:
            constraints.append(constraint)
    return constraints


def merge_table_args(existing, constraints: list):
    """把约束合并进 __table_args__，保留原有的约束和字典参数"""
    if not constraints:
        return existing
    if not existing:
        return tuple(constraints)
    if isinstance(existing, dict):
        return (*constraints, existing)
    items = list(existing)
    if items and isinstance(items[-1], dict):
        options = items.pop()
        return (*items, *constraints, options)
    return (*items, *constraints)


__all__ = [
    "build_position_column",
    "build_unique_constraint",
    "build_unique_constraints",
    "merge_table_args",
    "sortable_index_name",
]
