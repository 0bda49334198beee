"""位置规则

纯计算，不访问数据库：校验目标位置、提取排序范围、
计算一次移动需要对哪些记录做 +1 / -1 重排。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ysort.exceptions import ErrorCode, Err
from .sortable_config import SortableConfig

_ORDER_ALIASES = {
    "asc": "asc",
    "ascending": "asc",
    "desc": "desc",
    "descending": "desc",
}


def normalize_order(order: str) -> str:
    """规范化排序方向

    Examples:
        >>> normalize_order("ASC")
        'asc'
        >>> normalize_order("Descending")
        'desc'

    Raises:
        InvalidArgumentException: 不是 asc/ascending/desc/descending
    """
    normalized = _ORDER_ALIASES.get(order.lower()) if isinstance(order, str) else None
    if normalized is None:
        raise Err.invalid(
            '排序方向必须是 "asc" 或 "desc"',
            code=ErrorCode.INVALID_ORDER,
            value=order,
        )
    return normalized


def is_empty_scope_value(value: Any) -> bool:
    """None 和空字符串是同一个空范围

    0、False 等其他假值按普通值精确匹配，不视为空。
    """
    return value is None or value == ""


@dataclass(frozen=True)
class Bound:
    """区间端点"""
    value: int
    inclusive: bool = True

    def admits(self, position: int, lower: bool) -> bool:
        if lower:
            return position >= self.value if self.inclusive else position > self.value
        return position <= self.value if self.inclusive else position < self.value


@dataclass(frozen=True)
class RenumberInstruction:
    """一次重排指令：把区间内的记录统一加上 delta

    descending 为 True 时须按位置从大到小逐行处理，反之从小到大，
    保证每一行写入的目标位置都已空出。
    """
    lower: int
    upper: int
    lower_inclusive: bool
    upper_inclusive: bool
    delta: int
    descending: bool
    scope: Dict[str, Any] = field(default_factory=dict)

    @property
    def lower_bound(self) -> Bound:
        return Bound(self.lower, self.lower_inclusive)

    @property
    def upper_bound(self) -> Bound:
        return Bound(self.upper, self.upper_inclusive)

    @property
    def order(self) -> str:
        return "desc" if self.descending else "asc"

    def contains(self, position: Optional[int]) -> bool:
        if position is None:
            return False
        return (self.lower_bound.admits(position, lower=True)
                and self.upper_bound.admits(position, lower=False))


class PositionPolicy:
    """单个排序维度的位置规则"""

    def __init__(self, config: SortableConfig):
        self.config = config

    def validate_position(self, value: Any) -> int:
        """目标位置必须是 >= 1 的整数（bool 不算）"""
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise Err.invalid(
                f"目标位置必须是正整数，当前值: {value!r}",
                code=ErrorCode.INVALID_POSITION,
                value=value,
            )
        return value

    def scope_values(self, record: Any) -> Dict[str, Any]:
        return {name: getattr(record, name) for name in self.config.unique_by}

    def plan(self, current: int, target: int, scope: Optional[Dict[str, Any]] = None) -> List[RenumberInstruction]:
        """计算从 current 移动到 target 需要的重排

        - 后移（target > current）：(current, target] 区间 -1，从小到大
        - 前移（target < current）：[target, current) 区间 +1，从大到小
        - 不动：无指令
        """
        scope = dict(scope or {})
        if target > current:
            return [RenumberInstruction(
                lower=current, upper=target,
                lower_inclusive=False, upper_inclusive=True,
                delta=-1, descending=False, scope=scope,
            )]
        if target < current:
            return [RenumberInstruction(
                lower=target, upper=current,
                lower_inclusive=True, upper_inclusive=False,
                delta=1, descending=True, scope=scope,
            )]
        return []

    is_empty_scope_value = staticmethod(is_empty_scope_value)
