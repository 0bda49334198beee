"""测试辅助工具"""

from .sortable_helpers import positions, position_map

__all__ = ["positions", "position_map"]
