"""重排器

把 PositionPolicy 的计算结果落到存储上：一次移动在一个事务中完成，
移动前清空自身位置，再逐段重排其他记录，最后写入目标位置。
"""

from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import MANYTOONE

from ysort.config import SortableSettings
from ysort.exceptions import ErrorCode, Err
from ysort.log import get_logger
from .position_policy import PositionPolicy, RenumberInstruction, is_empty_scope_value, normalize_order
from .sortable_config import SortableConfig, SortableConfigSet, get_sortable_settings
from .storage import SortableStorage

logger = get_logger()

Dimension = Union[int, str]


class Reorderer:
    """排序操作入口

    Args:
        model: 模型类
        config_set: 模型的排序维度
        storage: 存储实现
        settings: 排序配置，默认取进程级配置

    使用示例:
        storage = SQLAlchemySortableStorage(session)
        reorderer = Reorderer(Banner, Banner.get_sortable_configs(), storage)

        reorderer.move_to_position(banner, 3)
        reorderer.sort_table_proxy([5, 1, 2, 3, 4])
    """

    def __init__(
        self,
        model,
        config_set: SortableConfigSet,
        storage: SortableStorage,
        settings: Optional[SortableSettings] = None,
    ):
        self.model = model
        self.config_set = config_set
        self.storage = storage
        self.settings = settings or get_sortable_settings()
        self._policies: Dict[str, PositionPolicy] = {}

    def _policy(self, config: SortableConfig) -> PositionPolicy:
        policy = self._policies.get(config.name)
        if policy is None:
            policy = self._policies[config.name] = PositionPolicy(config)
        return policy

    # ==================== 移动 ====================

    def move_to_position(self, record: Any, new_position: int, dimension: Dimension = 0) -> bool:
        """把记录移动到指定位置

        目标超过末位时按末位处理。

        Returns:
            是否发生了移动。已在目标位置时直接返回 False；
            截断到末位后位置不变时也返回 False，不写入

        Raises:
            ConfigurationException: 维度不存在
            InvalidArgumentException: 目标位置非法，或记录尚未分配位置
            StorageFailureException: 数据库错误，事务已回滚
        """
        config = self.config_set.resolve(dimension)
        policy = self._policy(config)
        policy.validate_position(new_position)

        field = config.attribute
        current = self.storage.point_read(record, field)
        if current is None:
            raise Err.invalid(
                f"{self.model.__name__} 记录尚未分配 {field}，无法移动",
                code=ErrorCode.INVALID_POSITION,
                field=field,
            )

        if new_position == current:
            return False

        scope = policy.scope_values(record)
        target = current
        try:
            with self.storage.transaction():
                # 末位在事务内读取
                final = self.storage.max_position(self.model, field, scope)
                target = min(new_position, max(final, current))
                if target == current:
                    return False
                self.storage.point_update(record, field, None)
                for instruction in policy.plan(current, target, scope):
                    self._apply(field, instruction)
                self.storage.point_update(record, field, target)
        except SQLAlchemyError as e:
            logger.warning(f"移动 {self.model.__name__}.{field} {current} -> {target} 失败，已回滚: {e}")
            raise Err.storage(
                "重排位置失败，已回滚",
                operation="move_to_position",
                field=field,
            ) from e

        if self.settings.log_moves:
            logger.debug(f"{self.model.__name__}.{field}: {current} -> {target} (scope={scope})")
        return True

    def _apply(self, field: str, instruction: RenumberInstruction) -> None:
        if self.storage.supports_ordered_bulk_update():
            self.storage.bulk_arithmetic_update(
                self.model, field, instruction.delta,
                instruction.lower_bound, instruction.upper_bound,
                instruction.scope, instruction.order,
            )
            return

        rows = self.storage.range_query(
            self.model, field,
            instruction.lower_bound, instruction.upper_bound,
            instruction.scope, instruction.order,
        )
        logger.debug(f"逐行重排 {self.model.__name__}.{field}: delta={instruction.delta:+d}, rows={len(rows)}")
        for row in rows:
            position = self.storage.point_read(row, field)
            self.storage.point_update(row, field, position + instruction.delta)

    def promote(self, record: Any, dimension: Dimension = 0) -> bool:
        """前移一位，已在首位时不动"""
        config = self.config_set.resolve(dimension)
        position = self._current_position(record, config)
        if position <= 1:
            return False
        return self.move_to_position(record, position - 1, dimension)

    def demote(self, record: Any, dimension: Dimension = 0) -> bool:
        """后移一位，已在末位时不动"""
        config = self.config_set.resolve(dimension)
        position = self._current_position(record, config)
        if position >= self.get_final_position(record, dimension):
            return False
        return self.move_to_position(record, position + 1, dimension)

    def move_to_first(self, record: Any, dimension: Dimension = 0) -> bool:
        return self.move_to_position(record, 1, dimension)

    def move_to_last(self, record: Any, dimension: Dimension = 0) -> bool:
        final = self.get_final_position(record, dimension)
        return self.move_to_position(record, max(final, 1), dimension)

    def _current_position(self, record: Any, config: SortableConfig) -> int:
        position = self.storage.point_read(record, config.attribute)
        if position is None:
            raise Err.invalid(
                f"{self.model.__name__} 记录尚未分配 {config.attribute}",
                code=ErrorCode.INVALID_POSITION,
            )
        return position

    # ==================== 批量排序 ====================

    def sort_table_proxy(self, ordered_ids: Iterable[Any], dimension: Dimension = 0) -> int:
        """按给定 ID 顺序重排（如前端拖拽结果），第 i 个 ID 放到位置 i+1

        全部在一个事务中完成；每次移动以 REQUIRED 方式加入该事务。

        Returns:
            实际移动的记录数

        Raises:
            InvalidArgumentException: ID 不存在、重复或不在同一排序范围
        """
        config = self.config_set.resolve(dimension)
        policy = self._policy(config)
        ids = list(ordered_ids)
        if not ids:
            return 0
        if len(set(ids)) != len(ids):
            raise Err.invalid("排序 ID 列表中存在重复项", code=ErrorCode.INVALID_PARAMETER)

        moves = 0
        try:
            with self.storage.transaction():
                records = []
                for id in ids:
                    record = self.storage.get_by_id(self.model, id)
                    if record is None:
                        raise Err.invalid(
                            f"{self.model.__name__} 记录不存在: {id!r}",
                            code=ErrorCode.RECORD_NOT_FOUND,
                            id=id,
                        )
                    records.append(record)

                scopes = {self._scope_key(policy.scope_values(r)) for r in records}
                if len(scopes) > 1:
                    raise Err.invalid("排序 ID 不属于同一个排序范围", code=ErrorCode.INVALID_PARAMETER)

                for index, record in enumerate(records):
                    if self.storage.point_read(record, config.attribute) != index + 1:
                        if self.move_to_position(record, index + 1, dimension):
                            moves += 1
        except SQLAlchemyError as e:
            logger.warning(f"批量排序 {self.model.__name__} 失败，已回滚: {e}")
            raise Err.storage("批量排序失败，已回滚", operation="sort_table_proxy") from e

        logger.info(f"{self.model.__name__}.{config.attribute} 按 {len(ids)} 个 ID 重排，移动 {moves} 次")
        return moves

    @staticmethod
    def _scope_key(scope: Dict[str, Any]) -> tuple:
        return tuple((k, None if is_empty_scope_value(v) else v) for k, v in scope.items())

    # ==================== 查询 ====================

    def find_all_sorted(self, order: str = "asc", dimension: Dimension = 0):
        """按位置排序的全部记录（惰性 Query）"""
        order = normalize_order(order)
        config = self.config_set.resolve(dimension)
        return self.storage.sorted_query(self.model, config.attribute, order)

    def find_all_sorted_with_parent(
        self,
        parent_value: Any,
        parent_column: Optional[str] = None,
        order: str = "asc",
        dimension: Dimension = 0,
    ):
        """某个父记录下按位置排序的记录（惰性 Query）

        未指定 parent_column 时使用模型唯一的多对一关系的外键列。

        Raises:
            ConfigurationException: 无法确定父外键列
        """
        order = normalize_order(order)
        config = self.config_set.resolve(dimension)
        if parent_column is None:
            parent_column = self._detect_parent_column()
        elif not hasattr(self.model, parent_column):
            raise Err.config(
                f"{self.model.__name__} 没有字段 {parent_column}",
                parent_column=parent_column,
            )
        return self.storage.sorted_query(
            self.model, config.attribute, order, filters={parent_column: parent_value}
        )

    def _detect_parent_column(self) -> str:
        mapper = inspect(self.model)
        candidates: List[str] = []
        for relationship in mapper.relationships:
            if relationship.direction is not MANYTOONE:
                continue
            for column in relationship.local_columns:
                key = mapper.get_property_by_column(column).key
                if key not in candidates:
                    candidates.append(key)

        if not candidates:
            raise Err.config(f"未指定父字段，且 {self.model.__name__} 没有多对一关系")
        if len(candidates) > 1:
            raise Err.config(
                f"未指定父字段，且 {self.model.__name__} 有多个多对一关系: {', '.join(candidates)}",
                candidates=candidates,
            )
        return candidates[0]

    def get_final_position(self, record_or_scope: Any, dimension: Dimension = 0) -> int:
        """排序范围内的最大位置，范围为空时为 0

        Args:
            record_or_scope: 记录，或 {范围字段: 值} 字典
        """
        config = self.config_set.resolve(dimension)
        if isinstance(record_or_scope, Mapping):
            scope = dict(record_or_scope)
        else:
            scope = self._policy(config).scope_values(record_or_scope)
        return self.storage.max_position(self.model, config.attribute, scope)

    # ==================== 插入 / 删除 ====================

    def assign_initial_position(self, record: Any, pending: Optional[Dict[tuple, int]] = None) -> bool:
        """为未分配位置的维度追加到末尾

        Args:
            pending: 同一次 flush 内共享的计数器，保证同一范围的多条新记录依次编号

        Returns:
            是否分配了至少一个维度
        """
        pending = {} if pending is None else pending
        assigned = False
        for index, config in self.config_set:
            field = config.attribute
            if self.storage.point_read(record, field) is not None:
                continue
            scope = self._policy(config).scope_values(record)
            key = (self.model.__table__.name, index, self._scope_key(scope))
            if key not in pending:
                pending[key] = self.storage.max_position(self.model, field, scope)
            pending[key] += 1
            self.storage.point_update(record, field, pending[key], flush=False)
            assigned = True
        return assigned

    def close_gap(self, scope: Dict[str, Any], position: int, dimension: Dimension = 0) -> int:
        """删除 position 处的记录后，把其后的记录依次前移一位

        Returns:
            前移的记录数
        """
        config = self.config_set.resolve(dimension)
        moved = self.storage.close_gap(self.model, config.attribute, scope, position)
        if moved and self.settings.log_moves:
            logger.debug(f"{self.model.__name__}.{config.attribute}: 补齐位置 {position}，前移 {moved} 条")
        return moved
