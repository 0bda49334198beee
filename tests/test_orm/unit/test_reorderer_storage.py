"""重排器与存储层测试

SQLite 不支持 UPDATE ... ORDER BY，这里用伪装成 MySQL 的存储
验证批量重排路径，用非唯一的位置列避免逐行唯一约束检查。

测试内容：
1. 批量 / 逐行路径的选择（方言、事务嵌套层级）
2. OrderedUpdate 只在 MySQL/MariaDB 渲染 ORDER BY
3. 数据库错误回滚并包装为 StorageFailureException
4. 补位与初始位置分配
"""

import pytest
from sqlalchemy import Column, String, select
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker

from ysort.config import SortableSettings
from ysort.exceptions import ErrorCode, StorageFailureException
from ysort.orm import Base, CoreModel
from ysort.orm.sortable import (
    OrderedUpdate,
    Reorderer,
    SortableMixin,
    SQLAlchemySortableStorage,
    configure_sortable,
)
from ysort.orm.transaction import get_current_transaction, transaction_manager

from tests.helpers import position_map, positions


# ==================== 测试模型定义 ====================

class SortBulkCard(CoreModel, SortableMixin):
    """位置列不建唯一约束"""
    __tablename__ = "test_sort_bulk_card"
    __sortable__ = {"unique": False}

    title = Column(String(50))


class SortBulkLane(CoreModel, SortableMixin):
    """按 lane 分组，不建唯一约束"""
    __tablename__ = "test_sort_bulk_lane"
    __sortable__ = {"unique_by": ["lane"], "unique_index": False, "unique": False}

    title = Column(String(50))
    lane = Column(String(20))


# ==================== 测试存储 ====================

class RecordingStorage(SQLAlchemySortableStorage):
    """伪装成 MySQL，记录批量重排调用"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.bulk_calls = []

    def driver_identity(self) -> str:
        return "mysql"

    def bulk_arithmetic_update(self, model, field, delta, lower=None, upper=None, scope=None, order_by="asc"):
        self.bulk_calls.append((delta, order_by))
        return super().bulk_arithmetic_update(model, field, delta, lower, upper, scope, order_by)


class FailingStorage(SQLAlchemySortableStorage):
    """逐行重排时模拟数据库断开"""

    def range_query(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("lost connection"))


class NestingRecordingStorage(SQLAlchemySortableStorage):
    """记录读取末位时所处的事务层级"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_position_levels = []

    def max_position(self, model, field, scope):
        self.max_position_levels.append(self.transaction_nesting_level())
        return super().max_position(model, field, scope)


class ReordererTestBase:

    @pytest.fixture(autouse=True)
    def setup_db(self, memory_engine):
        """自动初始化数据库会话"""
        Base.metadata.create_all(bind=memory_engine)
        SessionLocal = sessionmaker(autoflush=False, bind=memory_engine)
        self.session_scope = scoped_session(SessionLocal)
        CoreModel.query = self.session_scope.query_property()
        self.session = self.session_scope()

        yield
        self.session_scope.remove()

    def create(self, model, *titles, **values):
        records = [model(title=title, **values) for title in titles]
        self.session.add_all(records)
        self.session.commit()
        return records

    def reorderer(self, model, storage_class=RecordingStorage, settings=None):
        storage = storage_class(self.session, settings=settings)
        return Reorderer(model, model.get_sortable_configs(), storage, settings=settings)


# ==================== 路径选择 ====================

class TestBulkPath(ReordererTestBase):
    """批量重排路径测试"""

    def test_bulk_move_down(self):
        records = self.create(SortBulkCard, "a", "b", "c", "d", "e")
        reorderer = self.reorderer(SortBulkCard)

        assert reorderer.move_to_position(records[1], 4) is True

        assert reorderer.storage.bulk_calls == [(-1, "asc")]
        assert position_map(self.session, SortBulkCard) == {"a": 1, "c": 2, "d": 3, "b": 4, "e": 5}

    def test_bulk_move_up(self):
        records = self.create(SortBulkCard, "a", "b", "c", "d")
        reorderer = self.reorderer(SortBulkCard)

        reorderer.move_to_position(records[3], 2)

        assert reorderer.storage.bulk_calls == [(1, "desc")]
        assert positions(self.session, SortBulkCard) == ["a", "d", "b", "c"]

    def test_bulk_refreshes_loaded_instances(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard)

        reorderer.move_to_position(records[2], 1)

        assert [r.position for r in records] == [2, 3, 1]

    def test_bulk_respects_scope(self):
        lane_x = self.create(SortBulkLane, "a", "b", "c", lane="x")
        self.create(SortBulkLane, "d", "e", lane="y")
        reorderer = self.reorderer(SortBulkLane)

        reorderer.move_to_first(lane_x[2])

        assert reorderer.storage.bulk_calls == [(1, "desc")]
        assert positions(self.session, SortBulkLane, lane="x") == ["c", "a", "b"]
        assert positions(self.session, SortBulkLane, lane="y") == ["d", "e"]

    def test_nested_transaction_uses_row_path(self):
        """外层已有事务（嵌套层级 2）时退回逐行重排"""
        records = self.create(SortBulkCard, "a", "b", "c", "d", "e")
        reorderer = self.reorderer(SortBulkCard)

        with transaction_manager.transaction(session=self.session):
            reorderer.move_to_position(records[1], 4)

        assert reorderer.storage.bulk_calls == []
        assert positions(self.session, SortBulkCard) == ["a", "c", "d", "b", "e"]

    def test_sort_table_proxy_uses_row_path(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard)

        moves = reorderer.sort_table_proxy([records[2].id, records[1].id, records[0].id])

        assert moves == 2
        assert reorderer.storage.bulk_calls == []
        assert positions(self.session, SortBulkCard) == ["c", "b", "a"]

    def test_raised_nesting_limit_allows_bulk_in_outer_transaction(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, settings=SortableSettings(bulk_update_max_nesting_level=3))

        with transaction_manager.transaction(session=self.session):
            reorderer.move_to_position(records[0], 3)

        assert reorderer.storage.bulk_calls == [(-1, "asc")]
        assert positions(self.session, SortBulkCard) == ["b", "c", "a"]

    def test_unlisted_dialect_uses_row_path(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, settings=SortableSettings(ordered_update_dialects=["postgresql"]))

        reorderer.move_to_position(records[0], 3)

        assert reorderer.storage.bulk_calls == []
        assert positions(self.session, SortBulkCard) == ["b", "c", "a"]


class TestStorageCapabilities(ReordererTestBase):
    """存储能力探测测试"""

    def test_sqlite_not_bulk_capable_by_default(self):
        storage = SQLAlchemySortableStorage(self.session)
        assert storage.driver_identity() == "sqlite"
        assert storage.supports_ordered_bulk_update() is False

    def test_sqlite_listed_dialect(self):
        storage = SQLAlchemySortableStorage(
            self.session, settings=SortableSettings(ordered_update_dialects=["sqlite"])
        )
        assert storage.supports_ordered_bulk_update() is True

    def test_nesting_level(self):
        storage = SQLAlchemySortableStorage(self.session)
        assert storage.transaction_nesting_level() == 0

        with storage.transaction():
            assert storage.transaction_nesting_level() == 1
            with storage.transaction():
                assert storage.transaction_nesting_level() == 2
            assert storage.transaction_nesting_level() == 1

        assert storage.transaction_nesting_level() == 0
        assert get_current_transaction() is None

    def test_ordered_update_renders_order_by_on_mysql(self):
        table = SortBulkCard.__table__
        stmt = (
            OrderedUpdate(table)
            .where(table.c.position > 2)
            .values({table.c.position: table.c.position - 1})
            .ordered_by(table.c.position.asc())
        )

        mysql_sql = str(stmt.compile(dialect=mysql.dialect()))
        assert "ORDER BY" in mysql_sql
        assert mysql_sql.index("WHERE") < mysql_sql.index("ORDER BY")
        assert mysql_sql.rstrip().endswith("ASC")

        sqlite_sql = str(stmt.compile(dialect=sqlite.dialect()))
        assert "ORDER BY" not in sqlite_sql

    def test_ordered_by_is_generative(self):
        table = SortBulkCard.__table__
        base = OrderedUpdate(table).values({table.c.position: 1})
        ordered = base.ordered_by(table.c.position.desc())
        assert base._ordered_by == ()
        assert len(ordered._ordered_by) == 1

    def test_scope_criteria(self):
        criteria = SQLAlchemySortableStorage._scope_criteria(SortBulkLane, {"lane": ""})
        sql = str(criteria[0].compile(dialect=sqlite.dialect()))
        assert "IS NULL" in sql and " OR " in sql

        criteria = SQLAlchemySortableStorage._scope_criteria(SortBulkLane, {"lane": None})
        sql = str(criteria[0].compile(dialect=sqlite.dialect()))
        assert "IS NULL" in sql and " OR " in sql

        criteria = SQLAlchemySortableStorage._scope_criteria(SortBulkLane, {"lane": "x"})
        assert "IS NULL" not in str(criteria[0].compile(dialect=sqlite.dialect()))

        assert SQLAlchemySortableStorage._scope_criteria(SortBulkLane, {}) == []


# ==================== 回滚 ====================

class TestRollback(ReordererTestBase):
    """数据库错误回滚测试"""

    def test_storage_error_rolls_back(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=FailingStorage)

        with pytest.raises(StorageFailureException) as exc_info:
            reorderer.move_to_position(records[0], 3)

        assert exc_info.value.code == ErrorCode.DATABASE_ERROR
        assert exc_info.value.extra == {"operation": "move_to_position", "field": "position"}
        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2, "c": 3}
        assert get_current_transaction() is None

    def test_storage_error_rolls_back_outer_transaction(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=FailingStorage)

        with pytest.raises(StorageFailureException):
            with transaction_manager.transaction(session=self.session):
                records[2].title = "changed"
                self.session.flush()
                reorderer.move_to_position(records[0], 3)

        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2, "c": 3}

    def test_noop_does_not_write(self):
        records = self.create(SortBulkCard, "a", "b")
        reorderer = self.reorderer(SortBulkCard, storage_class=FailingStorage)

        assert reorderer.move_to_position(records[1], 2) is False
        # 截断到末位后与当前位置相同
        assert reorderer.move_to_position(records[1], 5) is False
        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2}

    def test_final_position_read_inside_transaction(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=NestingRecordingStorage)

        assert reorderer.move_to_position(records[0], 9) is True
        assert reorderer.storage.max_position_levels == [1]
        assert position_map(self.session, SortBulkCard) == {"b": 1, "c": 2, "a": 3}


# ==================== 调用方未提交的修改 ====================

class TestCallerPendingChanges(ReordererTestBase):
    """移动不提交、不丢弃调用方尚未提交的修改"""

    def title_of(self, record_id):
        return self.session.execute(
            select(SortBulkCard.title).where(SortBulkCard.id == record_id)
        ).scalar_one()

    def test_caller_rollback_discards_edit(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=SQLAlchemySortableStorage)
        edited_id = records[2].id

        records[2].title = "edited"
        assert reorderer.move_to_position(records[0], 3) is True
        assert get_current_transaction() is None
        assert position_map(self.session, SortBulkCard) == {"b": 1, "edited": 2, "a": 3}

        self.session.rollback()

        assert self.title_of(edited_id) == "c"
        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2, "c": 3}

    def test_caller_commit_keeps_edit_and_move(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=SQLAlchemySortableStorage)

        records[2].title = "edited"
        reorderer.move_to_position(records[2], 1)
        self.session.commit()

        assert position_map(self.session, SortBulkCard) == {"edited": 1, "a": 2, "b": 3}

    def test_failed_move_keeps_caller_edit(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=FailingStorage)
        edited_id = records[2].id

        records[2].title = "edited"
        with pytest.raises(StorageFailureException):
            reorderer.move_to_position(records[0], 3)

        self.session.commit()
        assert self.title_of(edited_id) == "edited"
        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2, "edited": 3}

    def test_flushed_edit_is_also_isolated(self):
        records = self.create(SortBulkCard, "a", "b", "c")
        reorderer = self.reorderer(SortBulkCard, storage_class=SQLAlchemySortableStorage)
        added = SortBulkCard(title="d")
        self.session.add(added)
        self.session.flush()

        reorderer.move_to_position(records[0], 4)
        self.session.rollback()

        assert position_map(self.session, SortBulkCard) == {"a": 1, "b": 2, "c": 3}


# ==================== 插入与补位 ====================

class TestInitialPositionAndGap(ReordererTestBase):
    """初始位置分配与补位测试"""

    def test_pending_counter_numbers_new_records(self):
        self.create(SortBulkCard, "a")
        reorderer = self.reorderer(SortBulkCard, storage_class=SQLAlchemySortableStorage)
        pending = {}
        first, second = SortBulkCard(title="b"), SortBulkCard(title="c")

        assert reorderer.assign_initial_position(first, pending) is True
        assert reorderer.assign_initial_position(second, pending) is True
        assert (first.position, second.position) == (2, 3)

        # 已有位置的记录不再分配
        assert reorderer.assign_initial_position(first, pending) is False

    def test_close_gap(self):
        configure_sortable(close_gap_on_delete=False)
        records = self.create(SortBulkCard, "a", "b", "c", "d")
        self.session.delete(records[1])
        self.session.commit()
        reorderer = self.reorderer(SortBulkCard, storage_class=SQLAlchemySortableStorage)

        assert reorderer.close_gap({}, 2) == 2
        self.session.commit()

        assert position_map(self.session, SortBulkCard) == {"a": 1, "c": 2, "d": 3}

    def test_close_gap_in_scope(self):
        configure_sortable(close_gap_on_delete=False)
        lane_x = self.create(SortBulkLane, "a", "b", "c", lane="x")
        self.create(SortBulkLane, "d", "e", lane="y")
        self.session.delete(lane_x[0])
        self.session.commit()
        reorderer = self.reorderer(SortBulkLane, storage_class=SQLAlchemySortableStorage)

        assert reorderer.close_gap({"lane": "x"}, 1) == 2
        self.session.commit()

        assert positions(self.session, SortBulkLane, lane="x") == ["b", "c"]
        assert position_map(self.session, SortBulkLane) == {"b": 1, "c": 2, "d": 1, "e": 2}
