"""
测试公共 Fixtures

- 临时目录与文件（基于 pytest 的 tmp_path）
- SQLite 内存数据库
- 示例 YAML 配置
- 排序配置复位
"""

from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


# ==================== 文件 ====================

@pytest.fixture
def temp_dir(tmp_path) -> str:
    """本测试独享的临时目录"""
    return str(tmp_path)


@pytest.fixture
def temp_file(tmp_path):
    """在临时目录下写文件，返回绝对路径；子目录自动创建"""

    def _write(relative_path: str, content: str = "") -> str:
        target = tmp_path / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return str(target)

    return _write


# ==================== 数据库 ====================

@pytest.fixture
def memory_engine():
    """SQLite 内存库

    StaticPool 让所有 session 共用同一个连接，否则每个连接看到的是各自的空库。
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(memory_engine) -> Generator[Session, None, None]:
    session = sessionmaker(autoflush=False, bind=memory_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def reset_sortable():
    """测试之间不共享 configure_sortable() 的修改"""
    from ysort.orm.sortable import reset_sortable_settings

    yield
    reset_sortable_settings()


# ==================== 配置文件 ====================

@pytest.fixture
def sample_yaml_config(temp_file):
    return temp_file("config/settings.yaml", """
database:
  url: "sqlite:///test.db"
  pool_size: 5

logging:
  level: "DEBUG"
  file_path: "logs/test.log"

sortable:
  ordered_update_dialects: ["mysql"]
  bulk_update_max_nesting_level: 3
  close_gap_on_delete: false
""")
