"""数据库会话

SortableMixin、CoreModel 和事务管理器在没有显式传入 session 时，
都从这里的 scoped_session 取当前线程的 session。

公开 API:
- db_manager: 全局 DatabaseManager
- init_database(): 创建引擎与 scoped_session
- get_engine(): 当前引擎
- db_session_scope(): 脚本、定时重排任务使用的上下文管理器
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ysort.config import DatabaseSettings
from ysort.log import get_logger

_logger = get_logger("ysort.orm.session")

__all__ = [
    'db_manager',
    'DatabaseManager',
    'init_database',
    'get_engine',
    'db_session_scope',
]

_NOT_INITIALIZED = "数据库未初始化，请先调用 init_database()"


def _engine_options(url: str, settings: DatabaseSettings) -> Dict[str, Any]:
    """按数据库类型生成 create_engine 参数

    SQLite 不使用连接池参数；内存库只有一个连接，所有 session 共享。
    """
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        else:
            options["connect_args"]["timeout"] = settings.pool_timeout
        return options
    return {
        "pool_pre_ping": settings.pool_pre_ping,
        "pool_size": settings.pool_size,
        "max_overflow": settings.max_overflow,
        "pool_timeout": settings.pool_timeout,
        "pool_recycle": settings.pool_recycle,
    }


class DatabaseManager:
    """引擎与 scoped_session 的持有者

    使用示例:
        from ysort.orm import db_manager

        db_manager.init(database_url="sqlite:///./app.db")
        session = db_manager.get_session()
    """

    def __init__(self):
        self._engine = None
        self._session_scope: Optional[scoped_session] = None

    @property
    def engine(self):
        if self._engine is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._engine

    @property
    def session_scope(self) -> scoped_session:
        if self._session_scope is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._session_scope

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None and self._session_scope is not None

    def init(
        self,
        database_url: Optional[str] = None,
        config: Optional[DatabaseSettings] = None,
        **overrides: Any
    ):
        """创建引擎与 scoped_session，并设置 CoreModel.query

        Args:
            database_url: 数据库连接 URL，优先于 config.url
            config: DatabaseSettings，不传时从环境变量 YSORT_DB_* 读取
            **overrides: 覆盖 config 中的字段（echo、pool_size 等）

        Returns:
            tuple: (engine, session_scope)
        """
        settings = config or DatabaseSettings()
        if overrides:
            settings = settings.model_copy(update=overrides)
        url = database_url or settings.url
        if not url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        if self._engine is not None:
            self._engine.dispose()
        self._engine = create_engine(url, echo=settings.echo, **_engine_options(url, settings))
        self._session_scope = scoped_session(sessionmaker(autoflush=True, bind=self._engine))

        from .core_model import CoreModel
        CoreModel.query = self._session_scope.query_property()

        _logger.info(f"数据库已初始化: dialect={self._engine.dialect.name}")
        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """当前线程的 session"""
        return self.session_scope()

    def remove_session(self) -> None:
        if self._session_scope is not None:
            self._session_scope.remove()


db_manager = DatabaseManager()


def init_database(database_url: Optional[str] = None, **kwargs):
    """db_manager.init() 的便捷包装"""
    return db_manager.init(database_url=database_url, **kwargs)


def get_engine():
    return db_manager.engine


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Generator[Session, None, None]:
    """在一个 session 中执行一段排序操作，结束后移除 session

    正常退出时提交（auto_commit=False 时不提交），异常时回滚。

    使用示例:
        with db_session_scope() as session:
            banner = session.get(Banner, 1)
            banner.move_to_first()
    """
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.remove_session()
