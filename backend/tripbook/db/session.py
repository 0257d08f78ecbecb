"""
Async engine, session factory and the process-wide transaction coordinator.

Write intent per backend:
- PostgreSQL (asyncpg): transactions begin normally; services re-read the rows
  they change with SELECT ... FOR UPDATE and admit seats with one conditional
  UPDATE, so concurrent writers on the same trip/booking queue on row locks.
- SQLite (aiosqlite): the driver's deferred BEGIN is disabled and every write
  transaction starts with BEGIN IMMEDIATE, taking the database write lock up
  front. Waiting writers block for SQLITE_BUSY_TIMEOUT seconds. Connections
  marked READ_ONLY_OPTION (TransactionCoordinator.read) begin deferred and,
  with the WAL journal, read the last committed snapshot without waiting for
  an open writer.
"""

from typing import Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from tripbook.core.config import get_settings
from tripbook.core.logging import get_logger
from tripbook.db.transaction import READ_ONLY_OPTION, TransactionCoordinator

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_coordinator: Optional[TransactionCoordinator] = None


def _install_sqlite_write_intent(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # Readers see the last commit while a writer holds the lock
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_with_intent(conn):
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Build an async engine for `database_url` (defaults to settings.DATABASE_URL)."""
    settings = get_settings()
    url = make_url(database_url or settings.DATABASE_URL)

    if url.get_backend_name() == "sqlite":
        options = {"connect_args": {"timeout": settings.SQLITE_BUSY_TIMEOUT}}
        options.update(overrides)
        engine = create_async_engine(url, echo=settings.DEBUG, **options)
        _install_sqlite_write_intent(engine)
    else:
        options = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": settings.DB_POOL_TIMEOUT,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
        options.update(overrides)
        engine = create_async_engine(url, echo=settings.DEBUG, **options)

    logger.info("database_engine_created", backend=url.get_backend_name(), database=url.database)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: entities returned from a committed unit of work stay readable
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_transaction_coordinator() -> TransactionCoordinator:
    """Process-wide coordinator; also used as a FastAPI dependency."""
    global _coordinator
    if _coordinator is None:
        _coordinator = TransactionCoordinator(create_session_factory(get_engine()))
    return _coordinator


async def dispose_engine() -> None:
    global _engine, _coordinator
    if _engine is not None:
        await _engine.dispose()
        logger.info("database_engine_disposed")
    _engine = None
    _coordinator = None
