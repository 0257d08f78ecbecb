"""
Transaction boundary for every read-modify-write sequence in the booking core.

TransactionCoordinator.run(work) opens a session, begins a transaction,
awaits work(session), commits on success and rolls back on any exception
before re-raising it. A run() issued while another run() is active in the
same task reuses the outer session, so the inner work joins the outer
transaction instead of committing on its own.
"""

from contextvars import ContextVar
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripbook.core.logging import get_logger
from tripbook.core.metrics import record_rollback

logger = get_logger(__name__)

T = TypeVar("T")
UnitOfWork = Callable[[AsyncSession], Awaitable[T]]

# Execution option marking a connection that only reads
READ_ONLY_OPTION = "tripbook_readonly"

_active_session: ContextVar[Optional[AsyncSession]] = ContextVar("tripbook_active_session", default=None)


def require_transaction(session: AsyncSession) -> None:
    """Guard for ledger primitives that must never run in autocommit."""
    if not session.in_transaction():
        raise RuntimeError("inventory changes must run inside TransactionCoordinator.run()")


class TransactionCoordinator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def run(self, work: UnitOfWork, *, name: Optional[str] = None) -> T:
        """Execute `work` atomically. Nested calls join the outer transaction."""
        outer = _active_session.get()
        if outer is not None:
            return await work(outer)

        async with self._session_factory() as session:
            token = _active_session.set(session)
            try:
                async with session.begin():
                    return await work(session)
            except Exception as exc:
                record_rollback(type(exc).__name__)
                logger.debug(
                    "transaction_rolled_back",
                    unit_of_work=name or getattr(work, "__name__", "anonymous"),
                    error_type=type(exc).__name__,
                )
                raise
            finally:
                _active_session.reset(token)

    async def read(self, work: UnitOfWork) -> T:
        """
        Run a read-only snapshot query in its own short session.

        The connection carries READ_ONLY_OPTION, so on SQLite it begins a
        deferred transaction and does not queue behind open writers. Nothing
        is committed; callers must not mutate entities here.
        """
        async with self._session_factory() as session:
            try:
                await session.connection(execution_options={READ_ONLY_OPTION: True})
                return await work(session)
            finally:
                await session.rollback()
