import asyncio
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_intake.infrastructure.repositories import (
    DeliveryRepository,
    OrderRepository,
    OutboxRepository,
)


class UnitOfWork:
    """Transaction scope over the order store.

    Units of work run one at a time within the process, so a webhook upsert
    reports created or replaced consistently. Across processes the upsert
    statement itself is atomic. Nesting units of work in one task deadlocks.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def __call__(self):
        async with self._lock:
            async with self._session_factory() as session:
                try:
                    yield _UnitOfWorkImplementation(session)
                    # Rollback if commit wasn't explicitly called
                    await session.rollback()
                except Exception:
                    await session.rollback()
                    raise


class _UnitOfWorkImplementation:
    def __init__(self, session: AsyncSession):
        self._session = session
        self._order_repo = OrderRepository(session)
        self._delivery_repo = DeliveryRepository(session)
        self._outbox_repo = OutboxRepository(session)

    @property
    def orders(self) -> OrderRepository:
        return self._order_repo

    @property
    def deliveries(self) -> DeliveryRepository:
        return self._delivery_repo

    @property
    def outbox(self) -> OutboxRepository:
        return self._outbox_repo

    async def commit(self):
        await self._session.commit()
