from typing import Callable

from dependency_injector import containers, providers
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from order_intake.infrastructure.kafka_producer import KafkaProducer
from order_intake.infrastructure.unit_of_work import UnitOfWork


def build_async_engine(
    dsn: str, pool_size: int | None = None, pool_recycle: int | None = None
) -> AsyncEngine:
    if dsn.startswith("sqlite"):
        # One shared connection, so an in-memory database lives as long as the engine.
        return create_async_engine(
            dsn,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(
        dsn,
        pool_size=int(pool_size or 15),
        pool_recycle=int(pool_recycle or 1800),
    )


class InfrastructureContainer(containers.DeclarativeContainer):
    config = providers.Configuration()
    async_engine = providers.Singleton[AsyncEngine](
        build_async_engine,
        config.db.dsn,
        pool_size=config.db.pool_size,
        pool_recycle=config.db.pool_recycle,
    )
    session_factory: Callable[..., async_sessionmaker[AsyncSession]] = (
        providers.Factory(
            async_sessionmaker, async_engine, expire_on_commit=False, class_=AsyncSession
        )
    )
    unit_of_work = providers.Singleton[UnitOfWork](
        UnitOfWork, session_factory=session_factory
    )
    kafka_producer = providers.Singleton[KafkaProducer](
        KafkaProducer,
        bootstrap_servers=config.kafka.bootstrap_servers,
        topic=config.kafka.topic,
    )
