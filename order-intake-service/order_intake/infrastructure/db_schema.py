from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

# Datetimes are stored as naive UTC.
orders_tbl = Table(
    "orders",
    metadata,
    Column("id", Text, primary_key=True),
    Column("order_number", Text, nullable=True),
    Column("source", Text, nullable=False),
    Column("status", Text, nullable=False, index=True),
    Column("created_at", DateTime, nullable=False, index=True),
    Column("customer", JSON, nullable=False),
    Column("rental", JSON, nullable=False),
    Column("payment", JSON, nullable=False),
    Column("metadata", JSON, nullable=False),
    Column("raw_payload", JSON, nullable=False),
    Column("rental_id", Text, nullable=True),
    Column("updated_at", DateTime, nullable=True),
    Column("cancel_reason", Text, nullable=True),
    Column("cancelled_at", DateTime, nullable=True),
)

webhook_deliveries_tbl = Table(
    "webhook_deliveries",
    metadata,
    Column("id", Text, primary_key=True),
    Column("order_id", Text, nullable=True, index=True),
    Column("event_type", Text, nullable=False),
    Column("status", Text, nullable=False),
    Column("response_status", Integer, nullable=False),
    Column("error_message", Text, nullable=True),
    Column("received_at", DateTime, nullable=False, index=True),
)

outbox_tbl = Table(
    "outbox",
    metadata,
    Column("id", Text, primary_key=True),
    Column("event_type", Text, nullable=False),
    Column("payload", JSON, nullable=False),
    Column("status", Text, nullable=False),
    Column("created_at", DateTime, nullable=False),
)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
