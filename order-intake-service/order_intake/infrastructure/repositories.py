import uuid
from datetime import datetime, timedelta

from pydantic import BaseModel
from sqlalchemy import Row, func, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from order_intake.core.clock import as_utc, utc_now
from order_intake.core.errors import OrderNotFound
from order_intake.core.models import (
    STORAGE_CONTEXT,
    DeliveryStatusEnum,
    EventTypeEnum,
    Order,
    OrderStats,
    OrderStatusEnum,
    OutboxEvent,
    OutboxEventStatus,
    WebhookDelivery,
)
from order_intake.infrastructure.db_schema import (
    orders_tbl,
    outbox_tbl,
    webhook_deliveries_tbl,
)


class DoesNotExist(Exception):
    pass


# Dialects supporting INSERT ... ON CONFLICT DO UPDATE.
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None)


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _construct(row: Row | None) -> Order:
        if row is None:
            raise DoesNotExist

        return Order(
            id=row._mapping["id"],
            order_number=row._mapping["order_number"],
            source=row._mapping["source"],
            status=row._mapping["status"],
            created_at=as_utc(row._mapping["created_at"]),
            customer=row._mapping["customer"],
            rental=row._mapping["rental"],
            payment=row._mapping["payment"],
            metadata=row._mapping["metadata"],
            raw_payload=row._mapping["raw_payload"],
            rental_id=row._mapping["rental_id"],
            updated_at=as_utc(row._mapping["updated_at"]),
            cancel_reason=row._mapping["cancel_reason"],
            cancelled_at=as_utc(row._mapping["cancelled_at"]),
        )

    @staticmethod
    def _values(order: Order) -> dict:
        def snapshot(model: BaseModel) -> dict:
            return model.model_dump(mode="json", context=STORAGE_CONTEXT)

        return {
            "order_number": order.order_number,
            "source": order.source,
            "status": order.status,
            "created_at": _to_db(order.created_at),
            "customer": snapshot(order.customer),
            "rental": snapshot(order.rental),
            "payment": snapshot(order.payment),
            "metadata": order.metadata,
            "raw_payload": order.raw_payload,
            "rental_id": order.rental_id,
            "updated_at": _to_db(order.updated_at),
            "cancel_reason": order.cancel_reason,
            "cancelled_at": _to_db(order.cancelled_at),
        }

    async def exists(self, order_id: str) -> bool:
        stmt = select(orders_tbl.c.id).where(orders_tbl.c.id == order_id)
        result = await self._session.execute(stmt)
        return result.fetchone() is not None

    async def upsert(self, order: Order) -> tuple[Order, bool]:
        """Insert the order, or replace every column of an existing one.

        Returns the stored order and whether it was newly created.
        """
        dialect = self._session.get_bind().dialect.name
        if dialect not in _UPSERT_INSERTS:
            raise RuntimeError(f"Upsert is not supported on {dialect}")

        # Only reported back; a concurrent first delivery of the same id in
        # another process is resolved by the conflict clause.
        created = not await self.exists(order.id)

        values = self._values(order)
        stmt = (
            _UPSERT_INSERTS[dialect](orders_tbl)
            .values(id=order.id, **values)
            .on_conflict_do_update(index_elements=[orders_tbl.c.id], set_=values)
        )
        await self._session.execute(stmt)

        return await self.get_by_id(order.id), created

    async def get_by_id(self, order_id: str) -> Order:
        stmt = select(orders_tbl).where(orders_tbl.c.id == order_id)
        result = await self._session.execute(stmt)

        try:
            return self._construct(result.fetchone())
        except DoesNotExist:
            raise OrderNotFound(order_id) from None

    async def list_all(self, status: OrderStatusEnum | None = None) -> list[Order]:
        stmt = select(orders_tbl).order_by(orders_tbl.c.created_at.desc())
        if status is not None:
            stmt = stmt.where(orders_tbl.c.status == status)

        result = await self._session.execute(stmt)
        return [self._construct(row) for row in result.fetchall()]

    async def update_status(
        self,
        order_id: str,
        status: OrderStatusEnum,
        now: datetime,
        rental_id: str | None = None,
    ) -> Order:
        if not await self.exists(order_id):
            raise OrderNotFound(order_id)

        values = {"status": status, "updated_at": _to_db(now)}
        if rental_id:
            values["rental_id"] = rental_id

        await self._session.execute(
            orders_tbl.update().where(orders_tbl.c.id == order_id).values(values)
        )
        return await self.get_by_id(order_id)

    async def cancel(self, order_id: str, reason: str, now: datetime) -> Order:
        if not await self.exists(order_id):
            raise OrderNotFound(order_id)

        await self._session.execute(
            orders_tbl.update()
            .where(orders_tbl.c.id == order_id)
            .values(
                status=OrderStatusEnum.CANCELLED,
                cancel_reason=reason,
                cancelled_at=_to_db(now),
                updated_at=_to_db(now),
            )
        )
        return await self.get_by_id(order_id)

    async def _count_created_after(self, cutoff: datetime) -> int:
        stmt = (
            select(func.count())
            .select_from(orders_tbl)
            .where(orders_tbl.c.created_at > _to_db(cutoff))
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def stats(self, now: datetime) -> OrderStats:
        by_status = {status: 0 for status in OrderStatusEnum}
        result = await self._session.execute(
            select(orders_tbl.c.status, func.count()).group_by(orders_tbl.c.status)
        )
        for status, count in result.fetchall():
            by_status[OrderStatusEnum(status)] = count

        return OrderStats(
            total=sum(by_status.values()),
            new=by_status[OrderStatusEnum.NEW],
            processing=by_status[OrderStatusEnum.PROCESSING],
            completed=by_status[OrderStatusEnum.COMPLETED],
            cancelled=by_status[OrderStatusEnum.CANCELLED],
            last_24_hours=await self._count_created_after(now - timedelta(hours=24)),
            last_7_days=await self._count_created_after(now - timedelta(days=7)),
        )


class DeliveryRepository:
    class CreateDTO(BaseModel):
        order_id: str | None = None
        event_type: str
        status: DeliveryStatusEnum
        response_status: int
        error_message: str | None = None

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _construct(row: Row | None) -> WebhookDelivery:
        if row is None:
            raise DoesNotExist

        return WebhookDelivery(
            id=row._mapping["id"],
            order_id=row._mapping["order_id"],
            event_type=row._mapping["event_type"],
            status=row._mapping["status"],
            response_status=row._mapping["response_status"],
            error_message=row._mapping["error_message"],
            received_at=as_utc(row._mapping["received_at"]),
        )

    async def create(self, delivery: CreateDTO) -> WebhookDelivery:
        delivery_id = str(uuid.uuid4())
        await self._session.execute(
            insert(webhook_deliveries_tbl).values(
                id=delivery_id,
                order_id=delivery.order_id,
                event_type=delivery.event_type,
                status=delivery.status,
                response_status=delivery.response_status,
                error_message=delivery.error_message,
                received_at=_to_db(utc_now()),
            )
        )
        return await self.get_by_id(delivery_id)

    async def get_by_id(self, delivery_id: str) -> WebhookDelivery:
        stmt = select(webhook_deliveries_tbl).where(
            webhook_deliveries_tbl.c.id == delivery_id
        )
        result = await self._session.execute(stmt)
        return self._construct(result.fetchone())

    async def list_recent(
        self, status: DeliveryStatusEnum | None = None, limit: int = 100
    ) -> list[WebhookDelivery]:
        stmt = (
            select(webhook_deliveries_tbl)
            .order_by(webhook_deliveries_tbl.c.received_at.desc())
            .limit(limit)
        )
        if status is not None:
            stmt = stmt.where(webhook_deliveries_tbl.c.status == status)

        result = await self._session.execute(stmt)
        return [self._construct(row) for row in result.fetchall()]


class OutboxRepository:
    class CreateDTO(BaseModel):
        event_type: EventTypeEnum
        payload: dict

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _construct(row: Row | None) -> OutboxEvent:
        if row is None:
            raise DoesNotExist

        return OutboxEvent(
            id=row._mapping["id"],
            event_type=row._mapping["event_type"],
            payload=row._mapping["payload"],
            status=row._mapping["status"],
            created_at=as_utc(row._mapping["created_at"]),
        )

    async def create(self, event: CreateDTO) -> OutboxEvent:
        event_id = str(uuid.uuid4())
        await self._session.execute(
            insert(outbox_tbl).values(
                id=event_id,
                event_type=event.event_type,
                payload=event.payload,
                status=OutboxEventStatus.PENDING,
                created_at=_to_db(utc_now()),
            )
        )
        return await self.get_by_id(event_id)

    async def get_pending_events(self, limit: int = 100) -> list[OutboxEvent]:
        stmt = (
            select(outbox_tbl)
            .where(outbox_tbl.c.status == OutboxEventStatus.PENDING)
            .order_by(outbox_tbl.c.created_at)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        rows = result.fetchall()

        return [self._construct(row) for row in rows]

    async def get_by_id(self, event_id: str) -> OutboxEvent:
        stmt = select(outbox_tbl).where(outbox_tbl.c.id == event_id)
        result = await self._session.execute(stmt)
        row = result.fetchone()

        return self._construct(row)

    async def mark_as_sent(self, event_id: str) -> None:
        stmt = (
            outbox_tbl.update()
            .where(outbox_tbl.c.id == event_id)
            .values(status=OutboxEventStatus.SENT)
        )
        await self._session.execute(stmt)
