from order_intake.core.clock import Clock, utc_now
from order_intake.core.models import (
    DeliveryStatusEnum,
    Order,
    OrderStats,
    OrderStatusEnum,
    WebhookDelivery,
)
from order_intake.infrastructure.unit_of_work import UnitOfWork


class OrderQueries:
    def __init__(self, unit_of_work: UnitOfWork, clock: Clock = utc_now):
        self._unit_of_work = unit_of_work
        self._clock = clock

    async def list_orders(self, status: OrderStatusEnum | None = None) -> list[Order]:
        async with self._unit_of_work() as uow:
            return await uow.orders.list_all(status=status)

    async def get_order(self, order_id: str) -> Order:
        async with self._unit_of_work() as uow:
            return await uow.orders.get_by_id(order_id)

    async def stats(self) -> OrderStats:
        async with self._unit_of_work() as uow:
            return await uow.orders.stats(now=self._clock())

    async def list_deliveries(
        self, status: DeliveryStatusEnum | None = None, limit: int = 100
    ) -> list[WebhookDelivery]:
        async with self._unit_of_work() as uow:
            return await uow.deliveries.list_recent(status=status, limit=limit)
