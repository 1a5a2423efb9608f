import logging

from order_intake.core.clock import Clock, utc_now
from order_intake.core.models import EventTypeEnum, Order
from order_intake.infrastructure.repositories import OutboxRepository
from order_intake.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class CancelOrderUseCase:
    """Soft cancel: the order stays in the store with status ``cancelled``."""

    def __init__(self, unit_of_work: UnitOfWork, clock: Clock = utc_now):
        self._unit_of_work = unit_of_work
        self._clock = clock

    async def __call__(self, order_id: str, reason: str) -> Order:
        async with self._unit_of_work() as uow:
            order = await uow.orders.cancel(order_id, reason=reason, now=self._clock())
            await uow.outbox.create(
                OutboxRepository.CreateDTO(
                    event_type=EventTypeEnum.ORDER_CANCELLED,
                    payload={"orderId": order.id, "reason": reason},
                )
            )
            await uow.commit()

        logger.info(f"Cancelled order {order_id}, reason: {reason}")
        return order
