import logging

from order_intake.core.clock import Clock, utc_now
from order_intake.core.models import EventTypeEnum, Order, OrderStatusEnum
from order_intake.infrastructure.repositories import OutboxRepository
from order_intake.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    def __init__(self, unit_of_work: UnitOfWork, clock: Clock = utc_now):
        self._unit_of_work = unit_of_work
        self._clock = clock

    async def __call__(
        self,
        order_id: str,
        status: OrderStatusEnum,
        rental_id: str | None = None,
    ) -> Order:
        async with self._unit_of_work() as uow:
            order = await uow.orders.update_status(
                order_id, status=status, rental_id=rental_id, now=self._clock()
            )
            await uow.outbox.create(
                OutboxRepository.CreateDTO(
                    event_type=EventTypeEnum.ORDER_STATUS_CHANGED,
                    payload={
                        "orderId": order.id,
                        "status": order.status,
                        "rentalId": order.rental_id,
                    },
                )
            )
            await uow.commit()

        logger.info(f"Updated order {order_id} to status: {status}")
        return order
