import logging

from order_intake.core.models import (
    DeliveryStatusEnum,
    EventTypeEnum,
    Order,
)
from order_intake.core.payload import build_order, decode_body, parse_payload
from order_intake.core.signature import WebhookVerifier
from order_intake.infrastructure.repositories import (
    DeliveryRepository,
    OutboxRepository,
)
from order_intake.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

ORDER_CREATED_EVENT = "order.created"


class ReceiveWebhookOrderUseCase:
    def __init__(self, unit_of_work: UnitOfWork, verifier: WebhookVerifier):
        self._unit_of_work = unit_of_work
        self._verifier = verifier

    async def __call__(
        self, raw_body: bytes, signature: str | None, timestamp: str | None
    ) -> Order:
        self._verifier.verify(raw_body, signature, timestamp)

        order_id = None
        try:
            document = decode_body(raw_body)
            order_id = _peek_order_id(document)
            order = build_order(parse_payload(document), raw_payload=document)

            async with self._unit_of_work() as uow:
                stored, created = await uow.orders.upsert(order)
                await uow.outbox.create(
                    OutboxRepository.CreateDTO(
                        event_type=EventTypeEnum.ORDER_RECEIVED,
                        payload={
                            "orderId": stored.id,
                            "orderNumber": stored.order_number,
                            "status": stored.status,
                            "createdAt": stored.created_at.isoformat(),
                            "replaced": not created,
                        },
                    )
                )
                await uow.deliveries.create(
                    DeliveryRepository.CreateDTO(
                        order_id=stored.id,
                        event_type=ORDER_CREATED_EVENT,
                        status=DeliveryStatusEnum.PROCESSED,
                        response_status=200,
                    )
                )
                await uow.commit()
        except Exception as e:
            await self._record_failure(order_id, str(e) or repr(e))
            raise

        if created:
            logger.info(f"Stored new order: {stored.id}")
        else:
            logger.info(f"Replaced existing order: {stored.id}")
        return stored

    async def _record_failure(self, order_id: str | None, error_message: str) -> None:
        try:
            async with self._unit_of_work() as uow:
                await uow.deliveries.create(
                    DeliveryRepository.CreateDTO(
                        order_id=order_id,
                        event_type=ORDER_CREATED_EVENT,
                        status=DeliveryStatusEnum.FAILED,
                        response_status=500,
                        error_message=error_message,
                    )
                )
                await uow.commit()
        except Exception:
            logger.exception(f"Failed to record webhook delivery for {order_id}")


def _peek_order_id(document: dict) -> str | None:
    order = document.get("order")
    if isinstance(order, dict) and order.get("orderId") is not None:
        return str(order["orderId"])
    return None
