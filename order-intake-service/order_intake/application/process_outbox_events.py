import logging

from order_intake.infrastructure.kafka_producer import KafkaProducer
from order_intake.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class ProcessOutboxEventsUseCase:
    def __init__(
        self,
        unit_of_work: UnitOfWork,
        kafka_producer: KafkaProducer,
        batch_size: int = 100,
    ):
        self._unit_of_work = unit_of_work
        self._kafka_producer = kafka_producer
        self._batch_size = int(batch_size)

    async def __call__(self) -> int:
        """
        Push pending order events to Kafka and mark them as sent.
        Returns the number of events sent; failed sends stay pending.
        """
        async with self._unit_of_work() as uow:
            events = await uow.outbox.get_pending_events(limit=self._batch_size)

        if not events:
            return 0

        sent = 0
        async with self._kafka_producer as kp:
            for event in events:
                try:
                    await kp.publish(event)
                except Exception as e:
                    logger.error(f"Failed to send event {event.id}: {e}", exc_info=True)
                    continue

                async with self._unit_of_work() as uow:
                    await uow.outbox.mark_as_sent(event.id)
                    await uow.commit()
                sent += 1

        return sent
