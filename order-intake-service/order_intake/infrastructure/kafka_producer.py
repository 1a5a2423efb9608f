import json
import logging

from aiokafka import AIOKafkaProducer

from order_intake.core.models import OutboxEvent

logger = logging.getLogger(__name__)


def _event_message(event: OutboxEvent) -> dict:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "payload": event.payload,
        "created_at": event.created_at.isoformat(),
    }


class KafkaProducer:
    """Publishes order events to one topic.

    Events are keyed by order id, so every event of an order lands on the same
    partition and consumers see them in order.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        client_id: str = "order-intake",
    ):
        self._bootstrap_servers = bootstrap_servers
        self._topic = topic
        self._client_id = client_id
        self._producer: AIOKafkaProducer | None = None

    async def start(self):
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._bootstrap_servers,
            client_id=self._client_id,
            acks="all",
            value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
            key_serializer=lambda k: k.encode("utf-8") if k else None,
        )
        await self._producer.start()
        logger.debug(f"Kafka producer connected to {self._bootstrap_servers}")

    async def stop(self):
        if self._producer:
            await self._producer.stop()
            self._producer = None

    async def publish(self, event: OutboxEvent) -> None:
        if not self._producer:
            raise RuntimeError("Producer is not started. Call start() first.")

        await self._producer.send_and_wait(
            topic=self._topic,
            value=_event_message(event),
            key=event.payload.get("orderId"),
            headers=[("event_type", str(event.event_type).encode("utf-8"))],
        )

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
