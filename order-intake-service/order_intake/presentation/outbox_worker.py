import asyncio
import logging

from order_intake.application.process_outbox_events import ProcessOutboxEventsUseCase

logger = logging.getLogger(__name__)


class OutboxWorker:
    def __init__(self, use_case: ProcessOutboxEventsUseCase, poll_interval: float = 1.0):
        self._use_case = use_case
        self._poll_interval = float(poll_interval)

    async def run(self):
        logger.info("Outbox worker started")
        while True:
            try:
                sent = await self._use_case()
                if sent:
                    logger.info(f"Pushed {sent} order events")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Outbox pass failed: {e}", exc_info=True)
            await asyncio.sleep(self._poll_interval)
