import asyncio
import logging
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from order_intake.application.container import ApplicationContainer
from order_intake.infrastructure.db_schema import create_schema
from order_intake.presentation import api, health
from order_intake.presentation.container import PresentationContainer
from order_intake.presentation.outbox_worker import OutboxWorker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parents[1] / "order_intake" / "config.yaml"


def build_api(container: ApplicationContainer):
    app = FastAPI(title="SatDesk Order Intake")
    app.include_router(health.router)
    app.include_router(api.router)
    app.add_exception_handler(RequestValidationError, api.validation_error_handler)
    container.wire(modules=[api, health])
    return app


async def main():
    presentation_container = PresentationContainer()
    presentation_container.config.from_yaml(CONFIG_PATH, required=True)
    config = presentation_container.config

    engine = presentation_container.application.infrastructure_container.async_engine()
    await create_schema(engine)

    app = build_api(presentation_container.application)

    if not presentation_container.application.webhook_verifier().is_configured:
        logger.warning(
            "WORDPRESS_WEBHOOK_SECRET is not configured, all webhooks will be rejected"
        )

    api_task = asyncio.create_task(
        uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.server.host(),
                port=int(config.server.port()),
                log_level="info",
            )
        ).serve()
    )
    tasks = [api_task]

    if config.infrastructure.kafka.enabled():
        outbox_worker: OutboxWorker = presentation_container.outbox_worker()
        tasks.append(asyncio.create_task(outbox_worker.run()))
    else:
        logger.info("Kafka disabled, order events stay in the outbox")

    try:
        await asyncio.gather(*tasks)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
