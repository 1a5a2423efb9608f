import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Callable

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_intake.application.container import ApplicationContainer
from order_intake.infrastructure.db_schema import metadata
from order_intake.infrastructure.unit_of_work import UnitOfWork
from order_intake.presentation import api, health

TEST_WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture()
async def container() -> ApplicationContainer:
    container = ApplicationContainer()
    container.config.from_dict(
        {
            "app": {"environment": "test"},
            "webhook": {"secret": TEST_WEBHOOK_SECRET, "tolerance_seconds": 300},
            "outbox": {"batch_size": 100, "poll_interval": 0.01},
            "infrastructure": {
                "db": {"dsn": "sqlite+aiosqlite:///:memory:"},
                "kafka": {"bootstrap_servers": "kafka:9092", "topic": "orders-test"},
            },
        }
    )
    return container


@pytest_asyncio.fixture()
async def setup_database(container: ApplicationContainer):
    engine = container.infrastructure_container.async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def session_factory(
    container: ApplicationContainer, setup_database
) -> async_sessionmaker[AsyncSession]:
    return container.infrastructure_container.session_factory()


@pytest.fixture()
async def unit_of_work(container: ApplicationContainer, setup_database) -> UnitOfWork:
    return container.infrastructure_container.unit_of_work()


@pytest.fixture()
def fast_api_app(container: ApplicationContainer, setup_database):
    app = FastAPI()
    app.include_router(health.router)
    app.include_router(api.router)
    app.add_exception_handler(RequestValidationError, api.validation_error_handler)
    container.wire(modules=[api, health])
    app.container = container
    return app


@pytest_asyncio.fixture()
async def test_async_client(fast_api_app) -> AsyncClient:
    async with AsyncClient(
        transport=ASGITransport(app=fast_api_app),
        base_url="http://test.com",
    ) as client:
        client.app = fast_api_app
        yield client


def sign_body(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@pytest.fixture
def payload_factory() -> Callable[..., dict[str, Any]]:
    """WooCommerce order payload; keyword overrides replace whole top-level blocks."""

    def _create_payload(**overrides) -> dict[str, Any]:
        payload = {
            "source": "woocommerce",
            "sourceUrl": "https://shop.example.com",
            "timestamp": "2026-10-19T08:00:00Z",
            "order": {
                "orderId": f"W-{uuid.uuid4().hex[:8]}",
                "orderNumber": "WC-12345",
                "orderDate": "2026-10-19T08:00:00Z",
                "orderStatus": "processing",
                "orderUrl": "https://shop.example.com/orders/12345",
            },
            "customer": {
                "firstName": "David",
                "lastName": "Cohen",
                "email": "david.cohen@example.com",
                "phone": "+972-50-123-4567",
                "idPassport": "123456789",
                "dateOfBirth": "1985-03-15",
                "gender": "male",
                "address": {
                    "street": "Herzl",
                    "houseNumber": "10",
                    "city": "Tel Aviv",
                    "country": "IL",
                    "postcode": "6100000",
                },
                "emergencyContacts": [
                    {
                        "firstName": "Sarah",
                        "lastName": "Cohen",
                        "phone": "+972-50-987-6543",
                        "email": "sarah.cohen@example.com",
                        "relationship": "Spouse",
                    }
                ],
            },
            "rental": {
                "startDate": "2026-10-20",
                "endDate": "2026-10-30",
                "travelDestination": "Nepal",
                "deviceCount": 1,
                "duration": 10,
            },
            "payment": {
                "method": "Credit Card",
                "methodId": "stripe",
                "status": "paid",
                "total": 450,
                "currency": "ILS",
                "paidDate": "2026-10-19T08:01:00Z",
            },
            "metadata": {"customerLanguage": "he"},
        }
        payload.update(overrides)
        return payload

    return _create_payload


@pytest.fixture
def post_webhook(
    test_async_client: AsyncClient,
) -> Callable[..., Any]:
    async def _post(
        payload: dict[str, Any] | None = None,
        *,
        body: bytes | None = None,
        signature: str | None = None,
        timestamp: str | None = None,
    ) -> Response:
        if body is None:
            body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature if signature is not None else sign_body(body),
            "X-Webhook-Timestamp": (
                timestamp if timestamp is not None else str(int(time.time()))
            ),
        }
        return await test_async_client.post(
            "/api/webhooks/woocommerce-order", content=body, headers=headers
        )

    return _post
