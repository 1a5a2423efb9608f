import asyncio
import json
from decimal import Decimal

import pytest

from order_intake.application.receive_webhook_order import ReceiveWebhookOrderUseCase
from order_intake.core.errors import (
    AuthenticationFailure,
    MalformedPayload,
    ReplayRejected,
)
from order_intake.core.models import (
    DeliveryStatusEnum,
    EventTypeEnum,
    OrderStatusEnum,
)
from order_intake.core.signature import WebhookVerifier
from order_intake.infrastructure.unit_of_work import UnitOfWork

SECRET = "use-case-secret"
NOW = 1_792_396_800


@pytest.fixture
def verifier() -> WebhookVerifier:
    return WebhookVerifier(SECRET, tolerance_seconds=300, clock=lambda: NOW)


@pytest.fixture
def receive_order(
    unit_of_work: UnitOfWork, verifier: WebhookVerifier
) -> ReceiveWebhookOrderUseCase:
    return ReceiveWebhookOrderUseCase(unit_of_work=unit_of_work, verifier=verifier)


def _body(payload: dict) -> bytes:
    return json.dumps(payload).encode("utf-8")


class TestReceiveWebhookOrderUseCase:
    @pytest.mark.asyncio
    async def test_stores_verified_order(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        body = _body(payload_factory())

        # When
        order = await receive_order(body, verifier.sign(body), str(NOW))

        # Then
        assert order.status == OrderStatusEnum.NEW
        async with unit_of_work() as uow:
            assert await uow.orders.get_by_id(order.id) == order

    @pytest.mark.asyncio
    async def test_redelivery_replaces_order(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        payload = payload_factory()
        payload["order"]["orderId"] = "W-100"
        first = _body(payload)
        payload["payment"]["total"] = 300
        second = _body(payload)

        # When
        await receive_order(first, verifier.sign(first), str(NOW))
        await receive_order(first, verifier.sign(first), str(NOW))
        order = await receive_order(second, verifier.sign(second), str(NOW))

        # Then
        async with unit_of_work() as uow:
            orders = await uow.orders.list_all()
        assert [o.id for o in orders] == ["W-100"]
        assert order.rental.estimated_amount == Decimal("300")

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_store_one_order(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given the shop retrying before the first delivery finished
        payload = payload_factory()
        payload["order"]["orderId"] = "W-200"
        body = _body(payload)

        # When
        orders = await asyncio.gather(
            *(receive_order(body, verifier.sign(body), str(NOW)) for _ in range(5))
        )

        # Then
        assert {o.id for o in orders} == {"W-200"}
        async with unit_of_work() as uow:
            stored = await uow.orders.list_all()
            events = await uow.outbox.get_pending_events()
        assert [o.id for o in stored] == ["W-200"]
        assert [e.payload["replaced"] for e in events].count(False) == 1

    @pytest.mark.asyncio
    async def test_records_event_and_delivery(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        body = _body(payload_factory())

        # When
        order = await receive_order(body, verifier.sign(body), str(NOW))

        # Then
        async with unit_of_work() as uow:
            [event] = await uow.outbox.get_pending_events()
            [delivery] = await uow.deliveries.list_recent()
        assert event.event_type == EventTypeEnum.ORDER_RECEIVED
        assert event.payload["orderId"] == order.id
        assert event.payload["replaced"] is False
        assert delivery.order_id == order.id
        assert delivery.status == DeliveryStatusEnum.PROCESSED
        assert delivery.response_status == 200

    @pytest.mark.asyncio
    async def test_forged_delivery_leaves_store_untouched(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        body = _body(payload_factory())

        # When
        with pytest.raises(AuthenticationFailure):
            await receive_order(body, "0" * 64, str(NOW))

        # Then
        async with unit_of_work() as uow:
            assert await uow.orders.list_all() == []
            assert await uow.deliveries.list_recent() == []

    @pytest.mark.asyncio
    async def test_replayed_delivery_leaves_store_untouched(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        body = _body(payload_factory())

        # When
        with pytest.raises(ReplayRejected):
            await receive_order(body, verifier.sign(body), str(NOW - 301))

        # Then
        async with unit_of_work() as uow:
            assert await uow.orders.list_all() == []

    @pytest.mark.asyncio
    async def test_unconfigured_secret_rejects_everything(
        self, unit_of_work: UnitOfWork, payload_factory
    ):
        # Given
        use_case = ReceiveWebhookOrderUseCase(
            unit_of_work=unit_of_work,
            verifier=WebhookVerifier(None, clock=lambda: NOW),
        )
        body = _body(payload_factory())

        # Then
        with pytest.raises(AuthenticationFailure):
            await use_case(body, WebhookVerifier(SECRET).sign(body), str(NOW))
        async with unit_of_work() as uow:
            assert await uow.orders.list_all() == []

    @pytest.mark.asyncio
    async def test_malformed_payload_records_failed_delivery(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
        payload_factory,
    ):
        # Given
        payload = payload_factory()
        payload["order"]["orderId"] = "W-BAD"
        del payload["customer"]
        body = _body(payload)

        # When
        with pytest.raises(MalformedPayload):
            await receive_order(body, verifier.sign(body), str(NOW))

        # Then
        async with unit_of_work() as uow:
            assert await uow.orders.list_all() == []
            [delivery] = await uow.deliveries.list_recent()
        assert delivery.status == DeliveryStatusEnum.FAILED
        assert delivery.order_id == "W-BAD"
        assert delivery.response_status == 500
        assert delivery.error_message

    @pytest.mark.asyncio
    async def test_non_json_body_records_failed_delivery(
        self,
        receive_order: ReceiveWebhookOrderUseCase,
        verifier: WebhookVerifier,
        unit_of_work: UnitOfWork,
    ):
        # Given
        body = b"<html>not an order</html>"

        # When
        with pytest.raises(MalformedPayload):
            await receive_order(body, verifier.sign(body), str(NOW))

        # Then
        async with unit_of_work() as uow:
            [delivery] = await uow.deliveries.list_recent()
        assert delivery.order_id is None
        assert delivery.status == DeliveryStatusEnum.FAILED
