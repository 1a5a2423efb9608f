import logging
from http import HTTPStatus

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import Field

from order_intake.application.cancel_order import CancelOrderUseCase
from order_intake.application.container import ApplicationContainer
from order_intake.application.order_queries import OrderQueries
from order_intake.application.receive_webhook_order import ReceiveWebhookOrderUseCase
from order_intake.application.update_order_status import UpdateOrderStatusUseCase
from order_intake.core.errors import (
    AuthenticationFailure,
    MalformedPayload,
    OrderNotFound,
    ReplayRejected,
)
from order_intake.core.models import (
    CamelModel,
    DeliveryStatusEnum,
    Order,
    OrderStats,
    OrderStatusEnum,
    WebhookDelivery,
)
from order_intake.core.signature import WebhookVerifier

logger = logging.getLogger(__name__)

WEBHOOKS_PREFIX = "/api/webhooks"

router = APIRouter(prefix=WEBHOOKS_PREFIX, tags=["webhooks"])


class WebhookAcceptedResponse(CamelModel):
    success: bool = True
    message: str
    order_id: str


class OrderStatusUpdateRequest(CamelModel):
    status: OrderStatusEnum
    rental_id: str | None = None


class OrderUpdatedResponse(CamelModel):
    success: bool = True
    message: str
    order: Order


class OrderCancelRequest(CamelModel):
    reason: str = Field(min_length=1)


class OrderCancelledResponse(CamelModel):
    success: bool = True
    message: str


class WebhookTestResponse(CamelModel):
    status: str
    endpoint: str
    configured: bool
    message: str


def _error(status_code: HTTPStatus, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        content={"error": error, "message": message}, status_code=status_code
    )


def _order_not_found(order_id: str) -> JSONResponse:
    return _error(
        HTTPStatus.NOT_FOUND, "Order not found", f"Order {order_id} does not exist"
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.warning(f"Rejected request to {request.url.path}: {details}")
    return _error(HTTPStatus.UNPROCESSABLE_ENTITY, "Validation error", details)


@router.post(
    "/woocommerce-order",
    status_code=HTTPStatus.OK,
    response_model=WebhookAcceptedResponse,
)
@inject
async def receive_woocommerce_order(
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
    x_webhook_timestamp: str | None = Header(default=None),
    receive_order_use_case: ReceiveWebhookOrderUseCase = Depends(
        Provide[ApplicationContainer.receive_webhook_order_use_case]
    ),
):
    # Signed bytes exactly as sent; the body is parsed only after verification.
    raw_body = await request.body()
    logger.info(f"Received WooCommerce order webhook, timestamp={x_webhook_timestamp}")

    try:
        order = await receive_order_use_case(
            raw_body=raw_body,
            signature=x_webhook_signature,
            timestamp=x_webhook_timestamp,
        )
    except AuthenticationFailure as e:
        logger.warning(f"Rejected webhook: {e}")
        return _error(
            HTTPStatus.UNAUTHORIZED,
            "Invalid signature",
            "Webhook signature verification failed",
        )
    except ReplayRejected as e:
        logger.warning(f"Rejected webhook: {e}")
        return _error(
            HTTPStatus.UNAUTHORIZED,
            "Timestamp expired",
            "Webhook timestamp is too old (replay attack prevention)",
        )
    except MalformedPayload as e:
        logger.error(f"Malformed webhook payload: {e}")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to process webhook",
        )
    except Exception:
        logger.exception("Error processing webhook")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to process webhook",
        )

    return WebhookAcceptedResponse(
        message="Order received successfully", order_id=order.id
    )


@router.get(
    "/orders",
    status_code=HTTPStatus.OK,
    response_model=list[Order],
)
@inject
async def list_orders(
    status: OrderStatusEnum | None = None,
    order_queries: OrderQueries = Depends(Provide[ApplicationContainer.order_queries]),
):
    try:
        orders = await order_queries.list_orders(status=status)
    except Exception:
        logger.exception("Error fetching orders")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to fetch orders",
        )

    logger.info(f"GET /orders - returning {len(orders)} orders")
    return orders


@router.get(
    "/orders/{order_id}",
    status_code=HTTPStatus.OK,
    response_model=Order,
)
@inject
async def get_order(
    order_id: str,
    order_queries: OrderQueries = Depends(Provide[ApplicationContainer.order_queries]),
):
    try:
        return await order_queries.get_order(order_id)
    except OrderNotFound:
        return _order_not_found(order_id)
    except Exception:
        logger.exception(f"Error fetching order {order_id}")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to fetch order",
        )


@router.patch(
    "/orders/{order_id}",
    status_code=HTTPStatus.OK,
    response_model=OrderUpdatedResponse,
)
@inject
async def update_order(
    order_id: str,
    update: OrderStatusUpdateRequest,
    update_order_status_use_case: UpdateOrderStatusUseCase = Depends(
        Provide[ApplicationContainer.update_order_status_use_case]
    ),
):
    try:
        order = await update_order_status_use_case(
            order_id, status=update.status, rental_id=update.rental_id
        )
    except OrderNotFound:
        return _order_not_found(order_id)
    except Exception:
        logger.exception(f"Error updating order {order_id}")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to update order",
        )

    return OrderUpdatedResponse(message="Order updated successfully", order=order)


@router.delete(
    "/orders/{order_id}",
    status_code=HTTPStatus.OK,
    response_model=OrderCancelledResponse,
)
@inject
async def cancel_order(
    order_id: str,
    cancel: OrderCancelRequest,
    cancel_order_use_case: CancelOrderUseCase = Depends(
        Provide[ApplicationContainer.cancel_order_use_case]
    ),
):
    try:
        await cancel_order_use_case(order_id, reason=cancel.reason)
    except OrderNotFound:
        return _order_not_found(order_id)
    except Exception:
        logger.exception(f"Error cancelling order {order_id}")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to cancel order",
        )

    return OrderCancelledResponse(message="Order cancelled successfully")


@router.get(
    "/stats",
    status_code=HTTPStatus.OK,
    response_model=OrderStats,
)
@inject
async def get_stats(
    order_queries: OrderQueries = Depends(Provide[ApplicationContainer.order_queries]),
):
    try:
        return await order_queries.stats()
    except Exception:
        logger.exception("Error fetching stats")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to fetch stats",
        )


@router.get(
    "/deliveries",
    status_code=HTTPStatus.OK,
    response_model=list[WebhookDelivery],
)
@inject
async def list_deliveries(
    status: DeliveryStatusEnum | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    order_queries: OrderQueries = Depends(Provide[ApplicationContainer.order_queries]),
):
    try:
        return await order_queries.list_deliveries(status=status, limit=limit)
    except Exception:
        logger.exception("Error fetching webhook deliveries")
        return _error(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            "Internal server error",
            "Failed to fetch webhook deliveries",
        )


@router.get(
    "/test",
    status_code=HTTPStatus.OK,
    response_model=WebhookTestResponse,
)
@inject
async def check_webhook_endpoint(
    verifier: WebhookVerifier = Depends(Provide[ApplicationContainer.webhook_verifier]),
):
    return WebhookTestResponse(
        status="ok",
        endpoint=WEBHOOKS_PREFIX,
        configured=verifier.is_configured,
        message="Webhook endpoint is operational",
    )
