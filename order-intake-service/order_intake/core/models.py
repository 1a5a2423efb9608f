from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    SerializationInfo,
)
from pydantic.alias_generators import to_camel

# Dumping with this context keeps amounts as exact decimal strings.
STORAGE_CONTEXT = {"storage": True}


def _serialize_money(value: Decimal, info: SerializationInfo) -> float | str:
    if info.context and info.context.get("storage"):
        return str(value)
    return float(value)


# Decimal internally, a plain JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(_serialize_money, when_used="json")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderStatusEnum(StrEnum):
    NEW = "new"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderSource(StrEnum):
    WEBSITE = "website"


class Address(CamelModel):
    street: str | None = None
    house_number: str | None = None
    city: str | None = None
    country: str | None = None
    postcode: str | None = None


class EmergencyContact(CamelModel):
    name: str
    relationship: str | None = None
    phone: str | None = None
    email: str | None = None


class CustomerSnapshot(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    id_passport: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    address: Address | None = None
    emergency_contacts: list[EmergencyContact] = Field(default_factory=list)


class RentalSnapshot(CamelModel):
    start_date: str | None = None
    end_date: str | None = None
    duration: int | None = None
    device_count: int | None = None
    travel_destination: str | None = None
    estimated_amount: Money | None = None


class PaymentSnapshot(CamelModel):
    method: str | None = None
    status: str | None = None
    amount: Money | None = None
    currency: str | None = None
    paid_date: str | None = None


class Order(CamelModel):
    id: str
    order_number: str | None = None
    source: OrderSource = OrderSource.WEBSITE
    status: OrderStatusEnum = OrderStatusEnum.NEW
    created_at: datetime
    customer: CustomerSnapshot
    rental: RentalSnapshot
    payment: PaymentSnapshot
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    rental_id: str | None = None
    updated_at: datetime | None = None
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None


class OrderStats(CamelModel):
    total: int
    new: int
    processing: int
    completed: int
    cancelled: int
    last_24_hours: int
    last_7_days: int


class DeliveryStatusEnum(StrEnum):
    PROCESSED = "processed"
    FAILED = "failed"


class WebhookDelivery(CamelModel):
    id: str
    order_id: str | None = None
    event_type: str
    status: DeliveryStatusEnum
    response_status: int
    error_message: str | None = None
    received_at: datetime


class EventTypeEnum(StrEnum):
    ORDER_RECEIVED = "ORDER.RECEIVED"
    ORDER_STATUS_CHANGED = "ORDER.STATUS_CHANGED"
    ORDER_CANCELLED = "ORDER.CANCELLED"


class OutboxEventStatus(StrEnum):
    PENDING = "PENDING"
    SENT = "SENT"


class OutboxEvent(BaseModel):
    id: str
    event_type: EventTypeEnum
    payload: dict
    status: OutboxEventStatus
    created_at: datetime
