import json
from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from order_intake.core.clock import as_utc
from order_intake.core.errors import MalformedPayload
from order_intake.core.models import (
    Address,
    CamelModel,
    CustomerSnapshot,
    EmergencyContact,
    Money,
    Order,
    OrderSource,
    OrderStatusEnum,
    PaymentSnapshot,
    RentalSnapshot,
)


class PayloadModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class PayloadOrder(PayloadModel):
    order_id: str = Field(min_length=1)
    order_number: str | None = None
    order_date: datetime
    order_status: str | None = None
    order_url: str | None = None


class PayloadAddress(PayloadModel):
    street: str | None = None
    house_number: str | None = None
    city: str | None = None
    country: str | None = None
    postcode: str | None = None


class PayloadEmergencyContact(PayloadModel):
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    email: str | None = None
    relationship: str | None = None


class PayloadCustomer(PayloadModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    id_passport: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    address: PayloadAddress | None = None
    invoice_name: str | None = None
    company_id: str | None = None
    emergency_contacts: list[PayloadEmergencyContact] | None = None


class PayloadRental(PayloadModel):
    start_date: str | None = None
    end_date: str | None = None
    travel_destination: str | None = None
    device_count: int | None = None
    duration: int | None = None


class PayloadPayment(PayloadModel):
    method: str | None = None
    method_id: str | None = None
    status: str | None = None
    total: Money | None = None
    currency: str | None = None
    paid_date: str | None = None


class WooCommercePayload(PayloadModel):
    source: str | None = None
    source_url: str | None = None
    timestamp: str | None = None
    order: PayloadOrder
    customer: PayloadCustomer
    rental: PayloadRental
    payment: PayloadPayment
    metadata: dict[str, Any] | None = None


def decode_body(raw_body: bytes) -> dict[str, Any]:
    try:
        document = json.loads(raw_body)
    except ValueError as e:
        raise MalformedPayload(f"Body is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise MalformedPayload("Body must be a JSON object")
    return document


def parse_payload(document: dict[str, Any]) -> WooCommercePayload:
    try:
        return WooCommercePayload.model_validate(document)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid order payload: {e}") from e


def _contact_name(contact: PayloadEmergencyContact) -> str:
    return f"{contact.first_name} {contact.last_name}".strip()


def build_order(payload: WooCommercePayload, raw_payload: dict[str, Any]) -> Order:
    """Map a validated shop payload onto a fresh ``Order``.

    The rental's estimated amount is the payment total; the shop sends no
    separate rental price.
    """
    customer = payload.customer
    address = (
        Address(**customer.address.model_dump()) if customer.address else None
    )
    contacts = [
        EmergencyContact(
            name=_contact_name(contact),
            relationship=contact.relationship,
            phone=contact.phone,
            email=contact.email,
        )
        for contact in customer.emergency_contacts or []
    ]

    return Order(
        id=payload.order.order_id,
        order_number=payload.order.order_number,
        source=OrderSource.WEBSITE,
        status=OrderStatusEnum.NEW,
        created_at=as_utc(payload.order.order_date),
        customer=CustomerSnapshot(
            first_name=customer.first_name,
            last_name=customer.last_name,
            email=customer.email,
            phone=customer.phone,
            id_passport=customer.id_passport,
            date_of_birth=customer.date_of_birth,
            gender=customer.gender,
            address=address,
            emergency_contacts=contacts,
        ),
        rental=RentalSnapshot(
            start_date=payload.rental.start_date,
            end_date=payload.rental.end_date,
            duration=payload.rental.duration,
            device_count=payload.rental.device_count,
            travel_destination=payload.rental.travel_destination,
            estimated_amount=payload.payment.total,
        ),
        payment=PaymentSnapshot(
            method=payload.payment.method,
            status=payload.payment.status,
            amount=payload.payment.total,
            currency=payload.payment.currency,
            paid_date=payload.payment.paid_date,
        ),
        metadata=payload.metadata or {},
        raw_payload=raw_payload,
    )


def transform_payload(raw_body: bytes) -> Order:
    document = decode_body(raw_body)
    return build_order(parse_payload(document), raw_payload=document)
