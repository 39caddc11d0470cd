from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from storedesk.carriers.models import DeliveryRequest
from storedesk.core.normalize import Order
from storedesk.parsers.utils import carrier_phone, single_line

DEFAULT_SECTOR = "Autre"
FALLBACK_PHONE = "0600000000"
ADDRESS_LIMIT = 200


def _whole_dirhams(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_subject(order: Order) -> str:
    parts = [f"{item.quantity}x {item.name or item.product_id}" for item in order.items]
    subject = ", ".join(parts) or f"Order #{order.id} - {order.customer.name}"
    return subject[:250]


def build_delivery_request(order: Order, pickup_location_id: int | None = None) -> DeliveryRequest:
    customer = order.customer
    address = single_line(customer.address or customer.address_raw or customer.city or "A domicile", ADDRESS_LIMIT)
    return DeliveryRequest(
        reference=order.id,
        recipient=(customer.name or "Client").strip(),
        phone=carrier_phone(customer.phone) or FALLBACK_PHONE,
        city=customer.city.strip(),
        sector=(customer.sector or DEFAULT_SECTOR).strip(),
        address=address,
        amount=_whole_dirhams(order.total),
        declared_value=_whole_dirhams(order.total),
        subject=build_subject(order),
        fragile=order.fragile,
        allow_opening=order.allow_opening,
        package_count=order.package_count,
        payment_type="ESPECES",
        pickup_location_id=pickup_location_id,
    )
