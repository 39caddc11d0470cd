from __future__ import annotations

import logging
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from storedesk.core.dedupe import build_external_ref, import_log_message, normalize_order_date
from storedesk.core.errors import MalformedEvent
from storedesk.core.geography import resolve_city
from storedesk.core.geography.resolver import DEFAULT_THRESHOLD
from storedesk.core.normalize import (
    TOTAL_TOLERANCE,
    CityReference,
    Customer,
    Order,
    OrderItem,
    OrderStatus,
    to_money,
)
from storedesk.sources.models import WooAddress, WooLineItem, WooOrderPayload

from .utils import normalize_moroccan_phone, parse_money, single_line

TAX_ID_META_KEYS = ("_billing_ice", "billing_ice", "_billing_tax_id", "billing_tax_id", "_billing_vat")
COMPLETED_STATUSES = {"completed"}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_address(raw: Any) -> WooAddress:
    if not isinstance(raw, dict):
        return WooAddress()
    return WooAddress(**{item.name: _text(raw.get(item.name)) for item in fields(WooAddress)})


def _quantity(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not number.is_finite() or number != number.to_integral_value() or number <= 0:
        return None
    return int(number)


def _parse_line_item(raw: Any, index: int) -> WooLineItem | str:
    """Возвращает позицию или причину, по которой её пропускают."""
    if not isinstance(raw, dict):
        return f"line_items[{index}] is not an object"
    quantity = _quantity(raw.get("quantity"))
    if quantity is None:
        return f"line_items[{index}] has invalid quantity {raw.get('quantity')!r}"

    product_id = _text(raw.get("product_id")) or _text(raw.get("variation_id"))
    return WooLineItem(
        product_id=product_id,
        name=_text(raw.get("name")),
        quantity=quantity,
        price=_text(raw.get("price")) or None,
        subtotal=_text(raw.get("subtotal")) or None,
        total=_text(raw.get("total")) or None,
        sku=_text(raw.get("sku")) or None,
    )


def parse_woocommerce_order(data: Any) -> WooOrderPayload:
    """
    Единственная проверка формы payload. Пинги вебхука и события без id
    или billing дают MalformedEvent: их подтверждают и отбрасывают.
    """
    if not isinstance(data, dict):
        raise MalformedEvent("Payload is not a JSON object")
    external_id = _text(data.get("id"))
    if not external_id or external_id == "0":
        raise MalformedEvent("Payload has no order id")
    if not isinstance(data.get("billing"), dict):
        raise MalformedEvent(f"Order #{external_id} has no billing block")

    raw_items = data.get("line_items") or []
    if not isinstance(raw_items, list):
        raise MalformedEvent(f"Order #{external_id} line_items is not a list")

    shipping = _parse_address(data.get("shipping")) if isinstance(data.get("shipping"), dict) else None
    meta = {
        _text(entry.get("key")): _text(entry.get("value"))
        for entry in data.get("meta_data") or []
        if isinstance(entry, dict) and entry.get("key")
    }

    line_items: list[WooLineItem] = []
    invalid_items: list[str] = []
    for index, raw_item in enumerate(raw_items):
        parsed = _parse_line_item(raw_item, index)
        if isinstance(parsed, WooLineItem):
            line_items.append(parsed)
        else:
            invalid_items.append(parsed)

    return WooOrderPayload(
        id=external_id,
        status=_text(data.get("status")).lower(),
        total=_text(data.get("total")) or "0",
        date_created=_text(data.get("date_created")),
        billing=_parse_address(data["billing"]),
        shipping=shipping,
        line_items=line_items,
        invalid_items=invalid_items,
        currency=_text(data.get("currency")) or None,
        payment_method_title=_text(data.get("payment_method_title")) or None,
        shipping_total=_text(data.get("shipping_total")) or None,
        meta=meta,
    )


def payload_order_date(payload: WooOrderPayload) -> str:
    try:
        return normalize_order_date(payload.date_created)
    except (ValueError, OverflowError) as exc:
        raise MalformedEvent(f"Order #{payload.id} has invalid date_created {payload.date_created!r}") from exc


def payload_total(payload: WooOrderPayload) -> Decimal:
    total = parse_money(payload.total)
    if total is None:
        raise MalformedEvent(f"Order #{payload.id} has invalid total {payload.total!r}")
    return total


def _unit_price(item: WooLineItem) -> Decimal:
    price = parse_money(item.price)
    if price is not None:
        return price
    subtotal = parse_money(item.subtotal) or parse_money(item.total)
    if subtotal is None:
        return Decimal("0.00")
    return to_money(subtotal / item.quantity)


def _delivery_block(payload: WooOrderPayload) -> WooAddress:
    if payload.shipping is not None and not payload.shipping.is_empty:
        return payload.shipping
    return payload.billing


def normalize_order(
    payload: WooOrderPayload,
    cities: Iterable[CityReference],
    *,
    order_id: str,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> Order:
    logger = logger or logging.getLogger(__name__)
    delivery = _delivery_block(payload)

    raw_city = delivery.city or payload.billing.city or delivery.state or payload.billing.state
    address_text = " ".join(
        part
        for part in [delivery.street, payload.billing.street if delivery is not payload.billing else ""]
        if part
    )
    resolution = resolve_city(raw_city, cities, address=address_text, threshold=threshold)

    items = [
        OrderItem(
            product_id=f"wc_{item.product_id}" if item.product_id else "wc_unknown",
            quantity=item.quantity,
            unit_price=_unit_price(item),
            name=item.name or None,
            sku=item.sku,
        )
        for item in payload.line_items
    ]

    customer = Customer(
        name=payload.billing.full_name or delivery.full_name or "Client",
        phone=normalize_moroccan_phone(payload.billing.phone or delivery.phone),
        email=payload.billing.email,
        address=single_line(delivery.street),
        city=resolution.city,
        sector=resolution.sector,
        city_raw=raw_city,
        address_raw=delivery.street,
        country=delivery.country or payload.billing.country or None,
        state=delivery.state or payload.billing.state or None,
    )

    order = Order(
        id=order_id,
        order_date=payload_order_date(payload),
        status=OrderStatus.SALES_ORDER if payload.status in COMPLETED_STATUSES else OrderStatus.PENDING,
        customer=customer,
        items=items,
        total=payload_total(payload),
        currency=payload.currency,
        payment_type=payload.payment_method_title,
        company_name=payload.billing.company or None,
        tax_id=next((payload.meta[key] for key in TAX_ID_META_KEYS if payload.meta.get(key)), None),
        geo_unresolved=not resolution.resolved,
        external_ref=build_external_ref(payload.id),
    )
    order.add_log("import", import_log_message(payload.id))

    for reason in payload.invalid_items:
        logger.warning("Order #%s: skipped %s", payload.id, reason)
        order.add_log("line_item_invalid", f"Skipped {reason}")

    shipping_total = parse_money(payload.shipping_total) or Decimal("0.00")
    expected = order.items_total + shipping_total
    if abs(order.total - expected) > TOTAL_TOLERANCE:
        logger.warning(
            "Order #%s total %s differs from items %s + shipping %s",
            payload.id,
            order.total,
            order.items_total,
            shipping_total,
        )
        order.add_log(
            "total_mismatch",
            f"Declared total {order.total} differs from items total {order.items_total}"
            f" (shipping {shipping_total})",
        )

    if resolution.resolved:
        if resolution.method != "exact":
            order.add_log("geography", f"City '{raw_city}' resolved to '{resolution.city}' ({resolution.method})")
    else:
        logger.warning("Order #%s city %r is not resolved, manual geography needed", payload.id, raw_city)
        order.add_log("geography", f"City '{raw_city}' not found in carrier reference, manual resolution needed")

    return order
