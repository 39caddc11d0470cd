"""Order and purchase-order lifecycle.

Each action is legal only from the listed source statuses. Illegal actions raise
InvalidTransition before anything on the entity is touched.
"""

from __future__ import annotations

from storedesk.core.errors import InvalidTransition
from storedesk.core.normalize import (
    Order,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderStatus,
    utc_now,
)

S = OrderStatus
P = PurchaseOrderStatus

ORDER_TRANSITIONS: dict[str, tuple[frozenset[OrderStatus], OrderStatus]] = {
    "confirm": (frozenset({S.PENDING, S.NO_REPLY}), S.SALES_ORDER),
    "mark_no_reply": (frozenset({S.PENDING, S.NO_REPLY}), S.NO_REPLY),
    "mark_shipped": (frozenset({S.SALES_ORDER}), S.SHIPPED),
    "mark_delivered": (frozenset({S.SHIPPED}), S.DELIVERED),
    "cancel": (frozenset({S.PENDING, S.NO_REPLY, S.SALES_ORDER, S.SHIPPED}), S.CANCELED),
}

ORDER_TERMINAL = frozenset({S.DELIVERED, S.CANCELED})
INVOICE_STATUSES = frozenset({S.SALES_ORDER, S.SHIPPED, S.DELIVERED})

PURCHASE_ORDER_TRANSITIONS: dict[str, tuple[frozenset[PurchaseOrderStatus], PurchaseOrderStatus]] = {
    "send": (frozenset({P.DRAFT}), P.SENT),
    "receive": (frozenset({P.SENT}), P.RECEIVED),
    "cancel": (frozenset({P.DRAFT, P.SENT}), P.CANCELED),
}

LOG_MESSAGES = {
    "confirm": "Order confirmed",
    "mark_no_reply": "Customer did not answer",
    "mark_shipped": "Shipment created",
    "mark_delivered": "Delivered",
    "cancel": "Order canceled",
}

PURCHASE_ORDER_LOG_MESSAGES = {
    "send": "Purchase order sent to supplier",
    "receive": "Purchase order received",
    "cancel": "Purchase order canceled",
}


def allowed_order_actions(order: Order) -> list[str]:
    actions: list[str] = []
    for name, (sources, _) in ORDER_TRANSITIONS.items():
        if order.status not in sources:
            continue
        if name == "mark_shipped" and not order.shipping_id:
            continue
        actions.append(name)
    if order.status in INVOICE_STATUSES and not order.invoice_downloaded:
        actions.append("mark_invoice_downloaded")
    if can_ship(order):
        actions.append("create_shipment")
    return actions


def can_ship(order: Order) -> bool:
    return order.status == S.SALES_ORDER and not order.shipping_id


def ensure_can_ship(order: Order) -> None:
    if not can_ship(order):
        raise InvalidTransition(order.id, "create_shipment", order.status.value)


def apply_order_action(order: Order, action: str, *, user: str = "System", note: str | None = None) -> bool:
    """
    Применяет действие к заказу. Возвращает False, если заказ уже был
    в целевом состоянии и ничего не изменилось (повторная доставка).
    """
    if action == "mark_delivered" and order.status == S.DELIVERED:
        return False
    if action not in ORDER_TRANSITIONS:
        raise ValueError(f"Unknown order action: {action}")

    sources, target = ORDER_TRANSITIONS[action]
    if order.status not in sources:
        raise InvalidTransition(order.id, action, order.status.value)
    if action == "mark_shipped" and not order.shipping_id:
        raise InvalidTransition(order.id, action, order.status.value)

    previous = order.status
    order.status = target
    message = LOG_MESSAGES[action]
    if note:
        message = f"{message}: {note}"
    order.add_log(action, f"{message} ({previous.value} -> {target.value})", user=user)
    return True


def mark_invoice_downloaded(order: Order, *, user: str = "System") -> bool:
    if order.status not in INVOICE_STATUSES:
        raise InvalidTransition(order.id, "mark_invoice_downloaded", order.status.value)
    if order.invoice_downloaded:
        return False
    order.invoice_downloaded = True
    order.invoice_date = order.invoice_date or utc_now()
    order.add_log("invoice", "Invoice downloaded", user=user)
    return True


def apply_purchase_order_action(purchase_order: PurchaseOrder, action: str, *, user: str = "System") -> None:
    if action not in PURCHASE_ORDER_TRANSITIONS:
        raise ValueError(f"Unknown purchase order action: {action}")
    sources, target = PURCHASE_ORDER_TRANSITIONS[action]
    if purchase_order.status not in sources:
        raise InvalidTransition(purchase_order.id, action, purchase_order.status.value)

    previous = purchase_order.status
    purchase_order.status = target
    message = PURCHASE_ORDER_LOG_MESSAGES[action]
    purchase_order.add_log(action, f"{message} ({previous.value} -> {target.value})", user=user)
