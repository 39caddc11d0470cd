from .state import (
    ORDER_TERMINAL,
    ORDER_TRANSITIONS,
    PURCHASE_ORDER_TRANSITIONS,
    allowed_order_actions,
    apply_order_action,
    apply_purchase_order_action,
    can_ship,
    ensure_can_ship,
    mark_invoice_downloaded,
)

__all__ = [
    "ORDER_TERMINAL",
    "ORDER_TRANSITIONS",
    "PURCHASE_ORDER_TRANSITIONS",
    "allowed_order_actions",
    "apply_order_action",
    "apply_purchase_order_action",
    "can_ship",
    "ensure_can_ship",
    "mark_invoice_downloaded",
]
