from .models import (
    TOTAL_TOLERANCE,
    CityReference,
    CitySnapshot,
    Customer,
    LogEntry,
    Order,
    OrderItem,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    to_money,
    utc_now,
)

__all__ = [
    "TOTAL_TOLERANCE",
    "CityReference",
    "CitySnapshot",
    "Customer",
    "LogEntry",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "PurchaseOrderStatus",
    "to_money",
    "utc_now",
]
