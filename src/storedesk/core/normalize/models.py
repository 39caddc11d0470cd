from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

CENTS = Decimal("0.01")
TOTAL_TOLERANCE = Decimal("0.01")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    NO_REPLY = "no_reply"
    SALES_ORDER = "sales_order"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELED = "canceled"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    RECEIVED = "received"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value: str) -> PurchaseOrderStatus:
        # "in_progress" хранился старыми версиями вместо "sent"
        if value == "in_progress":
            return cls.SENT
        return cls(value)


@dataclass(slots=True)
class LogEntry:
    type: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)
    user: str = "System"


@dataclass(slots=True)
class Customer:
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""
    city: str = ""
    sector: str | None = None
    city_raw: str = ""
    address_raw: str = ""
    country: str | None = None
    state: str | None = None


@dataclass(slots=True)
class OrderItem:
    product_id: str
    quantity: int
    unit_price: Decimal
    name: str | None = None
    sku: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


@dataclass(slots=True)
class Order:
    id: str
    order_date: str
    status: OrderStatus
    customer: Customer
    items: list[OrderItem] = field(default_factory=list)
    total: Decimal = Decimal("0.00")
    currency: str | None = None
    payment_type: str | None = None
    company_name: str | None = None
    tax_id: str | None = None
    shipping_id: str | None = None
    invoice_date: datetime | None = None
    invoice_downloaded: bool = False
    fragile: bool = False
    allow_opening: bool = True
    package_count: int = 1
    geo_unresolved: bool = False
    external_ref: str | None = None
    logs: list[LogEntry] = field(default_factory=list)

    @property
    def items_total(self) -> Decimal:
        return to_money(sum((item.subtotal for item in self.items), Decimal("0")))

    def add_log(self, type_: str, message: str, user: str = "System") -> LogEntry:
        entry = LogEntry(type=type_, message=message, user=user)
        self.logs.append(entry)
        return entry


@dataclass(slots=True)
class PurchaseOrderItem:
    product_id: str
    quantity: int
    buy_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.buy_price * self.quantity)


@dataclass(slots=True)
class PurchaseOrder:
    id: str
    supplier_id: str
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    supplier_name: str | None = None
    items: list[PurchaseOrderItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    logs: list[LogEntry] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return to_money(sum((item.subtotal for item in self.items), Decimal("0")))

    def add_log(self, type_: str, message: str, user: str = "System") -> LogEntry:
        entry = LogEntry(type=type_, message=message, user=user)
        self.logs.append(entry)
        return entry


@dataclass(frozen=True, slots=True)
class CityReference:
    id: str
    name: str
    sectors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CitySnapshot:
    cities: tuple[CityReference, ...]
    fetched_at: datetime | None = None

    def __len__(self) -> int:
        return len(self.cities)
