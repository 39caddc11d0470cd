from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class WooAddress:
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""
    email: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def street(self) -> str:
        return f"{self.address_1} {self.address_2}".strip()

    @property
    def is_empty(self) -> bool:
        return not (self.address_1 or self.address_2 or self.city or self.state)


@dataclass(slots=True)
class WooLineItem:
    product_id: str
    name: str
    quantity: int
    price: str | None = None
    subtotal: str | None = None
    total: str | None = None
    sku: str | None = None


@dataclass(slots=True)
class WooOrderPayload:
    """WooCommerce order after the one-time shape check at the ingestion boundary."""

    id: str
    status: str
    total: str
    date_created: str
    billing: WooAddress
    shipping: WooAddress | None = None
    line_items: list[WooLineItem] = field(default_factory=list)
    currency: str | None = None
    payment_method_title: str | None = None
    shipping_total: str | None = None
    meta: dict[str, str] = field(default_factory=dict)
    invalid_items: list[str] = field(default_factory=list)
