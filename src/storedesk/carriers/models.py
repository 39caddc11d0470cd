from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from storedesk.core.normalize import utc_now


@dataclass(slots=True)
class CarrierSession:
    token: str
    issued_at: datetime
    expires_at: datetime

    @classmethod
    def issue(cls, token: str, ttl_sec: int) -> CarrierSession:
        issued_at = utc_now()
        return cls(token=token, issued_at=issued_at, expires_at=issued_at + timedelta(seconds=ttl_sec))

    @property
    def expired(self) -> bool:
        return utc_now() >= self.expires_at


@dataclass(slots=True)
class DeliveryRequest:
    reference: str
    recipient: str
    phone: str
    city: str
    sector: str
    address: str
    amount: int
    declared_value: int
    subject: str
    fragile: bool = False
    allow_opening: bool = True
    package_count: int = 1
    payment_type: str = "ESPECES"
    delivery_type: str = "Livraison CRBT"
    range_weight: str = "Entre 1.2 Kg et 5 Kg"
    comment: str = "Livraison standard"
    pickup_location_id: int | None = None

    def to_payload(self) -> dict[str, Any]:
        delivery: dict[str, Any] = {
            "recipient": self.recipient,
            "city": self.city,
            "sector": self.sector,
            "phone": self.phone,
            "amount": str(self.amount),
            "caution": "0",
            "fragile": "1" if self.fragile else "0",
            "declaredValue": str(self.declared_value),
            "address": self.address,
            "nomOrder": self.reference,
            "comment": self.comment,
            "rangeWeight": self.range_weight,
            "subject": self.subject,
            "paymentType": self.payment_type,
            "deliveryType": self.delivery_type,
            "packageCount": str(self.package_count),
            "allowOpening": "1" if self.allow_opening else "0",
        }
        if self.pickup_location_id is not None:
            delivery["pickupPointId"] = self.pickup_location_id
        return {"action": "delivery.api.save", "data": {"context": {"delivery": delivery}}}


@dataclass(slots=True)
class ShipmentResult:
    delivery_id: str
    raw: dict[str, Any] = field(default_factory=dict)
