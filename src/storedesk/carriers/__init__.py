from .labels import city_code, shipping_id_from_tracking, sort_code, tracking_code
from .models import CarrierSession, DeliveryRequest, ShipmentResult

__all__ = [
    "CarrierSession",
    "DeliveryRequest",
    "ShipmentResult",
    "city_code",
    "shipping_id_from_tracking",
    "sort_code",
    "tracking_code",
]
