from __future__ import annotations

from decimal import Decimal

import pytest

from storedesk.carriers import DeliveryRequest, ShipmentResult
from storedesk.core.errors import CarrierUnavailable, ConfigurationError, GeographyUnresolved, InvalidTransition
from storedesk.core.normalize import Customer, Order, OrderItem, OrderStatus
from storedesk.services.shipping import ShippingService


class FakeCarrier:
    def __init__(self, fail_with: Exception | None = None):
        self.fail_with = fail_with
        self.requests: list[DeliveryRequest] = []
        self.pickups: list[tuple[list[int], int]] = []

    def create_delivery(self, request: DeliveryRequest) -> ShipmentResult:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        return ShipmentResult(delivery_id=str(1000 + len(self.requests)))

    def request_pickup(self, delivery_ids: list[int], pickup_point_id: int) -> dict:
        self.pickups.append((delivery_ids, pickup_point_id))
        return {"status": 0}


def _store(repository, order_id: str, status: OrderStatus, city: str = "Casablanca", **kwargs) -> Order:  # noqa: ANN001
    order = Order(
        id=order_id,
        order_date="2026-03-01T10:15:00",
        status=status,
        customer=Customer(
            name="Amina Alaoui",
            phone="661753535",
            address="12 Rue Ibnou Mounir, Maarif",
            address_raw="12 Rue Ibnou Mounir, Maarif",
            city=city,
            city_raw=city,
        ),
        items=[OrderItem(product_id="wc_11", quantity=2, unit_price=Decimal("150.00"), name="Tajine")],
        total=Decimal("300.00"),
        external_ref=f"woocommerce:{order_id}",
        **kwargs,
    )
    repository.create_order(order)
    return order


def _service(settings, repository, city_cache, test_logger, carrier) -> ShippingService:  # noqa: ANN001
    return ShippingService(settings, repository, city_cache, test_logger, client=carrier)


def test_ship_confirmed_order(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "A1", OrderStatus.SALES_ORDER)
    carrier = FakeCarrier()

    outcome = _service(settings, repository, city_cache, test_logger, carrier).ship_order("A1")

    assert outcome.success is True
    assert outcome.tracking_code == "LD000001001"
    stored = repository.get_order("A1")
    assert stored.status == OrderStatus.SHIPPED
    assert stored.shipping_id == "1001"
    assert carrier.requests[0].pickup_location_id == 12
    assert carrier.requests[0].reference == "A1"


def test_pending_order_cannot_ship(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "A2", OrderStatus.PENDING)
    carrier = FakeCarrier()

    with pytest.raises(InvalidTransition):
        _service(settings, repository, city_cache, test_logger, carrier).ship_order("A2")
    assert carrier.requests == []


def test_carrier_failure_keeps_state_and_logs(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "A3", OrderStatus.SALES_ORDER)
    carrier = FakeCarrier(fail_with=CarrierUnavailable("timeout"))

    outcome = _service(settings, repository, city_cache, test_logger, carrier).ship_order("A3")

    assert outcome.success is False
    stored = repository.get_order("A3")
    assert stored.status == OrderStatus.SALES_ORDER
    assert stored.shipping_id is None
    assert stored.logs[-1].type == "shipment_failed"


def test_unresolved_city_blocks_shipment(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "A4", OrderStatus.SALES_ORDER, city="Xyzzyville", geo_unresolved=True)
    carrier = FakeCarrier()

    with pytest.raises(GeographyUnresolved):
        _service(settings, repository, city_cache, test_logger, carrier).ship_order("A4")
    assert carrier.requests == []


def test_unresolved_city_resolved_on_fresh_snapshot(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "A5", OrderStatus.SALES_ORDER, city="casa blanca", geo_unresolved=True)
    carrier = FakeCarrier()

    outcome = _service(settings, repository, city_cache, test_logger, carrier).ship_order("A5")

    assert outcome.success is True
    assert carrier.requests[0].city == "Casablanca"
    assert repository.get_order("A5").geo_unresolved is False


def test_ship_eligible_and_pickup(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "B1", OrderStatus.SALES_ORDER)
    _store(repository, "B2", OrderStatus.SALES_ORDER, city="Xyzzyville", geo_unresolved=True)
    _store(repository, "B3", OrderStatus.PENDING)
    carrier = FakeCarrier()
    service = _service(settings, repository, city_cache, test_logger, carrier)

    outcomes = {outcome.order_id: outcome for outcome in service.ship_eligible()}

    assert set(outcomes) == {"B1", "B2"}
    assert outcomes["B1"].success is True
    assert outcomes["B2"].success is False

    assert service.request_pickup(["B1"], pickup="Agence Rabat") == 1
    assert carrier.pickups == [([1001], 34)]


def test_unknown_pickup_name_refused_before_carrier_call(settings, repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "C1", OrderStatus.SALES_ORDER)
    carrier = FakeCarrier()
    service = _service(settings, repository, city_cache, test_logger, carrier)

    with pytest.raises(ConfigurationError):
        service.ship_order("C1", pickup="Tanger")
    with pytest.raises(ConfigurationError):
        service.ship_eligible(pickup="Tanger")
    assert carrier.requests == []
    assert repository.get_order("C1").status == OrderStatus.SALES_ORDER
