from __future__ import annotations

from decimal import Decimal

import pytest

from storedesk.core.errors import GeographyUnresolved, InvalidTransition, OrderNotFound
from storedesk.core.normalize import Customer, Order, OrderStatus, PurchaseOrderItem, PurchaseOrderStatus
from storedesk.services import WorkflowService, assign_city, resolve_pending_geography


@pytest.fixture()
def workflow(repository, test_logger) -> WorkflowService:  # noqa: ANN001
    return WorkflowService(repository, test_logger)


def _store(repository, order_id: str, city: str = "Casablanca", unresolved: bool = False) -> None:  # noqa: ANN001
    repository.create_order(
        Order(
            id=order_id,
            order_date="2026-03-01T10:15:00",
            status=OrderStatus.PENDING,
            customer=Customer(name="Amina", city=city, city_raw=city, address_raw="Hay Riad, secteur 5"),
            total=Decimal("100.00"),
            geo_unresolved=unresolved,
        )
    )


def test_order_action_persists_transition(workflow, repository) -> None:  # noqa: ANN001
    _store(repository, "W1")

    workflow.order_action("W1", "confirm", user="agent", note="called back")

    stored = repository.get_order("W1")
    assert stored.status == OrderStatus.SALES_ORDER
    assert stored.logs[-1].message == "Order confirmed: called back (pending -> sales_order)"
    assert stored.logs[-1].user == "agent"


def test_invalid_action_reported_and_not_saved(workflow, repository) -> None:  # noqa: ANN001
    _store(repository, "W2")

    with pytest.raises(InvalidTransition):
        workflow.order_action("W2", "mark_delivered")
    assert repository.get_order("W2").status == OrderStatus.PENDING


def test_missing_order(workflow) -> None:  # noqa: ANN001
    with pytest.raises(OrderNotFound):
        workflow.order_action("NOPE", "confirm")


def test_purchase_order_lifecycle(workflow, repository) -> None:  # noqa: ANN001
    purchase_order = workflow.create_purchase_order(
        "SUP-1",
        [PurchaseOrderItem(product_id="wc_11", quantity=4, buy_price=Decimal("80.00"))],
        supplier_name="Atlas Ceramics",
    )

    workflow.purchase_order_action(purchase_order.id, "send")
    workflow.purchase_order_action(purchase_order.id, "receive")
    with pytest.raises(InvalidTransition):
        workflow.purchase_order_action(purchase_order.id, "cancel")

    stored = repository.get_purchase_order(purchase_order.id)
    assert stored.status == PurchaseOrderStatus.RECEIVED
    assert [log.type for log in stored.logs] == ["create", "send", "receive"]


def test_resolve_pending_geography(repository, city_cache, test_logger) -> None:  # noqa: ANN001
    _store(repository, "G1", city="rabat.", unresolved=True)
    _store(repository, "G2", city="Xyzzyville", unresolved=True)

    assert resolve_pending_geography(repository, city_cache, test_logger) == 1

    stored = repository.get_order("G1")
    assert stored.customer.city == "Rabat"
    assert stored.customer.sector == "Hay Riad"
    assert repository.get_order("G2").geo_unresolved is True


def test_assign_city_manually(repository, city_cache) -> None:  # noqa: ANN001
    _store(repository, "G3", city="Xyzzyville", unresolved=True)

    order = assign_city(repository, city_cache, "G3", "rabat", user="agent")

    assert order.customer.city == "Rabat"
    assert order.geo_unresolved is False
    with pytest.raises(GeographyUnresolved):
        assign_city(repository, city_cache, "G3", "Atlantis")
