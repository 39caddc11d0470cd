from __future__ import annotations

import json
import threading

import pytest

from storedesk.core.errors import AuthenticationFailure
from storedesk.core.security import compute_signature
from storedesk.services.ingest import IngestionService


@pytest.fixture()
def service(settings, repository, city_cache, test_logger) -> IngestionService:  # noqa: ANN001
    return IngestionService(settings, repository, city_cache, test_logger)


def _signed(data) -> tuple[bytes, str]:  # noqa: ANN001
    body = json.dumps(data).encode("utf-8")
    return body, compute_signature(body, "wc-test-secret")


def _count(repository, table: str) -> int:  # noqa: ANN001
    return repository.connection.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()["cnt"]


def test_replayed_webhook_creates_one_order(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order())

    results = [service.handle_webhook(body, signature) for _ in range(3)]

    assert [r.outcome for r in results] == ["created", "duplicate", "duplicate"]
    assert {r.order_id for r in results} == {results[0].order_id}
    assert _count(repository, "orders") == 1
    assert _count(repository, "order_items") == 2


def test_concurrent_deliveries_create_one_order(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order(id=555))
    outcomes: list[str] = []

    def deliver() -> None:
        outcomes.append(service.handle_webhook(body, signature).outcome)

    threads = [threading.Thread(target=deliver) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("created") == 1
    assert outcomes.count("duplicate") == 7
    assert _count(repository, "orders") == 1


def test_tampered_body_rejected_without_side_effects(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order())
    tampered = body.replace(b"Amina", b"Amine")

    with pytest.raises(AuthenticationFailure):
        service.handle_webhook(tampered, signature)
    assert _count(repository, "orders") == 0


def test_missing_billing_acknowledged_without_order(service, repository, make_order) -> None:  # noqa: ANN001
    data = make_order()
    del data["billing"]
    body, signature = _signed(data)

    result = service.handle_webhook(body, signature)

    assert result.outcome == "ignored"
    assert _count(repository, "orders") == 0


def test_webhook_ping_ignored(service, repository) -> None:  # noqa: ANN001
    body = b"webhook_id=12"
    result = service.handle_webhook(body, compute_signature(body, "wc-test-secret"))

    assert result.outcome == "ignored"


def test_total_mismatch_order_still_stored(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order(total="999.00"))

    result = service.handle_webhook(body, signature)
    order = repository.get_order(result.order_id)

    assert str(order.total) == "999.00"
    assert "total_mismatch" in [log.type for log in order.logs]


def test_unresolved_city_stored_with_flag(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order(billing={"city": "Xyzzyville"}))

    order = repository.get_order(service.handle_webhook(body, signature).order_id)

    assert order.geo_unresolved is True
    assert order.customer.city == "Xyzzyville"


def test_pull_sync_uses_same_guard(service, repository, make_order) -> None:  # noqa: ANN001
    class FakeWooClient:
        def fetch_orders(self, after=None, before=None, status=None):  # noqa: ANN001, ANN202
            return [make_order(id=1), make_order(id=2, date_created="2026-03-02T08:00:00"), make_order(id=1)]

    stats = service.sync(since=None, correlation_id="sync-test-1", client=FakeWooClient())

    assert stats["fetched"] == 3
    assert stats["created"] == 2
    assert stats["duplicate"] == 1
    run = repository.connection.execute(
        "SELECT status FROM sync_runs WHERE correlation_id = ?", ("sync-test-1",)
    ).fetchone()
    assert run["status"] == "success"


def test_bad_line_item_does_not_drop_order(service, repository, make_order) -> None:  # noqa: ANN001
    data = make_order(
        line_items=[
            {"product_id": 11, "name": "Tajine", "quantity": 2, "price": "150.00"},
            {"product_id": 12, "name": "Argan oil", "quantity": 0, "price": "0"},
        ]
    )

    result = service.ingest_payload(data)
    order = repository.get_order(result.order_id)

    assert result.outcome == "created"
    assert [item.quantity for item in order.items] == [2]
    assert "line_item_invalid" in [log.type for log in order.logs]


def test_nan_total_acknowledged_as_ignored(service, repository, make_order) -> None:  # noqa: ANN001
    body, signature = _signed(make_order(total="NaN"))

    result = service.handle_webhook(body, signature)

    assert result.outcome == "ignored"
    assert _count(repository, "orders") == 0
