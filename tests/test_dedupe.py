from __future__ import annotations

import threading
import time
from decimal import Decimal

from storedesk.core.dedupe import (
    IdempotencyGuard,
    build_external_ref,
    import_log_message,
    import_marker,
    normalize_order_date,
)
from storedesk.core.normalize import Customer, Order, OrderStatus


def _order(order_id: str, external_id: str | None, order_date: str, total: str) -> Order:
    order = Order(
        id=order_id,
        order_date=order_date,
        status=OrderStatus.PENDING,
        customer=Customer(name="Test"),
        total=Decimal(total),
        external_ref=build_external_ref(external_id) if external_id else None,
    )
    if external_id:
        order.add_log("import", import_log_message(external_id))
    return order


def test_marker_does_not_match_longer_ids() -> None:
    assert import_marker(12) == "(Order #12)"
    assert import_marker(12) not in import_log_message(123)


def test_order_date_normalized_to_iso() -> None:
    assert normalize_order_date("2026-03-01T10:15:00") == "2026-03-01T10:15:00"
    assert normalize_order_date("2026-03-01 10:15:00+00:00") == "2026-03-01T10:15:00+00:00"
    assert normalize_order_date(None) == ""


def test_duplicate_found_by_external_ref(repository) -> None:  # noqa: ANN001
    repository.create_order(_order("AAA111", "1001", "2026-03-01T10:15:00", "325.00"))
    guard = IdempotencyGuard(repository)

    match = guard.find_duplicate("1001", "2026-04-01T00:00:00", Decimal("1.00"))

    assert match is not None
    assert match.order_id == "AAA111"
    assert match.reason == "external_ref"


def test_duplicate_found_by_log_marker_of_legacy_order(repository) -> None:  # noqa: ANN001
    legacy = _order("LEG001", None, "2026-01-01T09:00:00", "50.00")
    legacy.add_log("import", import_log_message(77))
    repository.create_order(legacy)

    match = IdempotencyGuard(repository).find_duplicate("77", "2026-05-05T00:00:00", Decimal("10.00"))

    assert match is not None
    assert match.reason == "log_marker"
    assert IdempotencyGuard(repository).find_duplicate("7", "2026-05-05T00:00:00", Decimal("10.00")) is None


def test_date_total_fallback_merges_distinct_orders(repository) -> None:  # noqa: ANN001
    repository.create_order(_order("MAN001", None, "2026-03-01T10:15:00", "325.00"))

    match = IdempotencyGuard(repository).find_duplicate("2002", "2026-03-01T10:15:00", Decimal("325.00"))

    assert match is not None
    assert match.reason == "date_total"


def test_hold_serializes_same_key_only(repository) -> None:  # noqa: ANN001
    guard = IdempotencyGuard(repository)
    active: list[str] = []
    overlaps: list[str] = []
    lock = threading.Lock()

    def work(key: str) -> None:
        with guard.hold(key):
            with lock:
                if key in active:
                    overlaps.append(key)
                active.append(key)
            time.sleep(0.01)
            with lock:
                active.remove(key)

    threads = [threading.Thread(target=work, args=(key,)) for key in ["1", "1", "1", "2", "2"]]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
    assert guard._locks == {}  # noqa: SLF001
