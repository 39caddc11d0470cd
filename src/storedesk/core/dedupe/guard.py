from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal

from storedesk.core.db import StoreRepository

from .keys import build_external_ref, import_marker


@dataclass(slots=True)
class DuplicateMatch:
    order_id: str
    reason: str


class _KeyLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class IdempotencyGuard:
    """
    Prevents a second order from being created for the same external event.

    Inside one process the check-and-create sequence runs under a per-external-id
    lock (`hold`); across processes the UNIQUE `orders.external_ref` column
    rejects the second insert.
    """

    def __init__(self, repository: StoreRepository):
        self.repository = repository
        self._locks: dict[str, _KeyLock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def hold(self, external_id: str) -> Iterator[None]:
        with self._registry_lock:
            key_lock = self._locks.setdefault(external_id, _KeyLock())
            key_lock.holders += 1
        try:
            with key_lock.lock:
                yield
        finally:
            with self._registry_lock:
                key_lock.holders -= 1
                if key_lock.holders == 0:
                    self._locks.pop(external_id, None)

    def find_duplicate(self, external_id: str, order_date: str, total: Decimal) -> DuplicateMatch | None:
        existing = self.repository.find_order_id_by_external_ref(build_external_ref(external_id))
        if existing:
            return DuplicateMatch(order_id=existing, reason="external_ref")

        existing = self.repository.find_order_id_by_log_marker(import_marker(external_id))
        if existing:
            return DuplicateMatch(order_id=existing, reason="log_marker")

        # Legacy fallback for orders entered by hand before the marker existed.
        # Two different orders with the same timestamp and total are merged here.
        if order_date:
            existing = self.repository.find_order_id_by_date_total(order_date, total)
            if existing:
                return DuplicateMatch(order_id=existing, reason="date_total")
        return None
