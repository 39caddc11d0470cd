from __future__ import annotations

import json
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.dedupe import IdempotencyGuard
from storedesk.core.errors import DuplicateEvent, MalformedEvent
from storedesk.core.geography import CityReferenceCache
from storedesk.core.security import verify_signature
from storedesk.parsers import normalize_order, parse_woocommerce_order, payload_order_date, payload_total
from storedesk.sources.woocommerce import WooCommerceClient

ORDER_ID_ALPHABET = string.digits + string.ascii_uppercase
ORDER_ID_LENGTH = 6
ORDER_ID_ATTEMPTS = 20

CREATED = "created"
DUPLICATE = "duplicate"
IGNORED = "ignored"


@dataclass(slots=True)
class IngestResult:
    outcome: str
    order_id: str | None = None
    external_id: str | None = None
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {"status": self.outcome, "order_id": self.order_id, "message": self.message}


class IngestionService:
    """
    Webhook/pull -> подпись -> проверка дублей -> нормализация -> запись.

    Подпись проверяется до разбора JSON. Повтор события, пинг вебхука и
    payload без billing подтверждаются без создания заказа.
    """

    def __init__(
        self,
        settings: Settings,
        repository: StoreRepository,
        city_cache: CityReferenceCache,
        logger: logging.Logger | logging.LoggerAdapter,
        guard: IdempotencyGuard | None = None,
    ):
        self.settings = settings
        self.repository = repository
        self.city_cache = city_cache
        self.logger = logger
        self.guard = guard or IdempotencyGuard(repository)

    def _new_order_id(self) -> str:
        for _ in range(ORDER_ID_ATTEMPTS):
            candidate = "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(ORDER_ID_LENGTH))
            if not self.repository.order_exists(candidate):
                return candidate
        raise RuntimeError("Could not allocate a free order id")

    def handle_webhook(self, body: bytes, signature: str | None) -> IngestResult:
        verify_signature(body, signature, self.settings.webhook_secret)
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            self.logger.info("Webhook body is not JSON, acknowledged and ignored")
            return IngestResult(outcome=IGNORED, message="Body is not JSON")
        return self.ingest_payload(data)

    def ingest_payload(self, data: Any) -> IngestResult:
        try:
            payload = parse_woocommerce_order(data)
        except MalformedEvent as exc:
            self.logger.info("Event ignored: %s", exc)
            return IngestResult(outcome=IGNORED, message=str(exc))

        with self.guard.hold(payload.id):
            try:
                order_date = payload_order_date(payload)
                total = payload_total(payload)
            except MalformedEvent as exc:
                self.logger.warning("Event ignored: %s", exc)
                return IngestResult(outcome=IGNORED, external_id=payload.id, message=str(exc))

            match = self.guard.find_duplicate(payload.id, order_date, total)
            if match is not None:
                self.logger.info(
                    "Order #%s already imported as %s (%s)",
                    payload.id,
                    match.order_id,
                    match.reason,
                    extra={"external_id": payload.id, "order_id": match.order_id},
                )
                return IngestResult(
                    outcome=DUPLICATE,
                    order_id=match.order_id,
                    external_id=payload.id,
                    message=f"Already imported ({match.reason})",
                )

            order = normalize_order(
                payload,
                self.city_cache.snapshot().cities,
                order_id=self._new_order_id(),
                logger=self.logger,
                threshold=self.settings.city_match_threshold,
            )
            try:
                self.repository.create_order(order)
            except DuplicateEvent as exc:
                self.logger.info("Order #%s inserted concurrently as %s", payload.id, exc.existing_order_id)
                return IngestResult(
                    outcome=DUPLICATE,
                    order_id=exc.existing_order_id,
                    external_id=payload.id,
                    message="Already imported (external_ref)",
                )

        self.logger.info(
            "Order #%s imported as %s, city %r%s",
            payload.id,
            order.id,
            order.customer.city,
            " (unresolved)" if order.geo_unresolved else "",
            extra={"external_id": payload.id, "order_id": order.id},
        )
        return IngestResult(outcome=CREATED, order_id=order.id, external_id=payload.id, message="Order created")

    def sync(
        self,
        *,
        since: datetime | None,
        until: datetime | None = None,
        status: str | None = None,
        correlation_id: str,
        client: WooCommerceClient | None = None,
    ) -> dict[str, Any]:
        """Pull orders from the WooCommerce REST API through the same guard and normalizer."""
        started_at = datetime.now(timezone.utc)
        self.repository.start_sync_run(
            correlation_id=correlation_id, source="woocommerce", started_at=started_at.isoformat()
        )
        stats: dict[str, Any] = {"fetched": 0, CREATED: 0, DUPLICATE: 0, IGNORED: 0, "errors": 0}

        try:
            client = client or WooCommerceClient(
                self.settings.woocommerce,
                timeout_sec=self.settings.woocommerce_timeout_sec,
                max_pages=self.settings.woocommerce_max_pages,
                max_retries=self.settings.woocommerce_max_retries,
                logger=self.logger,
            )
            orders = client.fetch_orders(after=since, before=until, status=status)
            stats["fetched"] = len(orders)
            self.logger.info("WooCommerce orders fetched: %s", len(orders))

            for data in orders:
                try:
                    result = self.ingest_payload(data)
                    stats[result.outcome] += 1
                except Exception as exc:  # noqa: BLE001
                    stats["errors"] += 1
                    self.logger.error("Order #%s processing failed: %s", data.get("id"), exc)

            self.repository.finish_sync_run(
                correlation_id=correlation_id,
                finished_at=datetime.now(timezone.utc).isoformat(),
                status="success" if stats["errors"] == 0 else "completed_with_errors",
                stats=stats,
                error_text=None,
            )
            return stats

        except Exception as exc:
            stats["errors"] += 1
            self.repository.finish_sync_run(
                correlation_id=correlation_id,
                finished_at=datetime.now(timezone.utc).isoformat(),
                status="failed",
                stats=stats,
                error_text=str(exc),
            )
            raise
