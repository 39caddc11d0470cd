from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from storedesk.core.errors import DuplicateEvent
from storedesk.core.normalize import (
    CityReference,
    Customer,
    LogEntry,
    Order,
    OrderItem,
    OrderStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
)

from .migrations import MIGRATIONS_DIR, apply_migrations, connect_db

ORDER_ENTITY = "order"
PURCHASE_ORDER_ENTITY = "purchase_order"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class StoreRepository:
    """
    Хранилище заказов поверх sqlite.

    Только операции create/read/update; бизнес-правил здесь нет.
    Все обращения к соединению идут под одним RLock.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.connection = connect_db(db_path)
        self._lock = threading.RLock()

    def close(self) -> None:
        with self._lock:
            self.connection.close()

    def __enter__(self) -> StoreRepository:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def migrate(self) -> list[str]:
        with self._lock:
            return apply_migrations(self.connection, MIGRATIONS_DIR)

    @staticmethod
    def _to_json(payload: dict[str, Any] | list[Any] | None) -> str | None:
        if payload is None:
            return None
        return json.dumps(payload, ensure_ascii=False)

    # -- orders ---------------------------------------------------------

    def order_exists(self, order_id: str) -> bool:
        with self._lock:
            row = self.connection.execute("SELECT 1 FROM orders WHERE id = ?", (order_id,)).fetchone()
        return row is not None

    def create_order(self, order: Order) -> str:
        try:
            with self._lock, self.connection:
                self.connection.execute(
                    """
                    INSERT INTO orders (
                        id, external_ref, order_date, status,
                        customer_name, customer_phone, customer_email, customer_address,
                        customer_city, customer_sector, customer_city_raw, customer_address_raw,
                        customer_country, customer_state, company_name, tax_id,
                        total, currency, payment_type, shipping_id, invoice_date, invoice_downloaded,
                        fragile, allow_opening, package_count, geo_unresolved
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        order.id,
                        order.external_ref,
                        order.order_date,
                        order.status.value,
                        order.customer.name,
                        order.customer.phone,
                        order.customer.email,
                        order.customer.address,
                        order.customer.city,
                        order.customer.sector,
                        order.customer.city_raw,
                        order.customer.address_raw,
                        order.customer.country,
                        order.customer.state,
                        order.company_name,
                        order.tax_id,
                        format(order.total, "f"),
                        order.currency,
                        order.payment_type,
                        order.shipping_id,
                        _iso(order.invoice_date),
                        int(order.invoice_downloaded),
                        int(order.fragile),
                        int(order.allow_opening),
                        order.package_count,
                        int(order.geo_unresolved),
                    ),
                )
                self.connection.executemany(
                    """
                    INSERT INTO order_items (order_id, position, product_id, name, sku, quantity, unit_price)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            order.id,
                            position,
                            item.product_id,
                            item.name,
                            item.sku,
                            item.quantity,
                            format(item.unit_price, "f"),
                        )
                        for position, item in enumerate(order.items)
                    ],
                )
                self._write_logs(ORDER_ENTITY, order.id, order.logs)
        except sqlite3.IntegrityError as exc:
            if order.external_ref and "orders.external_ref" in str(exc):
                existing = self.find_order_id_by_external_ref(order.external_ref)
                raise DuplicateEvent(order.external_ref, existing) from exc
            raise
        return order.id

    def save_order(self, order: Order) -> None:
        with self._lock, self.connection:
            cursor = self.connection.execute(
                """
                UPDATE orders SET
                    status = ?,
                    customer_name = ?,
                    customer_phone = ?,
                    customer_email = ?,
                    customer_address = ?,
                    customer_city = ?,
                    customer_sector = ?,
                    company_name = ?,
                    tax_id = ?,
                    shipping_id = ?,
                    invoice_date = ?,
                    invoice_downloaded = ?,
                    fragile = ?,
                    allow_opening = ?,
                    package_count = ?,
                    geo_unresolved = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (
                    order.status.value,
                    order.customer.name,
                    order.customer.phone,
                    order.customer.email,
                    order.customer.address,
                    order.customer.city,
                    order.customer.sector,
                    order.company_name,
                    order.tax_id,
                    order.shipping_id,
                    _iso(order.invoice_date),
                    int(order.invoice_downloaded),
                    int(order.fragile),
                    int(order.allow_opening),
                    order.package_count,
                    int(order.geo_unresolved),
                    order.id,
                ),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Order {order.id} does not exist")
            self._write_logs(ORDER_ENTITY, order.id, order.logs)

    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            row = self.connection.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_order(row)

    def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        with self._lock:
            if status is None:
                rows = self.connection.execute("SELECT * FROM orders ORDER BY order_date, id").fetchall()
            else:
                rows = self.connection.execute(
                    "SELECT * FROM orders WHERE status = ? ORDER BY order_date, id",
                    (status.value,),
                ).fetchall()
            return [self._row_to_order(row) for row in rows]

    def find_order_id_by_external_ref(self, external_ref: str) -> str | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id FROM orders WHERE external_ref = ?", (external_ref,)
            ).fetchone()
        return row["id"] if row else None

    def find_order_id_by_log_marker(self, marker: str) -> str | None:
        with self._lock:
            row = self.connection.execute(
                """
                SELECT entity_id AS id FROM activity_logs
                WHERE entity_type = ? AND instr(message, ?) > 0
                ORDER BY id LIMIT 1
                """,
                (ORDER_ENTITY, marker),
            ).fetchone()
        return row["id"] if row else None

    def find_order_id_by_date_total(self, order_date: str, total: Decimal) -> str | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT id FROM orders WHERE order_date = ? AND total = ? ORDER BY created_at LIMIT 1",
                (order_date, format(total, "f")),
            ).fetchone()
        return row["id"] if row else None

    def find_order_by_shipping_id(self, shipping_id: str) -> Order | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT * FROM orders WHERE shipping_id = ?", (shipping_id,)
            ).fetchone()
            return self._row_to_order(row) if row else None

    def _row_to_order(self, row: sqlite3.Row) -> Order:
        items = [
            OrderItem(
                product_id=item["product_id"],
                quantity=int(item["quantity"]),
                unit_price=Decimal(item["unit_price"]),
                name=item["name"],
                sku=item["sku"],
            )
            for item in self.connection.execute(
                "SELECT * FROM order_items WHERE order_id = ? ORDER BY position", (row["id"],)
            )
        ]
        return Order(
            id=row["id"],
            order_date=row["order_date"],
            status=OrderStatus(row["status"]),
            customer=Customer(
                name=row["customer_name"],
                phone=row["customer_phone"] or "",
                email=row["customer_email"] or "",
                address=row["customer_address"] or "",
                city=row["customer_city"] or "",
                sector=row["customer_sector"],
                city_raw=row["customer_city_raw"] or "",
                address_raw=row["customer_address_raw"] or "",
                country=row["customer_country"],
                state=row["customer_state"],
            ),
            items=items,
            total=Decimal(row["total"]),
            currency=row["currency"],
            payment_type=row["payment_type"],
            company_name=row["company_name"],
            tax_id=row["tax_id"],
            shipping_id=row["shipping_id"],
            invoice_date=_parse_dt(row["invoice_date"]),
            invoice_downloaded=bool(row["invoice_downloaded"]),
            fragile=bool(row["fragile"]),
            allow_opening=bool(row["allow_opening"]),
            package_count=int(row["package_count"]),
            geo_unresolved=bool(row["geo_unresolved"]),
            external_ref=row["external_ref"],
            logs=self._read_logs(ORDER_ENTITY, row["id"]),
        )

    # -- purchase orders --------------------------------------------------

    def create_purchase_order(self, purchase_order: PurchaseOrder) -> str:
        with self._lock, self.connection:
            self.connection.execute(
                """
                INSERT INTO purchase_orders (id, supplier_id, supplier_name, status, total, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    purchase_order.id,
                    purchase_order.supplier_id,
                    purchase_order.supplier_name,
                    purchase_order.status.value,
                    format(purchase_order.total, "f"),
                    _iso(purchase_order.created_at),
                ),
            )
            self.connection.executemany(
                """
                INSERT INTO purchase_order_items (purchase_order_id, position, product_id, quantity, buy_price)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (purchase_order.id, position, item.product_id, item.quantity, format(item.buy_price, "f"))
                    for position, item in enumerate(purchase_order.items)
                ],
            )
            self._write_logs(PURCHASE_ORDER_ENTITY, purchase_order.id, purchase_order.logs)
        return purchase_order.id

    def save_purchase_order(self, purchase_order: PurchaseOrder) -> None:
        with self._lock, self.connection:
            cursor = self.connection.execute(
                """
                UPDATE purchase_orders
                SET status = ?, supplier_name = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (purchase_order.status.value, purchase_order.supplier_name, purchase_order.id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Purchase order {purchase_order.id} does not exist")
            self._write_logs(PURCHASE_ORDER_ENTITY, purchase_order.id, purchase_order.logs)

    def get_purchase_order(self, purchase_order_id: str) -> PurchaseOrder | None:
        with self._lock:
            row = self.connection.execute(
                "SELECT * FROM purchase_orders WHERE id = ?", (purchase_order_id,)
            ).fetchone()
            if row is None:
                return None
            items = [
                PurchaseOrderItem(
                    product_id=item["product_id"],
                    quantity=int(item["quantity"]),
                    buy_price=Decimal(item["buy_price"]),
                )
                for item in self.connection.execute(
                    "SELECT * FROM purchase_order_items WHERE purchase_order_id = ? ORDER BY position",
                    (purchase_order_id,),
                )
            ]
            return PurchaseOrder(
                id=row["id"],
                supplier_id=row["supplier_id"],
                supplier_name=row["supplier_name"],
                status=PurchaseOrderStatus.parse(row["status"]),
                items=items,
                created_at=datetime.fromisoformat(row["created_at"]),
                logs=self._read_logs(PURCHASE_ORDER_ENTITY, row["id"]),
            )

    # -- activity logs ----------------------------------------------------

    def _write_logs(self, entity_type: str, entity_id: str, logs: list[LogEntry]) -> None:
        # Лог только дописывается, поэтому хватает вставки новых позиций.
        row = self.connection.execute(
            "SELECT COUNT(*) AS cnt FROM activity_logs WHERE entity_type = ? AND entity_id = ?",
            (entity_type, entity_id),
        ).fetchone()
        stored = int(row["cnt"])
        self.connection.executemany(
            """
            INSERT INTO activity_logs (entity_type, entity_id, position, log_type, message, user_name, logged_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (entity_type, entity_id, position, entry.type, entry.message, entry.user, _iso(entry.timestamp))
                for position, entry in enumerate(logs)
                if position >= stored
            ],
        )

    def _read_logs(self, entity_type: str, entity_id: str) -> list[LogEntry]:
        rows = self.connection.execute(
            """
            SELECT log_type, message, user_name, logged_at FROM activity_logs
            WHERE entity_type = ? AND entity_id = ?
            ORDER BY position
            """,
            (entity_type, entity_id),
        ).fetchall()
        return [
            LogEntry(
                type=row["log_type"],
                message=row["message"],
                timestamp=datetime.fromisoformat(row["logged_at"]),
                user=row["user_name"] or "System",
            )
            for row in rows
        ]

    # -- city reference ---------------------------------------------------

    def replace_cities(self, cities: list[CityReference], fetched_at: datetime) -> None:
        with self._lock, self.connection:
            self.connection.execute("DELETE FROM cities")
            self.connection.executemany(
                "INSERT INTO cities (id, name, sectors_json, fetched_at) VALUES (?, ?, ?, ?)",
                [
                    (city.id, city.name, self._to_json(list(city.sectors)), fetched_at.isoformat())
                    for city in cities
                ],
            )

    def load_cities(self) -> tuple[list[CityReference], datetime | None]:
        with self._lock:
            rows = self.connection.execute("SELECT * FROM cities ORDER BY name").fetchall()
        if not rows:
            return [], None
        cities = [
            CityReference(id=row["id"], name=row["name"], sectors=tuple(json.loads(row["sectors_json"] or "[]")))
            for row in rows
        ]
        return cities, _parse_dt(rows[0]["fetched_at"])

    # -- sync runs --------------------------------------------------------

    def start_sync_run(self, correlation_id: str, source: str, started_at: str) -> None:
        with self._lock, self.connection:
            self.connection.execute(
                """
                INSERT INTO sync_runs (correlation_id, source, started_at, status)
                VALUES (?, ?, ?, 'running')
                ON CONFLICT(correlation_id) DO UPDATE SET
                    source = excluded.source,
                    started_at = excluded.started_at,
                    status = 'running',
                    finished_at = NULL,
                    stats_json = NULL,
                    error_text = NULL
                """,
                (correlation_id, source, started_at),
            )

    def finish_sync_run(
        self,
        correlation_id: str,
        finished_at: str,
        status: str,
        stats: dict[str, Any] | None,
        error_text: str | None,
    ) -> None:
        with self._lock, self.connection:
            self.connection.execute(
                """
                UPDATE sync_runs
                SET finished_at = ?, status = ?, stats_json = ?, error_text = ?
                WHERE correlation_id = ?
                """,
                (finished_at, status, self._to_json(stats), error_text, correlation_id),
            )

    # -- reporting --------------------------------------------------------

    def fetch_export_rows(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self.connection.execute(
                """
                SELECT
                    o.id AS order_id,
                    o.external_ref,
                    o.order_date,
                    o.status,
                    o.customer_name,
                    o.customer_phone,
                    o.customer_email,
                    o.customer_address,
                    o.customer_city,
                    o.customer_sector,
                    o.customer_city_raw,
                    o.geo_unresolved,
                    o.total,
                    o.currency,
                    o.payment_type,
                    o.shipping_id,
                    o.invoice_downloaded,
                    oi.product_id,
                    oi.name AS item_name,
                    oi.sku,
                    oi.quantity,
                    oi.unit_price
                FROM orders o
                LEFT JOIN order_items oi ON oi.order_id = o.id
                ORDER BY o.order_date DESC, o.id, oi.position
                """
            ).fetchall()
        return [dict(row) for row in rows]

    def duplicate_diagnostics(self) -> dict[str, list[dict[str, Any]]]:
        with self._lock:
            date_total = self.connection.execute(
                """
                SELECT order_date, total, COUNT(*) AS cnt, group_concat(id, ', ') AS order_ids
                FROM orders
                GROUP BY order_date, total
                HAVING COUNT(*) > 1
                """
            ).fetchall()
            markers = self.connection.execute(
                """
                SELECT message, COUNT(DISTINCT entity_id) AS cnt, group_concat(DISTINCT entity_id) AS order_ids
                FROM activity_logs
                WHERE entity_type = 'order' AND log_type = 'import'
                GROUP BY message
                HAVING COUNT(DISTINCT entity_id) > 1
                """
            ).fetchall()
        return {
            "date_total": [dict(row) for row in date_total],
            "markers": [dict(row) for row in markers],
        }

    def fetch_counts(self) -> dict[str, int]:
        tables = ["orders", "order_items", "purchase_orders", "activity_logs", "cities", "sync_runs"]
        counts: dict[str, int] = {}
        with self._lock:
            for table in tables:
                row = self.connection.execute(f"SELECT COUNT(*) AS cnt FROM {table}").fetchone()
                counts[table] = int(row["cnt"])
        return counts
