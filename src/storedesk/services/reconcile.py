from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from storedesk.carriers import shipping_id_from_tracking
from storedesk.core.db import StoreRepository
from storedesk.core.fulfillment import apply_order_action
from storedesk.core.geography import clean_text
from storedesk.core.normalize import OrderStatus

TRACKING_COLUMNS = ("tracking", "tracking code", "code", "code envoi", "shipping id", "delivery id", "id", "colis")
STATUS_COLUMNS = ("status", "statut", "etat", "state")
DELIVERED_STATUSES = {"livre", "livree", "delivered", "livre client", "livraison effectuee"}


@dataclass(slots=True)
class ReconcileReport:
    rows: int = 0
    delivered: int = 0
    already_delivered: int = 0
    not_delivered: int = 0
    unknown: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def read_manifest(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in {".xlsx", ".xls"}:
        df = pd.read_excel(path, dtype=str, engine="openpyxl")
    else:
        df = pd.read_csv(path, dtype=str, sep=None, engine="python", encoding="utf-8-sig")
    return df.fillna("")


def _pick_column(columns: list[str], candidates: tuple[str, ...]) -> str:
    cleaned = {clean_text(column): column for column in columns}
    for candidate in candidates:
        if candidate in cleaned:
            return cleaned[candidate]
    raise ValueError(f"Manifest has none of the columns {', '.join(candidates)}")


def reconcile_manifest(
    repository: StoreRepository,
    path: Path,
    logger: logging.Logger | logging.LoggerAdapter,
    *,
    user: str = "System",
) -> ReconcileReport:
    """
    Отмечает доставленными отправленные заказы из выгрузки перевозчика.
    Повторный прогон того же файла ничего не меняет.
    """
    df = read_manifest(path)
    columns = [str(column) for column in df.columns]
    tracking_column = _pick_column(columns, TRACKING_COLUMNS)
    status_column = _pick_column(columns, STATUS_COLUMNS)

    report = ReconcileReport()
    for record in df.to_dict(orient="records"):
        tracking = str(record.get(tracking_column, "")).strip()
        if not tracking:
            continue
        report.rows += 1
        if clean_text(str(record.get(status_column, ""))) not in DELIVERED_STATUSES:
            report.not_delivered += 1
            continue

        order = repository.find_order_by_shipping_id(shipping_id_from_tracking(tracking))
        if order is None:
            report.unknown.append(tracking)
            continue
        if order.status == OrderStatus.DELIVERED:
            report.already_delivered += 1
            continue
        if order.status != OrderStatus.SHIPPED:
            report.skipped.append(order.id)
            logger.warning("Order %s is %s, delivery from manifest skipped", order.id, order.status.value)
            continue

        apply_order_action(order, "mark_delivered", user=user, note=f"manifest {path.name}")
        repository.save_order(order)
        report.delivered += 1

    logger.info(
        "Manifest %s reconciled: %s delivered, %s already delivered, %s unknown",
        path.name,
        report.delivered,
        report.already_delivered,
        len(report.unknown),
    )
    return report
