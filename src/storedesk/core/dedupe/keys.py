from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from dateutil import parser as dt_parser

SOURCE_WOOCOMMERCE = "woocommerce"


def _normalize_part(part: Any) -> str:
    if part is None:
        return ""
    if isinstance(part, datetime):
        return part.isoformat()
    if isinstance(part, Decimal):
        return format(part, "f")
    return str(part).strip()


def import_log_message(external_id: str | int) -> str:
    return f"Imported from WooCommerce (Order #{_normalize_part(external_id)})"


def import_marker(external_id: str | int) -> str:
    """Fragment searched in order logs; the closing parenthesis keeps #12 from matching #123."""
    return f"(Order #{_normalize_part(external_id)})"


def build_external_ref(external_id: str | int, source: str = SOURCE_WOOCOMMERCE) -> str:
    return f"{source}:{_normalize_part(external_id)}"


def normalize_order_date(value: str | datetime | None) -> str:
    """
    Приводит дату заказа к одной ISO-строке, чтобы сравнение
    "дата + сумма" не зависело от формата источника.
    """
    if value is None or value == "":
        return ""
    parsed = value if isinstance(value, datetime) else dt_parser.isoparse(str(value).strip())
    return parsed.isoformat()
