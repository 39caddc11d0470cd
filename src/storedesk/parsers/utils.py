from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from storedesk.core.normalize import to_money

_NON_DIGIT = re.compile(r"\D")
_LINE_BREAKS = re.compile(r"[\r\n]+")


def parse_money(value: str | int | float | None) -> Decimal | None:
    if value is None:
        return None
    text = str(value).strip().replace(" ", "")
    if not text:
        return None
    try:
        result = Decimal(text)
        if not result.is_finite():
            return None
        return to_money(result)
    except InvalidOperation:
        return None


def normalize_moroccan_phone(phone: str | None) -> str:
    """
    Хранимый формат: 9 цифр без кода страны и ведущего нуля
    (+212 661-75-35-35 -> 661753535).
    """
    cleaned = _NON_DIGIT.sub("", phone or "")
    if cleaned.startswith("00212"):
        cleaned = cleaned[5:]
    elif cleaned.startswith("212"):
        cleaned = cleaned[3:]
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    return cleaned


def carrier_phone(phone: str | None) -> str:
    """Формат перевозчика: 10 цифр с ведущим нулём."""
    local = normalize_moroccan_phone(phone)
    if len(local) == 9 and local[0] in "567":
        return "0" + local
    return local


def single_line(value: str | None, limit: int | None = None) -> str:
    text = _LINE_BREAKS.sub(" ", value or "").strip()
    return text[:limit] if limit else text
