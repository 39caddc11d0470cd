from __future__ import annotations

from storedesk.core.geography import clean_text

TRACKING_PREFIX = "LD"
TRACKING_DIGITS = 9
SORT_MODULUS = 1000


def tracking_code(shipping_id: str | int) -> str:
    """LD + zero-padded carrier id, e.g. 1234567 -> LD001234567."""
    raw = str(shipping_id).strip()
    if raw.upper().startswith(TRACKING_PREFIX):
        return raw.upper()
    return f"{TRACKING_PREFIX}{raw.zfill(TRACKING_DIGITS)}"


def shipping_id_from_tracking(value: str | int) -> str:
    raw = str(value).strip().upper()
    if raw.startswith(TRACKING_PREFIX):
        raw = raw[len(TRACKING_PREFIX):].lstrip("0") or "0"
    return raw


def city_code(city: str | None) -> str:
    letters = [ch for ch in clean_text(city).upper() if "A" <= ch <= "Z"]
    if len(letters) >= 2:
        return "".join(letters[:2])
    return ("".join(letters) + "XX")[:2]


def order_number(order_id: str) -> int:
    """Order ids are base36 (digits + latin letters); anything else falls back to char codes."""
    try:
        return int(order_id.strip(), 36)
    except ValueError:
        return sum((index + 1) * ord(ch) for index, ch in enumerate(order_id))


def sort_code(city: str | None, order_id: str) -> str:
    return f"{city_code(city)}{order_number(order_id) % SORT_MODULUS:03d}"
