from __future__ import annotations

from storedesk.carriers import city_code, shipping_id_from_tracking, sort_code, tracking_code


def test_tracking_code_padding() -> None:
    assert tracking_code(1234567) == "LD001234567"
    assert tracking_code("LD001234567") == "LD001234567"
    assert shipping_id_from_tracking("ld001234567") == "1234567"
    assert shipping_id_from_tracking("987") == "987"


def test_city_code_uses_first_letters() -> None:
    assert city_code("Casablanca") == "CA"
    assert city_code("Fès") == "FE"
    assert city_code("") == "XX"


def test_sort_code_is_reproducible() -> None:
    assert sort_code("Rabat", "A1B2C3") == sort_code("Rabat", "A1B2C3")
    assert sort_code("Rabat", "10") == "RA036"
    assert len(sort_code("Casablanca", "ZZZZZZ")) == 5
