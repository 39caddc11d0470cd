from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Callable

import pytest

from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.geography import CityReferenceCache
from storedesk.core.normalize import CityReference

WEBHOOK_SECRET = "wc-test-secret"

BASE_ORDER: dict[str, Any] = {
    "id": 1001,
    "status": "processing",
    "currency": "MAD",
    "date_created": "2026-03-01T10:15:00",
    "total": "325.00",
    "shipping_total": "0.00",
    "payment_method_title": "Paiement à la livraison",
    "billing": {
        "first_name": "Amina",
        "last_name": "Alaoui",
        "company": "",
        "address_1": "12 Rue Ibnou Mounir, Maarif",
        "address_2": "",
        "city": "casablanca ",
        "state": "",
        "postcode": "20330",
        "country": "MA",
        "email": "amina@example.ma",
        "phone": "+212 661-75-35-35",
    },
    "shipping": {
        "first_name": "",
        "last_name": "",
        "address_1": "",
        "address_2": "",
        "city": "",
        "state": "",
        "country": "",
    },
    "line_items": [
        {"product_id": 11, "name": "Tajine", "quantity": 2, "price": "150.00", "subtotal": "300.00"},
        {"product_id": 12, "name": "Argan oil", "quantity": 1, "price": 25, "subtotal": "25.00"},
    ],
    "meta_data": [],
}


@pytest.fixture()
def repository(tmp_path: Path):
    db_path = tmp_path / "storedesk.sqlite3"
    repo = StoreRepository(db_path)
    repo.migrate()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def settings(tmp_path: Path, monkeypatch) -> Settings:  # noqa: ANN001
    root = tmp_path / "project"
    root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("STOREDESK_HOME", str(root))
    for name in ("STOREDESK_DATA_DIR", "STOREDESK_DB_PATH", "STOREDESK_LOG_DIR", "STOREDESK_EXPORT_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WOOCOMMERCE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("CATHEDIS_API_URL", "https://cathedis.test")
    monkeypatch.setenv("CATHEDIS_USERNAME", "shop")
    monkeypatch.setenv("CATHEDIS_PASSWORD", "secret")
    monkeypatch.setenv("CATHEDIS_PICKUP_LOCATIONS", "Depot Casa:12,Agence Rabat:34")
    monkeypatch.setenv("CATHEDIS_BACKOFF_SEC", "0")
    monkeypatch.setenv("CATHEDIS_MAX_RETRIES", "2")
    s = Settings.load(base_dir=root)
    s.ensure_directories()
    return s


@pytest.fixture()
def test_logger() -> logging.Logger:
    logger = logging.getLogger("storedesk-test")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.INFO)
    return logger


@pytest.fixture()
def cities() -> list[CityReference]:
    return [
        CityReference(id="1", name="Casablanca", sectors=("Maarif", "Ain Sebaa", "Sidi Maarouf")),
        CityReference(id="2", name="Rabat", sectors=("Agdal", "Hay Riad")),
        CityReference(id="3", name="Marrakech", sectors=("Gueliz",)),
        CityReference(id="4", name="Sidi Slimane"),
        CityReference(id="5", name="Sidi Yahya Lgharb"),
        CityReference(id="6", name="Fès", sectors=("Saiss",)),
    ]


@pytest.fixture()
def city_cache(repository, cities, test_logger) -> CityReferenceCache:  # noqa: ANN001
    cache = CityReferenceCache(repository=repository, logger=test_logger)
    cache.replace(cities)
    return cache


@pytest.fixture()
def make_order() -> Callable[..., dict[str, Any]]:
    def _make(**overrides: Any) -> dict[str, Any]:
        data = copy.deepcopy(BASE_ORDER)
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key].update(value)
            else:
                data[key] = value
        return data

    return _make
