from __future__ import annotations

import platform
import sys

from storedesk.carriers.cathedis import CathedisClient
from storedesk.config import Settings
from storedesk.sources.woocommerce import WooCommerceClient


def _check(name: str, ok: bool, detail: str) -> dict[str, str]:
    return {"check": name, "status": "ok" if ok else "warn", "detail": detail}


def run_doctor_checks(settings: Settings, online: bool = True) -> list[dict[str, str]]:
    checks: list[dict[str, str]] = [
        _check("python_version", sys.version_info >= (3, 11), platform.python_version()),
        _check("db_parent", settings.db_path.parent.exists(), str(settings.db_path.parent)),
        _check(
            "webhook_secret",
            bool(settings.webhook_secret),
            "задан" if settings.webhook_secret else "WOOCOMMERCE_WEBHOOK_SECRET не задан, вебхуки будут отклонены",
        ),
    ]

    if settings.woocommerce.configured:
        if online:
            try:
                WooCommerceClient(settings.woocommerce, timeout_sec=settings.woocommerce_timeout_sec).check_connection()
                checks.append(_check("woocommerce_api", True, settings.woocommerce.url or ""))
            except Exception as exc:  # noqa: BLE001
                checks.append(_check("woocommerce_api", False, str(exc)))
    else:
        checks.append(_check("woocommerce_api", False, "WooCommerce API не настроен"))

    if settings.cathedis_connected:
        if online:
            try:
                CathedisClient(settings.cathedis).check_connection()
                checks.append(_check("cathedis_login", True, settings.cathedis.api_url))
            except Exception as exc:  # noqa: BLE001
                checks.append(_check("cathedis_login", False, str(exc)))
    else:
        checks.append(_check("cathedis_login", False, "Cathedis не подключён"))

    checks.append(
        _check(
            "pickup_locations",
            bool(settings.cathedis.pickup_locations),
            ", ".join(f"{loc.name}:{loc.id}" for loc in settings.cathedis.pickup_locations) or "не настроены",
        )
    )
    return checks
