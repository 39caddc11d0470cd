from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from storedesk.core.errors import ConfigurationError

DEFAULT_CATHEDIS_API_URL = "https://v1.cathedis.delivery"


@dataclass(slots=True)
class PickupLocation:
    name: str
    id: int


@dataclass(slots=True)
class WooCommerceConfig:
    url: str | None
    consumer_key: str | None
    consumer_secret: str | None
    webhook_secret: str | None

    @property
    def configured(self) -> bool:
        return bool(self.url and self.consumer_key and self.consumer_secret)


@dataclass(slots=True)
class CathedisConfig:
    api_url: str
    username: str | None
    password: str | None
    pickup_locations: list[PickupLocation] = field(default_factory=list)
    timeout_sec: float = 20.0
    max_retries: int = 3
    backoff_sec: float = 1.0
    session_ttl_sec: int = 1800

    @property
    def connected(self) -> bool:
        return bool(self.username and self.password)

    def pickup_location_id(self, value: str | int | None) -> int | None:
        """
        Ищет точку забора по имени или id; без значения берёт первую настроенную.
        Неизвестное имя даёт ConfigurationError.
        """
        if value is None or value == "":
            return self.pickup_locations[0].id if self.pickup_locations else None
        for location in self.pickup_locations:
            if str(location.id) == str(value) or location.name.lower() == str(value).strip().lower():
                return location.id
        raise ConfigurationError(f"Unknown pickup location {value!r} (CATHEDIS_PICKUP_LOCATIONS)")


@dataclass(slots=True)
class Settings:
    root_dir: Path
    data_dir: Path
    db_path: Path
    logs_dir: Path
    exports_dir: Path
    woocommerce: WooCommerceConfig
    cathedis: CathedisConfig
    city_refresh_sec: int = 86400
    city_match_threshold: float = 0.8
    woocommerce_timeout_sec: float = 30.0
    woocommerce_max_pages: int = 20
    woocommerce_max_retries: int = 3

    @property
    def cathedis_connected(self) -> bool:
        return self.cathedis.connected

    @property
    def webhook_secret(self) -> str | None:
        return self.woocommerce.webhook_secret or self.woocommerce.consumer_secret

    @classmethod
    def load(cls, base_dir: Path | None = None) -> Settings:
        load_dotenv(override=False)

        root_env = os.getenv("STOREDESK_HOME")
        root_dir = Path(root_env).expanduser().resolve() if root_env else (base_dir or Path.cwd()).resolve()

        data_dir = Path(os.getenv("STOREDESK_DATA_DIR", root_dir / "data")).expanduser().resolve()
        db_path = Path(os.getenv("STOREDESK_DB_PATH", data_dir / "storedesk.sqlite3")).expanduser().resolve()
        logs_dir = Path(os.getenv("STOREDESK_LOG_DIR", root_dir / "logs")).expanduser().resolve()
        exports_dir = Path(os.getenv("STOREDESK_EXPORT_DIR", root_dir / "exports")).expanduser().resolve()

        consumer_secret = os.getenv("WOOCOMMERCE_CONSUMER_SECRET") or None
        woocommerce = WooCommerceConfig(
            url=os.getenv("WOOCOMMERCE_URL") or None,
            consumer_key=os.getenv("WOOCOMMERCE_CONSUMER_KEY") or None,
            consumer_secret=consumer_secret,
            webhook_secret=os.getenv("WOOCOMMERCE_WEBHOOK_SECRET") or None,
        )

        cathedis = CathedisConfig(
            api_url=os.getenv("CATHEDIS_API_URL", DEFAULT_CATHEDIS_API_URL).rstrip("/"),
            username=os.getenv("CATHEDIS_USERNAME") or None,
            password=os.getenv("CATHEDIS_PASSWORD") or None,
            pickup_locations=cls._parse_pickup_locations(os.getenv("CATHEDIS_PICKUP_LOCATIONS")),
            timeout_sec=float(os.getenv("CATHEDIS_TIMEOUT_SEC", "20")),
            max_retries=int(os.getenv("CATHEDIS_MAX_RETRIES", "3")),
            backoff_sec=float(os.getenv("CATHEDIS_BACKOFF_SEC", "1")),
            session_ttl_sec=int(os.getenv("CATHEDIS_SESSION_TTL_SEC", "1800")),
        )

        return cls(
            root_dir=root_dir,
            data_dir=data_dir,
            db_path=db_path,
            logs_dir=logs_dir,
            exports_dir=exports_dir,
            woocommerce=woocommerce,
            cathedis=cathedis,
            city_refresh_sec=int(os.getenv("STOREDESK_CITY_REFRESH_SEC", "86400")),
            city_match_threshold=float(os.getenv("STOREDESK_CITY_MATCH_THRESHOLD", "0.8")),
            woocommerce_timeout_sec=float(os.getenv("WOOCOMMERCE_TIMEOUT_SEC", "30")),
            woocommerce_max_pages=int(os.getenv("WOOCOMMERCE_MAX_PAGES", "20")),
            woocommerce_max_retries=int(os.getenv("WOOCOMMERCE_MAX_RETRIES", "3")),
        )

    @staticmethod
    def _parse_pickup_locations(raw: str | None) -> list[PickupLocation]:
        """
        Формат: "Depot Casa:12,Agence Rabat:34".
        Записи без числового id пропускаются.
        """
        locations: list[PickupLocation] = []
        if not raw:
            return locations
        for chunk in raw.split(","):
            name, sep, location_id = chunk.strip().rpartition(":")
            if not sep or not name.strip() or not location_id.strip().isdigit():
                continue
            locations.append(PickupLocation(name=name.strip(), id=int(location_id)))
        return locations

    def ensure_directories(self) -> None:
        for path in [self.root_dir, self.data_dir, self.logs_dir, self.exports_dir]:
            path.mkdir(parents=True, exist_ok=True)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
