from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from storedesk.core.errors import CarrierError
from storedesk.core.normalize import CityReference, CitySnapshot, utc_now

if TYPE_CHECKING:
    from storedesk.core.db import StoreRepository

CityFetcher = Callable[[], list[CityReference]]

EMPTY_SNAPSHOT = CitySnapshot(cities=(), fetched_at=None)


class CityReferenceCache:
    """
    Держит последний успешно загруженный список городов перевозчика.

    Снимок заменяется целиком одной операцией присваивания, поэтому
    параллельные резолвы видят либо старый, либо новый список.
    """

    def __init__(
        self,
        repository: StoreRepository | None = None,
        fetcher: CityFetcher | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)
        self._snapshot = EMPTY_SNAPSHOT
        self._refresh_lock = threading.Lock()

    def snapshot(self) -> CitySnapshot:
        return self._snapshot

    def replace(self, cities: list[CityReference], fetched_at: datetime | None = None) -> CitySnapshot:
        snapshot = CitySnapshot(cities=tuple(cities), fetched_at=fetched_at or utc_now())
        self._snapshot = snapshot
        return snapshot

    def load_from_repository(self) -> CitySnapshot:
        if self.repository is None:
            return self._snapshot
        cities, fetched_at = self.repository.load_cities()
        if cities:
            self._snapshot = CitySnapshot(cities=tuple(cities), fetched_at=fetched_at)
            self.logger.info("City reference loaded from store: %s cities", len(cities))
        return self._snapshot

    def refresh(self) -> CitySnapshot:
        if self.fetcher is None:
            return self._snapshot
        with self._refresh_lock:
            try:
                cities = self.fetcher()
            except CarrierError as exc:
                self.logger.warning(
                    "City reference refresh failed, keeping %s cached cities: %s",
                    len(self._snapshot),
                    exc,
                )
                return self._snapshot
            if not cities:
                self.logger.warning("Carrier returned an empty city list, keeping cached snapshot")
                return self._snapshot

            fetched_at = utc_now()
            if self.repository is not None:
                self.repository.replace_cities(cities, fetched_at=fetched_at)
            snapshot = self.replace(cities, fetched_at=fetched_at)
            self.logger.info("City reference refreshed: %s cities", len(snapshot))
            return snapshot

    def is_stale(self, max_age_sec: int) -> bool:
        fetched_at = self._snapshot.fetched_at
        if fetched_at is None:
            return True
        return utc_now() - fetched_at > timedelta(seconds=max_age_sec)

    def refresh_if_stale(self, max_age_sec: int) -> CitySnapshot:
        if self.is_stale(max_age_sec):
            return self.refresh()
        return self._snapshot
