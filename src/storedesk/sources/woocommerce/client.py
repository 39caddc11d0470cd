from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable

import requests
from requests.auth import HTTPBasicAuth

from storedesk.config import WooCommerceConfig
from storedesk.core.errors import ConfigurationError, SourceError
from storedesk.core.retry import request_with_retry

PER_PAGE = 100


class WooCommerceClient:
    """Pull access to the WooCommerce REST API (wc/v3) with consumer key/secret."""

    def __init__(
        self,
        config: WooCommerceConfig,
        timeout_sec: float = 30.0,
        max_pages: int = 20,
        session: requests.Session | None = None,
        max_retries: int = 3,
        backoff_sec: float = 1.0,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not config.configured:
            raise ConfigurationError("WooCommerce URL, consumer key and secret must be set")
        self.base_url = (config.url or "").rstrip("/")
        self.timeout_sec = timeout_sec
        self.max_pages = max_pages
        self.max_retries = max_retries
        self.backoff_sec = backoff_sec
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(config.consumer_key or "", config.consumer_secret or "")

    def _get(self, path: str, params: dict[str, Any] | None = None) -> requests.Response:
        response = request_with_retry(
            self.session,
            "GET",
            f"{self.base_url}{path}",
            max_retries=self.max_retries,
            backoff_sec=self.backoff_sec,
            sleep=self._sleep,
            logger=self.logger,
            unavailable=SourceError,
            label=f"WooCommerce GET {path}",
            params=params,
            timeout=self.timeout_sec,
        )
        if response.status_code >= 400:
            raise SourceError(f"WooCommerce GET {path} failed: HTTP {response.status_code}")
        return response

    def check_connection(self) -> None:
        self._get("/wp-json/wc/v3/system_status")

    def fetch_orders(
        self,
        after: datetime | None = None,
        before: datetime | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"per_page": PER_PAGE, "orderby": "date", "order": "asc"}
        if after:
            params["after"] = after.isoformat()
        if before:
            params["before"] = before.isoformat()
        if status:
            params["status"] = status

        orders: list[dict[str, Any]] = []
        for page in range(1, self.max_pages + 1):
            batch = self._get("/wp-json/wc/v3/orders", params={**params, "page": page}).json()
            if not isinstance(batch, list):
                break
            orders.extend(item for item in batch if isinstance(item, dict))
            if len(batch) < PER_PAGE:
                break
        return orders
