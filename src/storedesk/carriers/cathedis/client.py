from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests

from storedesk.carriers.models import CarrierSession, DeliveryRequest, ShipmentResult
from storedesk.config import CathedisConfig
from storedesk.core.errors import CarrierRejected, CarrierUnavailable, ConfigurationError
from storedesk.core.normalize import CityReference
from storedesk.core.retry import request_with_retry

SESSION_COOKIE = "JSESSIONID"
EXPIRED_STATUSES = {401, 403}
DELIVERY_MODEL = "com.tracker.delivery.db.Delivery"
PICKUP_MODEL = "com.tracker.pickup.db.PickupRequest"


class CathedisClient:
    """
    Клиент API Cathedis с сессией по cookie JSESSIONID.

    Сессия общая для всех потоков: получение и обновление токена идут под
    одним Lock, а повторный логин после 401 выполняется только если другой
    поток ещё не заменил устаревший токен.
    """

    def __init__(
        self,
        config: CathedisConfig,
        session: requests.Session | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self.http = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._session_lock = threading.Lock()
        self._carrier_session: CarrierSession | None = None

    @property
    def carrier_session(self) -> CarrierSession | None:
        return self._carrier_session

    # -- transport ----------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> requests.Response:
        """
        Retries only transient failures (timeouts, dropped connections, 5xx).
        Any other transport error becomes CarrierUnavailable without a retry.
        """
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if token:
            headers["Cookie"] = f"{SESSION_COOKIE}={token}"

        return request_with_retry(
            self.http,
            method,
            url,
            max_retries=self.config.max_retries,
            backoff_sec=self.config.backoff_sec,
            sleep=self._sleep,
            logger=self.logger,
            unavailable=CarrierUnavailable,
            label=f"Cathedis {method} {path}",
            json=json,
            params=params,
            headers=headers,
            timeout=self.config.timeout_sec,
        )

    @staticmethod
    def _json(response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise CarrierRejected(
                f"Cathedis returned non-JSON response (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise CarrierRejected("Cathedis returned unexpected JSON", status_code=response.status_code)
        return payload

    # -- session ------------------------------------------------------------

    def login(self) -> CarrierSession:
        if not self.config.connected:
            raise ConfigurationError("Cathedis credentials not configured")

        response = self._send(
            "POST",
            "/login.jsp",
            json={"username": self.config.username, "password": self.config.password},
        )
        if response.status_code >= 400:
            raise CarrierRejected(
                f"Cathedis login failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        token = response.cookies.get(SESSION_COOKIE)
        if not token:
            set_cookie = response.headers.get("set-cookie", "")
            first = set_cookie.split(";")[0]
            name, _, value = first.partition("=")
            token = value.strip() if name.strip() == SESSION_COOKIE else ""
        if not token:
            raise CarrierRejected("No session cookie received from Cathedis", status_code=response.status_code)

        # токен живёт только в CarrierSession, а не в cookie jar сессии requests
        self.http.cookies.clear()
        self.logger.info("Cathedis session opened")
        return CarrierSession.issue(token, self.config.session_ttl_sec)

    def _current_token(self) -> str:
        with self._session_lock:
            if self._carrier_session is None or self._carrier_session.expired:
                self._carrier_session = self.login()
            return self._carrier_session.token

    def _refresh_token(self, stale_token: str) -> str:
        with self._session_lock:
            current = self._carrier_session
            if current is not None and current.token != stale_token and not current.expired:
                return current.token
            self.logger.info("Cathedis session expired, re-authenticating")
            self._carrier_session = self.login()
            return self._carrier_session.token

    def invalidate_session(self) -> None:
        with self._session_lock:
            self._carrier_session = None

    def _action(self, payload: dict[str, Any]) -> dict[str, Any]:
        token = self._current_token()
        response = self._send("POST", "/ws/action", json=payload, token=token)
        if response.status_code in EXPIRED_STATUSES:
            token = self._refresh_token(token)
            response = self._send("POST", "/ws/action", json=payload, token=token)
            if response.status_code in EXPIRED_STATUSES:
                raise CarrierRejected(
                    "Cathedis rejected the session after re-authentication",
                    status_code=response.status_code,
                )
        if response.status_code >= 400:
            raise CarrierRejected(
                f"Cathedis action {payload.get('action')} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        result = self._json(response)
        if result.get("status") != 0:
            raise CarrierRejected(
                result.get("message") or f"Cathedis action {payload.get('action')} failed",
                status_code=response.status_code,
                payload=result,
            )
        data = result.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict) and data[0].get("error"):
            error = data[0]["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise CarrierRejected(f"Cathedis API error: {message or 'unknown error'}", payload=result)
        return result

    # -- operations ---------------------------------------------------------

    def check_connection(self) -> None:
        with self._session_lock:
            self._carrier_session = self.login()

    def create_delivery(self, request: DeliveryRequest) -> ShipmentResult:
        result = self._action(request.to_payload())
        first = (result.get("data") or [{}])[0]
        values = first.get("values") or {}
        delivery = values.get("delivery") if isinstance(values, dict) else None
        delivery_id = first.get("id") or (delivery or {}).get("id")
        if not delivery_id:
            raise CarrierRejected(
                f"Cathedis accepted delivery {request.reference} but returned no id",
                payload=result,
            )
        return ShipmentResult(delivery_id=str(delivery_id), raw=delivery or first)

    def generate_voucher(self, delivery_ids: list[str | int]) -> str | None:
        result = self._action(
            {
                "action": "delivery.print.bl",
                "data": {"context": {"_ids": list(delivery_ids), "_model": DELIVERY_MODEL}},
            }
        )
        try:
            name = result["data"][0]["view"]["views"][0]["name"]
        except (KeyError, IndexError, TypeError):
            return None
        return f"{self.base_url}/{name}" if name else None

    def request_pickup(self, delivery_ids: list[int], pickup_point_id: int) -> dict[str, Any]:
        return self._action(
            {
                "action": "action-refresh-pickup-request",
                "model": PICKUP_MODEL,
                "data": {"context": {"ids": list(delivery_ids), "pickupPointId": pickup_point_id}},
            }
        )

    def fetch_cities(self) -> list[CityReference]:
        response = self._send("GET", "/ws/public/c2c/city", params={"deliveryAvailability": "true"})
        if response.status_code >= 400:
            raise CarrierRejected(f"Cathedis city list failed: HTTP {response.status_code}", status_code=response.status_code)
        result = self._json(response)
        if result.get("status") not in (0, None):
            raise CarrierRejected(result.get("message") or "Cathedis city list failed", payload=result)

        cities: list[CityReference] = []
        for raw in result.get("data") or []:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            sectors = []
            for sector in raw.get("sectors") or []:
                name = sector.get("name") if isinstance(sector, dict) else sector
                if name:
                    sectors.append(str(name).strip())
            cities.append(
                CityReference(
                    id=str(raw.get("id", raw["name"])),
                    name=str(raw["name"]).strip(),
                    sectors=tuple(sectors),
                )
            )
        return cities
