from __future__ import annotations

from typing import Any

import pytest
import requests

from storedesk.config import WooCommerceConfig
from storedesk.core.errors import SourceError
from storedesk.sources.woocommerce import WooCommerceClient


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        return self._payload


class FakeSession:
    def __init__(self, script: list[Any]):
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []
        self.auth = None

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


CONFIG = WooCommerceConfig(
    url="https://shop.test/",
    consumer_key="ck_test",
    consumer_secret="cs_test",
    webhook_secret=None,
)


def _client(session: FakeSession, sleeps: list[float], test_logger) -> WooCommerceClient:  # noqa: ANN001
    return WooCommerceClient(
        CONFIG,
        session=session,
        max_retries=2,
        backoff_sec=0.5,
        logger=test_logger,
        sleep=sleeps.append,
    )


def test_fetch_orders_retries_transient_errors(test_logger) -> None:  # noqa: ANN001
    sleeps: list[float] = []
    session = FakeSession(
        [
            requests.Timeout("slow"),
            FakeResponse(503),
            FakeResponse(200, [{"id": 1}, {"id": 2}, "junk"]),
        ]
    )

    orders = _client(session, sleeps, test_logger).fetch_orders(status="processing")

    assert [order["id"] for order in orders] == [1, 2]
    assert sleeps == [0.5, 1.0]
    assert session.calls[-1]["url"] == "https://shop.test/wp-json/wc/v3/orders"
    assert session.calls[-1]["params"]["status"] == "processing"
    assert session.calls[-1]["params"]["page"] == 1


def test_fetch_orders_gives_up_after_bounded_retries(test_logger) -> None:  # noqa: ANN001
    sleeps: list[float] = []
    session = FakeSession([requests.ConnectionError("refused") for _ in range(3)])

    with pytest.raises(SourceError, match="after 3 attempts"):
        _client(session, sleeps, test_logger).fetch_orders()
    assert len(session.calls) == 3
    assert sleeps == [0.5, 1.0]


def test_client_error_not_retried(test_logger) -> None:  # noqa: ANN001
    sleeps: list[float] = []
    session = FakeSession([FakeResponse(401)])

    with pytest.raises(SourceError, match="HTTP 401"):
        _client(session, sleeps, test_logger).check_connection()
    assert sleeps == []
