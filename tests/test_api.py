from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from storedesk.api import create_app
from storedesk.core.security import SIGNATURE_HEADER, compute_signature


@pytest.fixture()
def client(settings, repository, city_cache) -> TestClient:  # noqa: ANN001
    app = create_app(settings, repository=repository, city_cache=city_cache, refresh_cities=False)
    return TestClient(app)


def _post(client: TestClient, data, secret: str = "wc-test-secret"):  # noqa: ANN001, ANN202
    body = json.dumps(data).encode("utf-8")
    return client.post(
        "/webhooks/woocommerce",
        content=body,
        headers={SIGNATURE_HEADER: compute_signature(body, secret), "Content-Type": "application/json"},
    )


def test_health_reports_city_count(client, cities) -> None:  # noqa: ANN001
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "cities": len(cities)}


def test_webhook_created_then_duplicate(client, repository, make_order) -> None:  # noqa: ANN001
    first = _post(client, make_order())
    second = _post(client, make_order())

    assert first.status_code == 200
    assert first.json()["status"] == "created"
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert second.json()["order_id"] == first.json()["order_id"]
    assert len(repository.list_orders()) == 1


def test_webhook_wrong_secret_returns_401(client, repository, make_order) -> None:  # noqa: ANN001
    response = _post(client, make_order(), secret="not-the-secret")

    assert response.status_code == 401
    assert repository.list_orders() == []


def test_webhook_without_signature_returns_401(client, make_order) -> None:  # noqa: ANN001
    response = client.post("/webhooks/woocommerce", content=json.dumps(make_order()).encode("utf-8"))

    assert response.status_code == 401


def test_webhook_without_billing_acknowledged(client, repository, make_order) -> None:  # noqa: ANN001
    data = make_order()
    data.pop("billing")

    response = _post(client, data)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert repository.list_orders() == []


def test_webhook_unexpected_failure_returns_500(client, repository, make_order, monkeypatch) -> None:  # noqa: ANN001
    def boom(order):  # noqa: ANN001, ANN202
        raise RuntimeError("disk full")

    monkeypatch.setattr(repository, "create_order", boom)

    response = _post(client, make_order())

    assert response.status_code == 500
    assert response.json()["status"] == "error"
