"""WooCommerce webhook receiver.

The raw request body is read before any JSON parsing so the signature is
checked over the exact bytes WooCommerce signed.

Usage:
    storedesk serve --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.dedupe import IdempotencyGuard
from storedesk.core.errors import AuthenticationFailure
from storedesk.core.geography import CityReferenceCache
from storedesk.core.logging import get_logger
from storedesk.services.geography import build_city_cache
from storedesk.services.ingest import IngestionService


def create_app(
    settings: Settings | None = None,
    repository: StoreRepository | None = None,
    city_cache: CityReferenceCache | None = None,
    refresh_cities: bool = True,
) -> FastAPI:
    settings = settings or Settings.load()
    app_logger = get_logger("storedesk.api", "app")

    if repository is None:
        settings.ensure_directories()
        repository = StoreRepository(settings.db_path)
        repository.migrate()
    if city_cache is None:
        city_cache = build_city_cache(settings, repository, app_logger)
    guard = IdempotencyGuard(repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if refresh_cities:
            await run_in_threadpool(city_cache.refresh_if_stale, settings.city_refresh_sec)
        yield

    app = FastAPI(title="storedesk", description="WooCommerce order intake", lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repository
    app.state.city_cache = city_cache

    @app.post("/webhooks/woocommerce")
    async def woocommerce_webhook(
        request: Request,
        x_wc_webhook_signature: str | None = Header(default=None),
    ):
        correlation_id = uuid.uuid4().hex[:12]
        logger = get_logger("storedesk.webhook", correlation_id)
        body = await request.body()
        service = IngestionService(settings, repository, city_cache, logger, guard=guard)

        try:
            result = await run_in_threadpool(service.handle_webhook, body, x_wc_webhook_signature)
        except AuthenticationFailure as exc:
            logger.warning("Webhook rejected: %s", exc)
            return JSONResponse(status_code=401, content={"status": "unauthorized", "detail": str(exc)})
        except Exception:  # noqa: BLE001
            logger.exception("Webhook processing failed")
            return JSONResponse(status_code=500, content={"status": "error", "detail": "internal error"})

        return JSONResponse(status_code=200, content=result.as_dict())

    @app.get("/health")
    async def health():
        return JSONResponse(content={"status": "ok", "cities": len(city_cache.snapshot())})

    return app
