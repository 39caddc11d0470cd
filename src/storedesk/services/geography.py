from __future__ import annotations

import logging

from storedesk.carriers.cathedis import CathedisClient
from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.errors import GeographyUnresolved, OrderNotFound
from storedesk.core.geography import CityReferenceCache, clean_text, resolve_city, resolve_sector
from storedesk.core.normalize import Order


def build_city_cache(
    settings: Settings,
    repository: StoreRepository,
    logger: logging.Logger | logging.LoggerAdapter,
    client: CathedisClient | None = None,
) -> CityReferenceCache:
    # публичный справочник городов не требует логина
    client = client or CathedisClient(settings.cathedis, logger=logger)
    cache = CityReferenceCache(repository=repository, fetcher=client.fetch_cities, logger=logger)
    cache.load_from_repository()
    return cache


def resolve_pending_geography(
    repository: StoreRepository,
    cache: CityReferenceCache,
    logger: logging.Logger | logging.LoggerAdapter,
    threshold: float = 0.8,
) -> int:
    """Re-runs city resolution for every order still flagged geo_unresolved."""
    cities = cache.snapshot().cities
    resolved = 0
    for order in repository.list_orders():
        if not order.geo_unresolved:
            continue
        resolution = resolve_city(
            order.customer.city_raw or order.customer.city,
            cities,
            address=order.customer.address_raw or order.customer.address,
            threshold=threshold,
        )
        if not resolution.resolved:
            continue
        order.customer.city = resolution.city
        order.customer.sector = resolution.sector
        order.geo_unresolved = False
        order.add_log("geography", f"City '{resolution.raw}' resolved to '{resolution.city}' ({resolution.method})")
        repository.save_order(order)
        resolved += 1
    logger.info("Geography re-resolved for %s orders", resolved)
    return resolved


def assign_city(
    repository: StoreRepository,
    cache: CityReferenceCache,
    order_id: str,
    city_name: str,
    sector: str | None = None,
    *,
    user: str = "System",
) -> Order:
    """Ручное назначение города: название должно быть в справочнике перевозчика."""
    order = repository.get_order(order_id)
    if order is None:
        raise OrderNotFound(order_id)

    wanted = clean_text(city_name)
    city = next((item for item in cache.snapshot().cities if clean_text(item.name) == wanted), None)
    if city is None:
        raise GeographyUnresolved(order_id, city_name)

    order.customer.city = city.name
    order.customer.sector = sector or resolve_sector(city, order.customer.address_raw or order.customer.address)
    order.geo_unresolved = False
    order.add_log("geography", f"City set manually to '{city.name}'", user=user)
    repository.save_order(order)
    return order
