from __future__ import annotations

import logging
from dataclasses import dataclass

from storedesk.carriers import sort_code, tracking_code
from storedesk.carriers.cathedis import CathedisClient, build_delivery_request
from storedesk.config import Settings
from storedesk.core.db import StoreRepository
from storedesk.core.errors import (
    CarrierError,
    ConfigurationError,
    GeographyUnresolved,
    InvalidTransition,
    OrderNotFound,
)
from storedesk.core.fulfillment import apply_order_action, ensure_can_ship
from storedesk.core.geography import CityReferenceCache, resolve_city
from storedesk.core.normalize import Order, OrderStatus


@dataclass(slots=True)
class ShipmentOutcome:
    order_id: str
    success: bool
    shipping_id: str | None = None
    tracking_code: str | None = None
    sort_code: str | None = None
    message: str = ""


class ShippingService:
    """
    Создание отправлений у перевозчика для подтверждённых заказов.

    Ошибка перевозчика не меняет статус заказа: она пишется в лог заказа
    и возвращается в ShipmentOutcome. Недопустимый переход и нерешённый
    город поднимаются сразу, до обращения к перевозчику.
    """

    def __init__(
        self,
        settings: Settings,
        repository: StoreRepository,
        city_cache: CityReferenceCache,
        logger: logging.Logger | logging.LoggerAdapter,
        client: CathedisClient | None = None,
    ):
        self.settings = settings
        self.repository = repository
        self.city_cache = city_cache
        self.logger = logger
        self._client = client

    @property
    def client(self) -> CathedisClient:
        if self._client is None:
            if not self.settings.cathedis_connected:
                raise ConfigurationError("Cathedis is not connected: set CATHEDIS_USERNAME and CATHEDIS_PASSWORD")
            self._client = CathedisClient(self.settings.cathedis, logger=self.logger)
        return self._client

    def _load(self, order_id: str) -> Order:
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _ensure_geography(self, order: Order) -> None:
        if not order.geo_unresolved:
            return
        resolution = resolve_city(
            order.customer.city_raw or order.customer.city,
            self.city_cache.snapshot().cities,
            address=order.customer.address_raw or order.customer.address,
            threshold=self.settings.city_match_threshold,
        )
        if not resolution.resolved:
            raise GeographyUnresolved(order.id, order.customer.city_raw or order.customer.city)

        order.customer.city = resolution.city
        order.customer.sector = resolution.sector
        order.geo_unresolved = False
        order.add_log("geography", f"City '{resolution.raw}' resolved to '{resolution.city}' ({resolution.method})")

    def ship_order(self, order_id: str, *, pickup: str | int | None = None, user: str = "System") -> ShipmentOutcome:
        order = self._load(order_id)
        ensure_can_ship(order)
        self._ensure_geography(order)

        pickup_id = self.settings.cathedis.pickup_location_id(pickup)
        request = build_delivery_request(order, pickup_location_id=pickup_id)
        try:
            result = self.client.create_delivery(request)
        except CarrierError as exc:
            self.logger.warning(
                "Shipment for order %s failed: %s", order.id, exc, extra={"order_id": order.id}
            )
            order.add_log("shipment_failed", f"Carrier error: {exc}", user=user)
            self.repository.save_order(order)
            return ShipmentOutcome(order_id=order.id, success=False, message=str(exc))

        order.shipping_id = result.delivery_id
        code = tracking_code(result.delivery_id)
        apply_order_action(order, "mark_shipped", user=user, note=code)
        self.repository.save_order(order)

        self.logger.info(
            "Order %s shipped, carrier id %s", order.id, result.delivery_id, extra={"order_id": order.id}
        )
        return ShipmentOutcome(
            order_id=order.id,
            success=True,
            shipping_id=result.delivery_id,
            tracking_code=code,
            sort_code=sort_code(order.customer.city, order.id),
            message="Shipment created",
        )

    def ship_eligible(self, *, pickup: str | int | None = None, user: str = "System") -> list[ShipmentOutcome]:
        # неизвестная точка забора останавливает пакет до первого обращения к перевозчику
        self.settings.cathedis.pickup_location_id(pickup)
        outcomes: list[ShipmentOutcome] = []
        for order in self.repository.list_orders(OrderStatus.SALES_ORDER):
            if order.shipping_id:
                continue
            try:
                outcomes.append(self.ship_order(order.id, pickup=pickup, user=user))
            except (GeographyUnresolved, InvalidTransition) as exc:
                outcomes.append(ShipmentOutcome(order_id=order.id, success=False, message=str(exc)))
        return outcomes

    def _shipping_ids(self, order_ids: list[str]) -> list[int]:
        ids: list[int] = []
        for order_id in order_ids:
            order = self._load(order_id)
            if not order.shipping_id:
                raise InvalidTransition(order.id, "request_pickup", order.status.value)
            ids.append(int(order.shipping_id))
        return ids

    def request_pickup(self, order_ids: list[str], *, pickup: str | int | None = None) -> int:
        pickup_id = self.settings.cathedis.pickup_location_id(pickup)
        if pickup_id is None:
            raise ConfigurationError("No pickup location configured (CATHEDIS_PICKUP_LOCATIONS)")
        delivery_ids = self._shipping_ids(order_ids)
        self.client.request_pickup(delivery_ids, pickup_id)
        self.logger.info("Pickup requested for %s deliveries at location %s", len(delivery_ids), pickup_id)
        return len(delivery_ids)

    def voucher_url(self, order_ids: list[str]) -> str | None:
        return self.client.generate_voucher(self._shipping_ids(order_ids))
