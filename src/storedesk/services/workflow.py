from __future__ import annotations

import logging
import secrets
import string

from storedesk.core.db import StoreRepository
from storedesk.core.errors import OrderNotFound
from storedesk.core.fulfillment import (
    apply_order_action,
    apply_purchase_order_action,
    mark_invoice_downloaded,
)
from storedesk.core.normalize import Order, PurchaseOrder, PurchaseOrderItem

PURCHASE_ORDER_PREFIX = "PO-"


class WorkflowService:
    """Operator actions on orders and purchase orders, persisted after each transition."""

    def __init__(self, repository: StoreRepository, logger: logging.Logger | logging.LoggerAdapter):
        self.repository = repository
        self.logger = logger

    def _order(self, order_id: str) -> Order:
        order = self.repository.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _purchase_order(self, purchase_order_id: str) -> PurchaseOrder:
        purchase_order = self.repository.get_purchase_order(purchase_order_id)
        if purchase_order is None:
            raise OrderNotFound(purchase_order_id)
        return purchase_order

    def order_action(self, order_id: str, action: str, *, user: str = "System", note: str | None = None) -> Order:
        order = self._order(order_id)
        previous = order.status
        if apply_order_action(order, action, user=user, note=note):
            self.repository.save_order(order)
            self.logger.info(
                "Order %s: %s (%s -> %s)",
                order.id,
                action,
                previous.value,
                order.status.value,
                extra={"order_id": order.id},
            )
        else:
            self.logger.info("Order %s already %s, nothing to do", order.id, order.status.value)
        return order

    def invoice_downloaded(self, order_id: str, *, user: str = "System") -> Order:
        order = self._order(order_id)
        if mark_invoice_downloaded(order, user=user):
            self.repository.save_order(order)
        return order

    def create_purchase_order(
        self,
        supplier_id: str,
        items: list[PurchaseOrderItem],
        *,
        supplier_name: str | None = None,
        user: str = "System",
    ) -> PurchaseOrder:
        purchase_order_id = PURCHASE_ORDER_PREFIX + "".join(
            secrets.choice(string.digits + string.ascii_uppercase) for _ in range(6)
        )
        purchase_order = PurchaseOrder(
            id=purchase_order_id,
            supplier_id=supplier_id,
            supplier_name=supplier_name,
            items=items,
        )
        purchase_order.add_log("create", f"Purchase order created ({len(items)} items)", user=user)
        self.repository.create_purchase_order(purchase_order)
        self.logger.info("Purchase order %s created for supplier %s", purchase_order.id, supplier_id)
        return purchase_order

    def purchase_order_action(self, purchase_order_id: str, action: str, *, user: str = "System") -> PurchaseOrder:
        purchase_order = self._purchase_order(purchase_order_id)
        apply_purchase_order_action(purchase_order, action, user=user)
        self.repository.save_purchase_order(purchase_order)
        self.logger.info("Purchase order %s: %s -> %s", purchase_order.id, action, purchase_order.status.value)
        return purchase_order
