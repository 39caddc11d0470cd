from __future__ import annotations


class StoredeskError(Exception):
    pass


class ConfigurationError(StoredeskError):
    pass


class AuthenticationFailure(StoredeskError):
    """Webhook signature is missing, wrong, or cannot be checked."""


class MalformedEvent(StoredeskError):
    """Payload is not an order (ping, missing id or billing block)."""


class DuplicateEvent(StoredeskError):
    def __init__(self, external_id: str, existing_order_id: str | None = None):
        super().__init__(f"Order #{external_id} already imported as {existing_order_id or 'unknown'}")
        self.external_id = external_id
        self.existing_order_id = existing_order_id


class OrderNotFound(StoredeskError):
    pass


class GeographyUnresolved(StoredeskError):
    def __init__(self, order_id: str, raw_city: str | None):
        super().__init__(f"City of order {order_id} is not resolved: {raw_city!r}")
        self.order_id = order_id
        self.raw_city = raw_city


class InvalidTransition(StoredeskError):
    def __init__(self, entity_id: str, action: str, status: str):
        super().__init__(f"Cannot {action} {entity_id} from status {status!r}")
        self.entity_id = entity_id
        self.action = action
        self.status = status


class CarrierError(StoredeskError):
    pass


class CarrierUnavailable(CarrierError):
    """Transient failure: timeouts, connection errors, 5xx after retries."""


class CarrierRejected(CarrierError):
    """Non-transient failure: the carrier refused the request."""

    def __init__(self, message: str, status_code: int | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class SourceError(StoredeskError):
    """WooCommerce REST pull failed after retries or was refused."""
