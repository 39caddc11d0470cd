from .woocommerce import normalize_order, parse_woocommerce_order, payload_order_date, payload_total

__all__ = ["normalize_order", "parse_woocommerce_order", "payload_order_date", "payload_total"]
