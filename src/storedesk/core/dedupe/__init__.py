from .guard import DuplicateMatch, IdempotencyGuard
from .keys import (
    SOURCE_WOOCOMMERCE,
    build_external_ref,
    import_log_message,
    import_marker,
    normalize_order_date,
)

__all__ = [
    "SOURCE_WOOCOMMERCE",
    "DuplicateMatch",
    "IdempotencyGuard",
    "build_external_ref",
    "import_log_message",
    "import_marker",
    "normalize_order_date",
]
