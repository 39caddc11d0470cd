from __future__ import annotations

import base64
import hashlib
import hmac

from storedesk.core.errors import AuthenticationFailure

SIGNATURE_HEADER = "X-WC-Webhook-Signature"


def compute_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> None:
    """
    Проверяет подпись вебхука WooCommerce.

    Подпись считается по сырым байтам тела запроса, до любого парсинга JSON:
    повторная сериализация меняет байты и ломает сравнение.
    """
    if not signature or not signature.strip():
        raise AuthenticationFailure("Missing webhook signature")
    if not secret:
        raise AuthenticationFailure("Webhook secret is not configured")

    expected = compute_signature(body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("ascii", errors="replace")):
        raise AuthenticationFailure("Invalid webhook signature")
