from __future__ import annotations

import logging
from typing import Any, Callable

import requests

TRANSIENT_ERRORS = (requests.Timeout, requests.ConnectionError, requests.exceptions.ChunkedEncodingError)


def request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    *,
    max_retries: int,
    backoff_sec: float,
    sleep: Callable[[float], None],
    logger: logging.Logger | logging.LoggerAdapter,
    unavailable: type[Exception],
    label: str,
    **kwargs: Any,
) -> requests.Response:
    """
    Повторяет только временные сбои: таймауты, обрывы соединения и 5xx,
    с задержкой backoff_sec * 2**attempt. Остальные ошибки транспорта
    сразу превращаются в `unavailable` без повтора.
    """
    last_error = ""
    for attempt in range(max_retries + 1):
        try:
            response = session.request(method, url, **kwargs)
        except TRANSIENT_ERRORS as exc:
            last_error = f"{exc.__class__.__name__}: {exc}"
        except requests.RequestException as exc:
            raise unavailable(f"{label} failed: {exc.__class__.__name__}: {exc}") from exc
        else:
            if response.status_code < 500:
                return response
            last_error = f"HTTP {response.status_code}"

        if attempt < max_retries:
            delay = backoff_sec * (2**attempt)
            logger.warning(
                "%s failed (%s), retry %s/%s in %.1fs",
                label,
                last_error,
                attempt + 1,
                max_retries,
                delay,
            )
            sleep(delay)

    raise unavailable(f"{label} failed after {max_retries + 1} attempts: {last_error}")
