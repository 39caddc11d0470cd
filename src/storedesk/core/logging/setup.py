from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pythonjsonlogger import jsonlogger

CONTEXT_FIELDS = ("correlation_id", "order_id", "external_id")


class ContextFilter(logging.Filter):
    """Fills context fields so formatters never fail on records from third-party loggers."""

    def __init__(self, correlation_id: str):
        super().__init__()
        self._correlation_id = correlation_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = self._correlation_id
        for name in CONTEXT_FIELDS[1:]:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True


def configure_logging(
    log_dir: Path,
    correlation_id: str,
    level: int = logging.INFO,
    console: bool = True,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    utc_day = datetime.now(timezone.utc).strftime("%Y-%m-%d")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    context_filter = ContextFilter(correlation_id)
    text_formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    json_formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(correlation_id)s %(order_id)s %(external_id)s %(message)s"
    )

    handlers: list[logging.Handler] = [
        logging.FileHandler(log_dir / f"storedesk-{utc_day}.log", encoding="utf-8"),
        logging.FileHandler(log_dir / f"storedesk-{utc_day}.jsonl", encoding="utf-8"),
    ]
    handlers[0].setFormatter(text_formatter)
    handlers[1].setFormatter(json_formatter)
    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(text_formatter)
        handlers.append(stream_handler)

    for handler in handlers:
        handler.addFilter(context_filter)
        root.addHandler(handler)


def get_logger(name: str, correlation_id: str, **context: str) -> logging.LoggerAdapter:
    base_logger = logging.getLogger(name)
    return logging.LoggerAdapter(base_logger, extra={"correlation_id": correlation_id, **context})
