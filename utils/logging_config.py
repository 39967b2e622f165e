"""
Structured JSON Logging Configuration for the age verification API.

Provides JSON-formatted logs with:
- timestamp (ISO 8601)
- level
- message
- logger name
- request_id of the HTTP request being served (when there is one)
- Extra context (latency_ms, field, strategy, etc.)
"""
import logging
import json
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

# Set by middleware.request_id for the duration of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

EXTRA_FIELDS = ["request_id", "endpoint", "latency_ms", "status_code", "method", "path", "field", "strategy"]


class RequestIDFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """Custom formatter that outputs JSON-structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via logging.info(..., extra={...})
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON formatting; else use plain text
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler.addFilter(RequestIDFilter())

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        ))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def log_execution_time(func):
    """
    Decorator to log function execution time.

    Logs at INFO level with function name and duration in milliseconds.
    Works with both synchronous and asynchronous functions.
    """
    import functools
    import time
    import asyncio

    logger = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{func.__name__} completed in {elapsed_ms:.2f}ms",
                extra={"latency_ms": round(elapsed_ms, 2)}
            )

    @functools.wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return await func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{func.__name__} completed in {elapsed_ms:.2f}ms",
                extra={"latency_ms": round(elapsed_ms, 2)}
            )

    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
