"""
TrainWatch Logging Configuration
Structured logging with context for the API and the expiry alert worker.

Level and output format come from the environment:
    TRAINWATCH_LOG_LEVEL   DEBUG, INFO (default), WARNING, ...
    TRAINWATCH_LOG_FORMAT  json (default) or text
"""
import logging
import sys
import json
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from functools import wraps
import time
import os

LOG_LEVEL = os.environ.get("TRAINWATCH_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.environ.get("TRAINWATCH_LOG_FORMAT", "json")

# ============================================================
# FORMATTERS
# ============================================================

class StructuredFormatter(logging.Formatter):
    """One JSON object per line, context keys merged at the top level"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(getattr(record, "context", {}))
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Coloured single-line output for local development"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    DIM = "\033[90m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        line = f"{color}[{stamp}] [{record.levelname}] {record.name}:{self.RESET} {record.getMessage()}"

        context = getattr(record, "context", {})
        pairs = " ".join(f"{k}={v}" for k, v in context.items() if k != "traceback")
        if pairs:
            line += f" {self.DIM}({pairs}){self.RESET}"
        if context.get("traceback") and LOG_LEVEL == "DEBUG":
            line += "\n" + context["traceback"]
        return line


def _build_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter() if LOG_FORMAT == "json" else TextFormatter())
    return handler


# ============================================================
# STRUCTURED LOGGER
# ============================================================

class StructuredLogger:
    """
    Thin wrapper over ``logging.Logger`` that takes context as keyword
    arguments. ``bind`` returns a child carrying default context, so a
    worker can tag every line of one alert or one run without repeating ids.
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.name = name
        self.context = dict(context or {})
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            self.logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
            self.logger.addHandler(_build_handler())
            self.logger.propagate = False

    def bind(self, **context) -> "StructuredLogger":
        merged = dict(self.context)
        merged.update(context)
        return StructuredLogger(self.name, merged)

    def _log(self, level: int, message: str, error: Optional[Exception] = None, **context):
        if not self.logger.isEnabledFor(level):
            return
        data = dict(self.context)
        data.update(context)
        if error is not None:
            data["error_type"] = type(error).__name__
            data["error_message"] = str(error)
            data["traceback"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self.logger.log(level, message, extra={"context": data})

    def debug(self, message: str, **context):
        self._log(logging.DEBUG, message, **context)

    def info(self, message: str, **context):
        self._log(logging.INFO, message, **context)

    def warning(self, message: str, **context):
        self._log(logging.WARNING, message, **context)

    def error(self, message: str, error: Optional[Exception] = None, **context):
        self._log(logging.ERROR, message, error=error, **context)

    def critical(self, message: str, error: Optional[Exception] = None, **context):
        self._log(logging.CRITICAL, message, error=error, **context)


# ============================================================
# FUNCTION TIMING DECORATOR
# ============================================================

def timed(logger: StructuredLogger, describe: Optional[Callable[[Any], Dict[str, Any]]] = None):
    """
    Log how long a call took. ``describe`` turns the return value into
    extra context for the completion line (e.g. a run summary's counters).
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__qualname__} failed",
                    error=e,
                    duration_ms=round((time.perf_counter() - start) * 1000, 2),
                )
                raise

            context = describe(result) if describe and result is not None else {}
            logger.info(
                f"{func.__qualname__} completed",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                **context,
            )
            return result

        return wrapper

    return decorator


# ============================================================
# LOGGER INSTANCES
# ============================================================

api_logger = StructuredLogger("trainwatch.api")
alerts_logger = StructuredLogger("trainwatch.alerts")
mail_logger = StructuredLogger("trainwatch.mail")
scheduler_logger = StructuredLogger("trainwatch.scheduler")
db_logger = StructuredLogger("trainwatch.db")


def get_logger(name: str) -> StructuredLogger:
    """Get a logger under the ``trainwatch`` namespace"""
    return StructuredLogger(f"trainwatch.{name}")
