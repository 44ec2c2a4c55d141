"""Logging, exceptions and tolerant converters shared by every subpackage.

Components log through :class:`ContextLogger`, which attaches keyword
fields to each record as ``record.extra_fields``; the JSON handler flattens
those fields next to the standard keys.
"""
import logging
import json
import os
import sys
from typing import Any, Callable, Dict, MutableMapping, Optional, Tuple, TypeVar
from datetime import datetime, timezone

LOG_LEVEL = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
logging.basicConfig(
    level=LOG_LEVEL,
    stream=sys.stdout,
    format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
)

_RESERVED_KEYS = frozenset({"ts", "level", "logger", "message", "error"})
# Keyword arguments the stdlib logging call itself understands
_PASSTHROUGH_KWARGS = ("exc_info", "stack_info", "stacklevel")

_json_loggers: Dict[str, logging.Logger] = {}

T = TypeVar("T")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, component fields flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in (getattr(record, "extra_fields", None) or {}).items():
            # a field named like a standard key must not overwrite it
            entry[f"field_{key}" if key in _RESERVED_KEYS else key] = value

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["error"] = {
                "type": type(exc).__name__,
                "detail": str(exc),
                "stack": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


def get_logger(name: str, json_format: bool = False) -> logging.Logger:
    """Return the named logger; with ``json_format`` it gets its own JSON handler.

    JSON loggers stop propagating so a record is not printed twice, once as
    JSON and once through the root's plain-text handler.
    """
    logger = logging.getLogger(name)
    if not json_format:
        return logger
    if name not in _json_loggers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.propagate = False
        logger.setLevel(LOG_LEVEL)
        _json_loggers[name] = logger
    return logger


class ContextLogger(logging.LoggerAdapter):
    """Adapter whose keyword arguments become structured record fields.

    ``log.info("flush", events=3)`` produces a record whose ``extra_fields``
    hold the adapter's own context plus ``events``.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, context)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        passthrough = {k: kwargs.pop(k) for k in _PASSTHROUGH_KWARGS if k in kwargs}
        kwargs.pop("extra", None)
        fields = dict(self.extra)
        fields.update(kwargs)
        passthrough["extra"] = {"extra_fields": fields}
        return msg, passthrough


# Custom exceptions for protocol telemetry
class ProtocolTelemetryError(Exception):
    """Base exception for all protocol telemetry errors."""
    pass


class ValidationError(ProtocolTelemetryError, ValueError):
    """Error during input validation."""
    pass


class VectorDimensionError(ValidationError):
    """Two vectors (or a vector and the catalog) disagree on length."""
    pass


class UnknownEventError(ProtocolTelemetryError, KeyError):
    """An event id does not refer to a retained event."""

    def __init__(self, event_id: str):
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id

    def __str__(self) -> str:
        return str(self.args[0])


class TransportError(ProtocolTelemetryError):
    """Delivery to the remote collector failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(ProtocolTelemetryError):
    """Error in configuration or environment setup."""
    pass


def _coerce(value: Any, default: T, cast: Callable[[Any], T],
            logger: Optional[logging.Logger], context: str) -> T:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return cast(value)
    except (ValueError, TypeError):
        if logger:
            logger.warning("Ignoring %s=%r, not a valid %s; using %r",
                           context or "value", value, cast.__name__, default)
        return default


def safe_int(value: Any, default: int, logger: Optional[logging.Logger] = None, context: str = "") -> int:
    """``int(value)``, or ``default`` when the value is blank or malformed."""
    return _coerce(value, default, int, logger, context)


def safe_float(value: Any, default: float, logger: Optional[logging.Logger] = None, context: str = "") -> float:
    """``float(value)``, or ``default`` when the value is blank or malformed."""
    return _coerce(value, default, float, logger, context)
