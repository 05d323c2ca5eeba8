"""
Shared Logger

Logging setup for clinicflow. Payment code logs through ``PaymentLogger``
so every line about a checkout carries the identifiers an operator needs
to reconcile it by hand: the visit record, the checkout key, and the
gateway's order code and invoice id.
"""

import json
import logging
import sys
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_PATTERN = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class PaymentContext:
    """Identifiers attached to payment log records. ``None`` fields are omitted."""

    component: str | None = None
    record_id: str | None = None
    payment_key: str | None = None
    order_code: str | None = None
    invoice_id: str | None = None
    session_state: str | None = None

    def merged(self, **fields: str | None) -> "PaymentContext":
        return replace(self, **fields)

    def as_dict(self) -> dict[str, str]:
        return {name: str(value) for name, value in asdict(self).items() if value is not None}


def _payment_fields(record: logging.LogRecord) -> dict[str, str]:
    return getattr(record, "payment", None) or {}


class JSONFormatter(logging.Formatter):
    """One JSON object per line; payment identifiers are top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_payment_fields(record),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain text with the payment identifiers appended as ``[key=value ...]``."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _payment_fields(record)
        if not fields:
            return line
        # Component is already implied by the logger name
        suffix = " ".join(f"{k}={v}" for k, v in fields.items() if k != "component")
        return f"{line} [{suffix}]" if suffix else line


class ColoredFormatter(ConsoleFormatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers do not see the escape codes
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


class PaymentLogger:
    """Logger bound to a ``PaymentContext``.

    Keyword arguments on each call add identifiers to that record only;
    ``bind`` returns a logger that keeps them. Unknown identifiers raise
    ``TypeError``.
    """

    def __init__(self, name: str, context: PaymentContext | None = None):
        self._logger = logging.getLogger(name)
        self._context = context or PaymentContext()

    @property
    def context(self) -> PaymentContext:
        return self._context

    def bind(self, **fields: str | None) -> "PaymentLogger":
        return PaymentLogger(self._logger.name, self._context.merged(**fields))

    def _log(self, level: int, message: str, fields: dict[str, str | None]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        context = self._context.merged(**fields) if fields else self._context
        self._logger.log(level, message, extra={"payment": context.as_dict()}, stacklevel=3)

    def debug(self, message: str, **fields: str | None) -> None:
        self._log(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: str | None) -> None:
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields: str | None) -> None:
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields: str | None) -> None:
        self._log(logging.ERROR, message, fields)

    def critical(self, message: str, **fields: str | None) -> None:
        self._log(logging.CRITICAL, message, fields)


def configure_logging(level: str = "INFO", format_type: str = "colored") -> None:
    """
    Configure package logging on the root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'colored', 'json', or 'plain'
    """
    numeric_level = getattr(logging, level.upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if format_type == "json":
        handler.setFormatter(JSONFormatter())
    elif format_type == "colored":
        handler.setFormatter(ColoredFormatter(CONSOLE_PATTERN, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(ConsoleFormatter(CONSOLE_PATTERN, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)


def get_logger(name: str, **context: str | None) -> PaymentLogger:
    """Payment logger for ``name`` (typically ``__name__``) with initial identifiers."""
    return PaymentLogger(name, PaymentContext(**context))
