"""
Shared utilities module

Domain-agnostic helpers used across the package.
"""

from .logger import PaymentContext, PaymentLogger, configure_logging, get_logger

__all__ = [
    "PaymentContext",
    "PaymentLogger",
    "configure_logging",
    "get_logger",
]
