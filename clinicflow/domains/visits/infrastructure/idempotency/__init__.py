"""Checkout idempotency ledgers."""

from .memory_checkout_ledger import InMemoryCheckoutLedger
from .redis_checkout_ledger import RedisCheckoutLedger

__all__ = ["InMemoryCheckoutLedger", "RedisCheckoutLedger"]
