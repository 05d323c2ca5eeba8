"""
Redis Checkout Ledger

Redis-based idempotency for checkouts, shared by every operator station
that talks to the same Redis.

Key Design:
- SET NX PX acquires a short processing lock
- A completed checkout stores ``receipt:<json>`` with a 24-hour TTL
- ``mark_failed`` deletes the lock so the checkout may be retried
- ``<key>:record`` keeps the id of a record the checkout created, so a
  retry after a failure pays that record instead of creating another

States:
- Not found: checkout not seen before
- "processing": checkout is being committed by another caller
- "receipt:{...}": checkout committed, value is the serialized Receipt
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from ...application.dto.checkout import Receipt

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

CHECKOUT_KEY_PREFIX = "clinicflow:checkout"

# Processing lock TTL (5 minutes)
PROCESSING_LOCK_TTL_MS = 5 * 60 * 1000

# Completed checkout TTL (24 hours)
COMPLETED_TTL_MS = 24 * 60 * 60 * 1000

_PROCESSING = "processing"
_RECEIPT_PREFIX = "receipt:"


class RedisCheckoutLedger:
    """Checkout ledger backed by Redis."""

    def __init__(
        self,
        redis_client: Redis,
        lock_ttl_ms: int = PROCESSING_LOCK_TTL_MS,
        completed_ttl_ms: int = COMPLETED_TTL_MS,
    ):
        self._redis = redis_client
        self._lock_ttl_ms = lock_ttl_ms
        self._completed_ttl_ms = completed_ttl_ms

    def _get_key(self, key: str) -> str:
        return f"{CHECKOUT_KEY_PREFIX}:{key}"

    async def check_and_lock(self, key: str) -> tuple[bool, Receipt | None]:
        """
        Check whether the checkout was already committed and acquire the lock.

        Args:
            key: Checkout key (``cash:<checkout id>`` or ``qr:<order code>``)

        Returns:
            Tuple of (is_duplicate, previous_receipt_or_none)
        """
        redis_key = self._get_key(key)
        existing = await self._redis.get(redis_key)

        if existing:
            existing_str = existing.decode() if isinstance(existing, bytes) else str(existing)

            if existing_str == _PROCESSING:
                logger.warning(f"[IDEMPOTENCY] Checkout {key} is currently being processed")
                return (True, None)

            receipt = self._parse_receipt(key, existing_str)
            if receipt is not None:
                logger.info(f"[IDEMPOTENCY] Checkout {key} already committed")
                return (True, receipt)

            logger.warning(f"[IDEMPOTENCY] Checkout {key} has unknown value: {existing_str[:80]}")
            return (True, None)

        acquired = await self._redis.set(redis_key, _PROCESSING, nx=True, px=self._lock_ttl_ms)
        if acquired:
            logger.debug(f"[IDEMPOTENCY] Acquired lock for checkout {key}")
            return (False, None)

        logger.info(f"[IDEMPOTENCY] Lost race for checkout {key}")
        return (True, None)

    async def mark_complete(self, key: str, receipt: Receipt) -> None:
        value = f"{_RECEIPT_PREFIX}{receipt.model_dump_json()}"
        await self._redis.set(self._get_key(key), value, px=self._completed_ttl_ms)
        logger.info(f"[IDEMPOTENCY] Marked checkout {key} complete for record {receipt.record_id}")

    async def mark_failed(self, key: str, error: str) -> None:
        await self._redis.delete(self._get_key(key))
        logger.warning(f"[IDEMPOTENCY] Removed lock for failed checkout {key}: {error}")

    async def get_receipt(self, key: str) -> Receipt | None:
        value = await self._redis.get(self._get_key(key))
        if not value:
            return None
        value_str = value.decode() if isinstance(value, bytes) else str(value)
        return self._parse_receipt(key, value_str)

    async def bind_record(self, key: str, record_id: str) -> None:
        await self._redis.set(f"{self._get_key(key)}:record", record_id, px=self._completed_ttl_ms)
        logger.debug(f"[IDEMPOTENCY] Checkout {key} created record {record_id}")

    async def bound_record(self, key: str) -> str | None:
        value = await self._redis.get(f"{self._get_key(key)}:record")
        if not value:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    @staticmethod
    def _parse_receipt(key: str, value: str) -> Receipt | None:
        if not value.startswith(_RECEIPT_PREFIX):
            return None
        try:
            return Receipt.model_validate_json(value[len(_RECEIPT_PREFIX) :])
        except ValidationError as e:
            logger.error(f"[IDEMPOTENCY] Stored receipt for {key} is unreadable: {e}")
            return None


__all__ = ["RedisCheckoutLedger", "CHECKOUT_KEY_PREFIX"]
