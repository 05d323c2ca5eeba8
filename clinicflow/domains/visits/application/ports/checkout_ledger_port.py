# ============================================================================
# SCOPE: APPLICATION LAYER (Visits)
# Description: Checkout idempotency ledger port.
# ============================================================================
"""Checkout Ledger Port.

Remembers which payments were already committed so a repeated checkout
or a duplicate settlement returns the original receipt instead of
paying, committing or printing twice.
"""

from typing import Protocol, runtime_checkable

from ..dto.checkout import Receipt


@runtime_checkable
class ICheckoutLedger(Protocol):
    """Interface for checkout idempotency.

    Implementations: InMemoryCheckoutLedger, RedisCheckoutLedger
    """

    async def check_and_lock(self, key: str) -> tuple[bool, Receipt | None]:
        """Acquire the processing lock for ``key``.

        Returns:
            ``(is_duplicate, receipt)``. ``(False, None)`` means the lock was
            acquired; ``(True, receipt)`` a completed checkout; ``(True, None)``
            a checkout still in progress.
        """
        ...

    async def mark_complete(self, key: str, receipt: Receipt) -> None:
        ...

    async def mark_failed(self, key: str, error: str) -> None:
        """Release the lock so the checkout may be tried again."""
        ...

    async def get_receipt(self, key: str) -> Receipt | None:
        ...

    async def bind_record(self, key: str, record_id: str) -> None:
        """Remember the record a checkout created. Survives ``mark_failed``."""
        ...

    async def bound_record(self, key: str) -> str | None:
        ...
