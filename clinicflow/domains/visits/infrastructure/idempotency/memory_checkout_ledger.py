"""In-process checkout ledger for a single operator station."""

import asyncio
import logging

from ...application.dto.checkout import Receipt

logger = logging.getLogger(__name__)


class InMemoryCheckoutLedger:
    """Checkout ledger kept in a dict. Entries live as long as the process."""

    def __init__(self) -> None:
        self._processing: set[str] = set()
        self._receipts: dict[str, Receipt] = {}
        self._records: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def check_and_lock(self, key: str) -> tuple[bool, Receipt | None]:
        async with self._lock:
            if key in self._receipts:
                logger.info(f"[IDEMPOTENCY] Checkout {key} already committed")
                return (True, self._receipts[key])
            if key in self._processing:
                logger.warning(f"[IDEMPOTENCY] Checkout {key} is currently being processed")
                return (True, None)
            self._processing.add(key)
            return (False, None)

    async def mark_complete(self, key: str, receipt: Receipt) -> None:
        async with self._lock:
            self._processing.discard(key)
            self._receipts[key] = receipt
        logger.info(f"[IDEMPOTENCY] Marked checkout {key} complete for record {receipt.record_id}")

    async def mark_failed(self, key: str, error: str) -> None:
        async with self._lock:
            self._processing.discard(key)
        logger.warning(f"[IDEMPOTENCY] Removed lock for failed checkout {key}: {error}")

    async def get_receipt(self, key: str) -> Receipt | None:
        return self._receipts.get(key)

    async def bind_record(self, key: str, record_id: str) -> None:
        self._records[key] = record_id

    async def bound_record(self, key: str) -> str | None:
        return self._records.get(key)
