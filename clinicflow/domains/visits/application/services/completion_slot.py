"""Single-assignment completion slot.

The first ``try_resolve`` wins; every later attempt returns False and
changes nothing. Resolution may come from any thread (transport
callbacks, timers, the operator); waiters are woken on their own loop.
"""

import asyncio
import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class CompletionSlot(Generic[T]):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resolved = False
        self._value: T | None = None
        self._waiters: list[asyncio.Future] = []
        self._callbacks: list[Callable[[T], None]] = []

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def value(self) -> T | None:
        return self._value

    def try_resolve(self, value: T) -> bool:
        """Resolve with ``value`` unless already resolved.

        Returns:
            True if this call won.
        """
        with self._lock:
            if self._resolved:
                return False
            self._resolved = True
            self._value = value
            waiters, self._waiters = self._waiters, []
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            callback(value)
        for waiter in waiters:
            _wake(waiter, value)
        return True

    def add_done_callback(self, callback: Callable[[T], None]) -> None:
        """Call ``callback(value)`` on resolution, immediately if already resolved."""
        with self._lock:
            if not self._resolved:
                self._callbacks.append(callback)
                return
            value = self._value
        callback(value)  # type: ignore[arg-type]

    async def wait(self, timeout: float | None = None) -> T:
        """Wait for the resolved value.

        Raises:
            TimeoutError: If ``timeout`` elapses first. The slot stays open.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._resolved:
                return self._value  # type: ignore[return-value]
            waiter = loop.create_future()
            self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout)
        finally:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)


def _wake(waiter: asyncio.Future, value: object) -> None:
    loop = waiter.get_loop()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        _set_result(waiter, value)
    else:
        loop.call_soon_threadsafe(_set_result, waiter, value)


def _set_result(waiter: asyncio.Future, value: object) -> None:
    if not waiter.done():
        waiter.set_result(value)
