"""
A cooperative cancellation token, handed to the transport at send time.

The transport races every suspension point against `wait()`. Callbacks registered
with `add_callback` run synchronously, in registration order, on the first `cancel()`.
"""
import asyncio
from typing import Callable


class CancellationToken:
    def __init__(self):
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Returns True only for the call that actually cancelled."""
        if self._event.is_set():
            return False
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], object]) -> None:
        if self.cancelled:
            callback()
            return
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], object]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def wait(self) -> None:
        await self._event.wait()
