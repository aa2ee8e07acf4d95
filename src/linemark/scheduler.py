"""Single-slot deferred callbacks on the asyncio event loop."""

import asyncio
from typing import Callable, Optional


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class SingleSlotTimer:
    """schedule(delay, fn) replaces whatever was pending; only the last one fires.

    Without an event loop (plain scripts, the CLI) the callback runs
    immediately instead.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, fn: Callable[[], object]) -> None:
        self.cancel()
        loop = self._loop or _running_loop()
        if loop is None:
            fn()
            return
        self._handle = loop.call_later(delay, self._fire, fn)

    def cancel(self) -> bool:
        """Drop the pending callback. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _fire(self, fn: Callable[[], object]) -> None:
        self._handle = None
        fn()
