import asyncio
from typing import Optional

from .exceptions import RequestCancelledError


class CancellationToken:
    """Cooperative cancellation signal threaded through a request.

    One token can be shared by several calls; cancelling it aborts every
    call that has not resolved yet.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, url: Optional[str] = None):
        if self._event.is_set():
            raise RequestCancelledError(url)

    async def wait(self):
        await self._event.wait()

    async def sleep(self, delay: float, url: Optional[str] = None):
        """Sleep for ``delay`` seconds, aborting early if cancelled."""
        self.raise_if_cancelled(url)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise RequestCancelledError(url)
