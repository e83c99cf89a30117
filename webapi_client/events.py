import asyncio
import inspect
import logging
from typing import Any, Callable, Generic, List, TypeVar

from .models import RequestMetrics

logger = logging.getLogger(__name__)

E = TypeVar("E")


class EventChannel(Generic[E]):
    """Fan-out of one event type to any number of subscribers.

    Delivery is best effort: a failing subscriber is logged and skipped,
    and coroutine subscribers are scheduled rather than awaited so that
    publishing never blocks the request that produced the event.
    """

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[E], Any]] = []
        self._pending: set = set()

    def subscribe(self, callback: Callable[[E], Any]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[E], Any]):
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._subscribers)

    def publish(self, event: E):
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    self._schedule(result)
            except Exception:
                logger.exception("Subscriber %r of %s raised", callback, self.name)

    def _schedule(self, awaitable):
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Async subscriber of %s raised: %r", self.name, error, exc_info=error)

    async def drain(self):
        """Wait for scheduled coroutine subscribers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


class ObservabilitySink:
    """Holds the two client event channels"""

    def __init__(self):
        self.request_completed: EventChannel[RequestMetrics] = EventChannel("request_completed")
        self.request_failed: EventChannel[Exception] = EventChannel("request_failed")

    def on_request_completed(self, callback: Callable[[RequestMetrics], Any]) -> Callable[[], None]:
        return self.request_completed.subscribe(callback)

    def on_request_failed(self, callback: Callable[[Exception], Any]) -> Callable[[], None]:
        return self.request_failed.subscribe(callback)

    def emit_completed(self, metrics: RequestMetrics):
        self.request_completed.publish(metrics)

    def emit_failed(self, error: Exception):
        self.request_failed.publish(error)

    async def drain(self):
        await self.request_completed.drain()
        await self.request_failed.drain()
