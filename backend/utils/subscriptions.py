"""
Polling subscriptions: re-read a snapshot on an interval and hand it to a
callback whenever it differs from the last one delivered.
"""
from typing import Any, Awaitable, Callable, Optional
import asyncio
import inspect
import logging

logger = logging.getLogger(__name__)

_NOTHING_DELIVERED = object()


class Subscription:
    """
    Owns one background task. Call unsubscribe() (or leave the ``async with``
    block) to stop it; nothing is delivered after that.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[Any]],
        callback: Callable[[Any], Any],
        fingerprint: Callable[[Any], Any],
        interval: float,
        name: str = "subscription",
    ):
        self.fetch = fetch
        self.callback = callback
        self.fingerprint = fingerprint
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "Subscription":
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.name)
            logger.debug(f"Started {self.name}")
        return self

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def unsubscribe(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug(f"Stopped {self.name}")

    async def _run(self):
        last_marker = _NOTHING_DELIVERED
        while True:
            try:
                snapshot = await self.fetch()
                marker = self.fingerprint(snapshot)
                if marker != last_marker:
                    last_marker = marker
                    result = self.callback(snapshot)
                    if inspect.isawaitable(result):
                        await result
            except Exception as e:
                # keep polling, the next round may succeed
                logger.error(f"{self.name} poll failed: {str(e)}")
            await asyncio.sleep(self.interval)

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, exc_type, exc, tb):
        self.unsubscribe()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        return False
