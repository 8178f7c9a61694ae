"""Monotonic progress stream from one extraction run to its consumer."""

import asyncio
import logging
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class ProgressChannel:
    """
    Single-producer, single-consumer stream of completion percentages.

    Only values strictly greater than the last delivered one get through,
    so consumers see a strictly increasing sequence. Once closed, further
    values are discarded.
    """

    def __init__(self):
        self._last: float | None = None
        self._closed = False
        self._callbacks: list[ProgressCallback] = []
        self._pending: float | None = None
        self._wakeup = asyncio.Event()

    @property
    def last_value(self) -> float:
        return self._last if self._last is not None else 0.0

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def publish(self, value: float) -> bool:
        """Deliver value if it advances the stream. Returns whether it was delivered."""
        if self._closed:
            return False
        if self._last is not None and value <= self._last:
            return False

        self._last = value
        self._pending = value
        self._wakeup.set()

        for callback in list(self._callbacks):
            try:
                callback(value)
            except Exception as e:
                # Progress is advisory; a broken listener must not stop extraction
                logger.warning(f"Progress listener failed: {e}")
        return True

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    async def updates(self) -> AsyncIterator[float]:
        """
        Yield delivered values until the channel closes.

        A slow consumer only sees the most recent value published since
        its last iteration.
        """
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            if self._pending is not None:
                value, self._pending = self._pending, None
                yield value
            if self._closed and self._pending is None:
                return
