"""Synthetic progress shown while the extraction service is working.

Purely cosmetic: the value only moves forward, stays below the cap until
the call resolves, and is then snapped to 100. The ticking task must be
stopped when the call resolves or its owner is torn down.
"""

import asyncio
from typing import Callable, Optional

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ProgressEstimator:
    """Advances a percentage on a fixed interval until stopped."""

    def __init__(
        self,
        start: int = 40,
        step: int = 5,
        cap: int = 85,
        interval: float = 0.5,
        on_change: Optional[Callable[[int], None]] = None,
    ):
        self.start_value = start
        self.step = step
        self.cap = cap
        self.interval = interval
        self.on_change = on_change
        self._value = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def value(self) -> int:
        return self._value

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def advance_to(self, value: int) -> None:
        """Move forward to ``value``; lower values are ignored."""
        if value > self._value:
            self._value = min(value, 100)
            if self.on_change is not None:
                self.on_change(self._value)

    def start(self) -> None:
        if self.running:
            return
        self.advance_to(self.start_value)
        self._task = asyncio.create_task(self._tick())

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.advance_to(min(self._value + self.step, self.cap))

    def stop(self, completed: bool = False) -> None:
        """Cancel the ticking task; snap to 100 when the call completed."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if completed:
            self.advance_to(100)

    def reset(self) -> None:
        """Clear the value for a fresh attempt."""
        self.stop()
        self._value = 0
