from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressTicker:
    """Cosmetic progress counter advanced on a fixed cadence.

    The value says nothing about the real request; it only climbs toward
    ``cap`` so the user sees movement while the remote call is outstanding.
    The owner cancels the ticker once the call settles and then sets the
    final value itself.
    """

    def __init__(
        self,
        on_tick: Callable[[int], None],
        *,
        interval: float = 0.05,
        step: int = 2,
        cap: int = 95,
        start: int = 0,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._on_tick = on_tick
        self.interval = float(interval)
        self.step = max(0, int(step))
        self.cap = int(cap)
        self.value = min(int(start), self.cap)
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.value >= self.cap:
                continue
            self.value = min(self.cap, self.value + self.step)
            self._on_tick(self.value)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the timer task and wait until it has fully unwound."""

        task = self._task
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("progress ticker stopped at %d", self.value)


__all__ = ["ProgressTicker"]
