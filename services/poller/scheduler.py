"""Conditional prediction schedule for the display poller.

At most one prediction task is live at a time. The poller's primary
tick is the only caller of :meth:`PredictionScheduler.start` and
:meth:`PredictionScheduler.stop`.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

import structlog

logger = structlog.get_logger(__name__)

FetchFn = Callable[[int], Awaitable[None]]


class PredictionScheduler:
    """Owns an optional cancellable prediction task.

    A started schedule fetches once immediately and then every
    ``interval_s`` seconds. Each start gets a new generation number,
    passed to *fetch*, so results from a stopped schedule can be
    recognised with :meth:`is_current` and dropped.
    """

    def __init__(self, fetch: FetchFn, interval_s: float) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._fetch = fetch
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task] = None
        self._retired: Set[asyncio.Task] = set()
        self.generation = 0
        self.starts = 0

    @property
    def active(self) -> bool:
        return self._task is not None

    def is_current(self, generation: int) -> bool:
        return self._task is not None and generation == self.generation

    def start(self) -> bool:
        """Start the schedule unless one is already live."""
        if self._task is not None:
            return False
        self.generation += 1
        self.starts += 1
        self._task = asyncio.create_task(self._run(self.generation))
        logger.info("prediction_schedule_started", generation=self.generation)
        return True

    def stop(self) -> bool:
        """Cancel the live schedule, if any."""
        if self._task is None:
            return False
        task, self._task = self._task, None
        task.cancel()
        self._retired.add(task)
        task.add_done_callback(self._retired.discard)
        logger.info("prediction_schedule_stopped", generation=self.generation)
        return True

    async def aclose(self) -> None:
        """Stop and wait for every cancelled task to finish unwinding."""
        self.stop()
        if self._retired:
            await asyncio.gather(*list(self._retired), return_exceptions=True)

    async def _run(self, generation: int) -> None:
        while True:
            try:
                await self._fetch(generation)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("prediction_tick_error", generation=generation)
            await asyncio.sleep(self.interval_s)
