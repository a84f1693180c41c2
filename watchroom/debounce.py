"""
Watchroom — Debounced action

Collapses a burst of triggers into one invocation that fires after the
input has been quiet for `delay_seconds`. Only the waiting phase is
cancellable: once an invocation fires it runs to completion even if a
newer one is scheduled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

AsyncAction = Callable[[], Awaitable[None]]


class DebouncedAction:
    def __init__(self, delay_seconds: float) -> None:
        self.delay_seconds = delay_seconds
        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        """True while an invocation is waiting for its delay to elapse."""
        return self._timer is not None and not self._timer.done()

    def schedule(self, action: AsyncAction, delay: Optional[float] = None) -> asyncio.Task:
        """Cancel any waiting invocation and schedule `action`. Needs a running loop."""
        self.cancel()
        wait = self.delay_seconds if delay is None else delay
        task = asyncio.get_running_loop().create_task(self._fire_after(action, wait))
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            logger.debug("Pending invocation superseded")
        self._timer = None

    async def drain(self) -> None:
        """Wait until every scheduled or running invocation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _fire_after(self, action: AsyncAction, wait: float) -> None:
        await asyncio.sleep(wait)
        if self._timer is asyncio.current_task():
            self._timer = None
        try:
            await action()
        except Exception:
            logger.exception("Debounced action failed")
