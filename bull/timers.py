"""Bull - Timers

Cancellable delayed callbacks, one slot per key. Scheduling a key that
already has a pending callback cancels the old one first.
"""

import asyncio
import logging
from typing import Dict, Callable, Awaitable

logger = logging.getLogger(__name__)


class TimerRegistry:

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        """Run ``callback`` after ``delay`` seconds unless cancelled first."""
        self.cancel(key)
        task = asyncio.create_task(self._run(key, delay, callback))
        self._tasks[key] = task
        return task

    async def _run(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]):
        await asyncio.sleep(delay)
        # Free the slot before running so the callback may reschedule itself
        if self._tasks.get(key) is asyncio.current_task():
            del self._tasks[key]
        try:
            await callback()
        except Exception:
            logger.exception(f"Timer {key} failed")

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_prefix(self, prefix: str) -> int:
        keys = [k for k in self._tasks if k.startswith(prefix)]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self):
        for key in list(self._tasks):
            self.cancel(key)

    def is_pending(self, key: str) -> bool:
        return key in self._tasks

    def __len__(self):
        return len(self._tasks)
