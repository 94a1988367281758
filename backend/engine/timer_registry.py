"""
Timer Registry — at most one live background task per session code.

start() cancels whatever is registered for the code before creating the new
task, so two countdowns for one session can never coexist. stop() is
synchronous and idempotent. Safe without a Lock because asyncio is
single-threaded and neither method awaits.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TimerRegistry:
    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, code: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        self.stop(code)
        task = asyncio.create_task(factory(), name=f"session-timer:{code}")
        self._tasks[code] = task
        task.add_done_callback(lambda t, c=code: self._forget(c, t))
        return task

    def stop(self, code: str) -> None:
        task = self._tasks.pop(code, None)
        if task is None or task.done():
            return
        # A task stopping its own session keeps running to the end of its
        # current step; only foreign tasks are cancelled.
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug("[%s] Timer stopped", code)

    def _forget(self, code: str, task: asyncio.Task) -> None:
        if self._tasks.get(code) is task:
            self._tasks.pop(code, None)
        if not task.cancelled() and task.exception() is not None:
            logger.error("[%s] Timer task crashed", code, exc_info=task.exception())

    def get(self, code: str) -> Optional[asyncio.Task]:
        return self._tasks.get(code)

    def is_active(self, code: str) -> bool:
        task = self._tasks.get(code)
        return task is not None and not task.done()

    def active_codes(self) -> List[str]:
        return [code for code, task in self._tasks.items() if not task.done()]

    def __len__(self) -> int:
        return len(self.active_codes())

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
