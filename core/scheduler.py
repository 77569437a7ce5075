"""Keyed, restartable debounce timers on the running event loop.

Scheduling a key that already has a pending timer cancels that timer, so a
burst of calls collapses into one job run ``delay`` seconds after the last
call. A job that has started is never interrupted by a reschedule; the next
timer simply runs after it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


@dataclass
class _Timer:
    task: asyncio.Task[None]
    job: Job


class CoalescingScheduler:
    def __init__(self, name: str = "scheduler"):
        self.name = name
        self._timers: dict[Hashable, _Timer] = {}
        self._running: set[asyncio.Task[None]] = set()

    def schedule(self, key: Hashable, delay: float, job: Job) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._fire(key, delay, job), name=f"{self.name}:{key}")
        self._timers[key] = _Timer(task=task, job=job)

    def cancel(self, key: Hashable) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.task.cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        keys = [key for key in self._timers if predicate(key)]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def pending(self) -> list[Hashable]:
        return list(self._timers)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._timers

    async def _fire(self, key: Hashable, delay: float, job: Job) -> None:
        await asyncio.sleep(delay)
        task = asyncio.current_task()
        timer = self._timers.get(key)
        if timer is not None and timer.task is task:
            del self._timers[key]
        await self._run(key, job)

    async def _run(self, key: Hashable, job: Job) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._running.add(task)
        try:
            await job()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s job %r failed", self.name, key)
        finally:
            if task is not None:
                self._running.discard(task)

    async def flush(self, predicate: Callable[[Hashable], bool] | None = None) -> int:
        """Run matching pending jobs now, then wait for in-flight ones."""
        keys = [key for key in self._timers if predicate is None or predicate(key)]
        timers = [(key, self._timers.pop(key)) for key in keys]
        for _, timer in timers:
            timer.task.cancel()
        for key, timer in timers:
            await self._run(key, timer.job)
        await self.drain()
        return len(timers)

    async def drain(self) -> None:
        current = asyncio.current_task()
        running = [t for t in self._running if t is not current]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    def close(self) -> None:
        for key in list(self._timers):
            self.cancel(key)
