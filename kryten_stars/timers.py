"""One-shot scheduled tasks.

A ScheduledTask holds the data it needs at fire time (its payload) instead
of closing over mutable outer state; the callback re-validates that payload
against the live store when it fires. Tasks are grouped in named pools so
one pool can be cancelled without touching another.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class ScheduledTask(Generic[T]):
    name: str
    delay: float
    payload: T
    callback: Callable[[T], Awaitable[Any]]
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()


class TimerPool:
    """A named set of pending one-shot tasks."""

    def __init__(self, name: str, logger: logging.Logger | None = None) -> None:
        self.name = name
        self._logger = logger or logging.getLogger(f"stars.timers.{name}")
        self._pending: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._pending)

    def schedule(
        self,
        delay: float,
        callback: Callable[[T], Awaitable[Any]],
        payload: T,
        name: str = "task",
    ) -> ScheduledTask[T]:
        """Run callback(payload) after delay seconds on the running loop."""
        scheduled = ScheduledTask(name=name, delay=max(0.0, delay), payload=payload, callback=callback)
        task = asyncio.get_running_loop().create_task(self._run(scheduled))
        scheduled.task = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return scheduled

    async def _run(self, scheduled: ScheduledTask) -> None:
        await asyncio.sleep(scheduled.delay)
        try:
            await scheduled.callback(scheduled.payload)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("Timer %s/%s failed", self.name, scheduled.name)

    def cancel_all(self) -> int:
        """Cancel every pending task in this pool. Returns how many."""
        count = 0
        for task in list(self._pending):
            if not task.done():
                task.cancel()
                count += 1
        self._pending.clear()
        return count

    async def close(self) -> None:
        tasks = list(self._pending)
        self.cancel_all()
        await asyncio.gather(*tasks, return_exceptions=True)
