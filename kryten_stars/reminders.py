"""Reminder scheduler — durable queue, periodic tick, next-message delivery.

The scheduler owns the reminder queue. Entries are removed from the queue
before they are delivered, so overlapping ticks and a chat message arriving
mid-delivery can never send the same reminder twice. A failed delivery is
logged and not retried.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from .models import Reminder
from .utils import normalize_username, now_utc

if TYPE_CHECKING:
    from .chat_bridge import ChatSender
    from .config import RemindersConfig
    from .persistence import PersistenceBackend


class ReminderScheduler:
    """Creates, stores and delivers reminders."""

    def __init__(
        self,
        config: RemindersConfig,
        backend: PersistenceBackend,
        sender: ChatSender,
        logger: logging.Logger | None = None,
        default_channel: str | None = None,
        save_timeout: float = 10.0,
    ) -> None:
        self._config = config
        self._backend = backend
        self._sender = sender
        self._logger = logger or logging.getLogger("stars.reminders")
        self._default_channel = default_channel
        self._save_timeout = save_timeout
        self._queue: list[Reminder] = []
        self._task: asyncio.Task | None = None
        self.delivered_total = 0

    # ══════════════════════════════════════════════════════════
    #  Lifecycle
    # ══════════════════════════════════════════════════════════

    async def load(self) -> int:
        """Restore the queue from the backend."""
        try:
            records = await self._backend.load_reminders()
        except Exception:
            self._logger.exception("Could not load reminders — starting with an empty queue")
            return 0
        queue: list[Reminder] = []
        for record in records:
            try:
                queue.append(Reminder.from_record(record))
            except (KeyError, TypeError, ValueError):
                self._logger.warning("Skipping malformed reminder record: %r", record)
        self._queue = queue
        self._logger.info("Reminders loaded: %d pending", len(queue))
        return len(queue)

    async def start(self) -> None:
        if self._config.enabled and self._task is None:
            self._task = asyncio.create_task(self._tick_loop())
            self._logger.info("Reminder tick started (interval: %ds)", self._config.tick_seconds)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.tick_seconds)
            try:
                await self.tick()
            except Exception:
                self._logger.exception("Reminder tick failed")

    # ══════════════════════════════════════════════════════════
    #  Queue operations
    # ══════════════════════════════════════════════════════════

    @property
    def pending(self) -> list[Reminder]:
        return list(self._queue)

    def pending_for(self, username: str) -> list[Reminder]:
        key = normalize_username(username)
        return [r for r in self._queue if r.target == key]

    async def create(
        self,
        target: str,
        source: str,
        message: str,
        due_at: datetime | None,
        channel: str | None,
        now: datetime | None = None,
    ) -> Reminder:
        """Queue a reminder. due_at=None means deliver on the target's next message."""
        reminder = Reminder(
            target=normalize_username(target),
            source=source,
            message=message or self._config.default_message,
            due_at=due_at,
            channel=channel,
            created_at=now or now_utc(),
        )
        self._queue.append(reminder)
        await self._persist()
        self._logger.info(
            "Reminder %s queued: %s → %s (%s)",
            reminder.id, source, reminder.target,
            "next message" if due_at is None else due_at.isoformat(),
        )
        return reminder

    async def tick(self, now: datetime | None = None) -> int:
        """Deliver every timed reminder that is due. Returns how many."""
        now = now or now_utc()
        due = [r for r in self._queue if r.due_at is not None and r.due_at <= now]
        if not due:
            return 0
        due_ids = {r.id for r in due}
        self._queue = [r for r in self._queue if r.id not in due_ids]
        await self._persist()
        for reminder in due:
            await self._deliver(reminder, reminder.channel)
        return len(due)

    async def on_message(self, username: str, channel: str) -> int:
        """Deliver all next-message reminders for a user who just chatted."""
        key = normalize_username(username)
        matched = [r for r in self._queue if r.on_next_message and r.target == key]
        if not matched:
            return 0
        matched_ids = {r.id for r in matched}
        self._queue = [r for r in self._queue if r.id not in matched_ids]
        await self._persist()
        for reminder in matched:
            await self._deliver(reminder, channel)
        return len(matched)

    # ══════════════════════════════════════════════════════════
    #  Internals
    # ══════════════════════════════════════════════════════════

    async def _deliver(self, reminder: Reminder, channel: str | None) -> None:
        target_channel = channel or reminder.channel or self._default_channel
        if not target_channel:
            self._logger.warning("Reminder %s has no channel, dropped", reminder.id)
            return
        text = self._config.template.format(
            target=reminder.target, source=reminder.source, message=reminder.message,
        )
        if await self._sender.send(target_channel, text):
            self.delivered_total += 1
        else:
            self._logger.warning("Reminder %s for %s could not be delivered", reminder.id, reminder.target)

    async def _persist(self) -> None:
        records = [r.to_record() for r in self._queue]
        try:
            await asyncio.wait_for(self._backend.save_reminders(records), timeout=self._save_timeout)
        except Exception:
            self._logger.exception("Persisting reminder queue failed; keeping in-memory queue")
