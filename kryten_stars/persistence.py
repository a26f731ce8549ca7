"""Persistence interface and backend selection.

Two interchangeable backends implement PersistenceBackend: a flat JSON file
store and a SQLite database. One is chosen at startup by create_backend();
business logic never branches on which one is in use.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from .database import SqliteBackend
from .file_store import JsonFileBackend

if TYPE_CHECKING:
    from .config import PersistenceConfig


AccountRecord = dict[str, Any]
ReminderRecord = dict[str, Any]


class PersistenceBackend(Protocol):
    """Durable storage for account and reminder records.

    Every save is an idempotent upsert: writing identical data twice has the
    same effect as writing it once. Failures raise PersistenceFailure.
    """

    name: str

    async def initialize(self) -> None:
        ...

    async def load_all(self) -> dict[str, AccountRecord]:
        ...

    async def save_one(self, username: str, record: AccountRecord) -> None:
        ...

    async def save_all(self, records: dict[str, AccountRecord]) -> None:
        ...

    async def load_reminders(self) -> list[ReminderRecord]:
        ...

    async def save_reminders(self, records: list[ReminderRecord]) -> None:
        ...


async def create_backend(
    config: PersistenceConfig,
    logger: logging.Logger | None = None,
) -> PersistenceBackend:
    """Build and initialize the configured backend.

    A SQLite backend that cannot be initialized falls back to the file store
    so the service still starts with durable, if degraded, storage.
    """
    logger = logger or logging.getLogger("stars.persistence")
    file_backend = JsonFileBackend(config.accounts_file, config.reminders_file, logger)

    if config.backend == "sqlite":
        sqlite_backend = SqliteBackend(config.database_path, logger)
        try:
            await sqlite_backend.initialize()
            return sqlite_backend
        except Exception:
            logger.exception(
                "SQLite backend unavailable at %s — falling back to file store",
                config.database_path,
            )

    await file_backend.initialize()
    return file_backend
