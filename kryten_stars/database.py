"""SQLite persistence backend for kryten-stars.

Follows the kryten service pattern: each public method is async and wraps
a synchronous inner function via asyncio.run_in_executor(None, _sync).
A new connection is created per call (WAL mode, 30s busy timeout, Row factory).
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any

from .errors import PersistenceFailure

_ACCOUNT_COLUMNS = (
    "username",
    "balance",
    "level",
    "invested_stars",
    "next_level_cost",
    "last_claim",
    "reminded",
    "pending_loan",
    "last_channel",
    "loan_active",
    "loan_amount",
    "loan_debt",
    "loan_due_at",
    "loan_last_interest_at",
    "loan_hours_tracked",
)

_REMINDER_COLUMNS = ("id", "target", "source", "message", "due_at", "channel", "created_at")

_UPSERT_ACCOUNT = (
    f"INSERT INTO accounts ({', '.join(_ACCOUNT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _ACCOUNT_COLUMNS)}) "
    "ON CONFLICT(username) DO UPDATE SET "
    + ", ".join(f"{c} = excluded.{c}" for c in _ACCOUNT_COLUMNS if c != "username")
)


class SqliteBackend:
    """SQLite-backed persistence for accounts and the reminder queue."""

    name = "sqlite"

    def __init__(self, db_path: str, logger: logging.Logger) -> None:
        self._db_path = db_path
        self._logger = logger

    def _get_connection(self) -> sqlite3.Connection:
        """Create a new SQLite connection with standard settings."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=30000")
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, fn, *args) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"SQLite error: {e}") from e

    # ══════════════════════════════════════════════════════════
    #  Initialization
    # ══════════════════════════════════════════════════════════

    async def initialize(self) -> None:
        """Create all tables and indexes. Idempotent."""
        await self._run(self._create_tables)

    def _create_tables(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    username TEXT PRIMARY KEY,
                    balance INTEGER NOT NULL DEFAULT 0 CHECK (balance >= 0),
                    level INTEGER NOT NULL DEFAULT 0,
                    invested_stars INTEGER NOT NULL DEFAULT 0,
                    next_level_cost INTEGER NOT NULL DEFAULT 670,
                    last_claim TIMESTAMP,
                    reminded BOOLEAN NOT NULL DEFAULT 0,
                    pending_loan BOOLEAN NOT NULL DEFAULT 0,
                    last_channel TEXT,
                    loan_active BOOLEAN NOT NULL DEFAULT 0,
                    loan_amount INTEGER NOT NULL DEFAULT 0,
                    loan_debt INTEGER NOT NULL DEFAULT 0,
                    loan_due_at TIMESTAMP,
                    loan_last_interest_at TIMESTAMP,
                    loan_hours_tracked INTEGER NOT NULL DEFAULT 0
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reminders (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    target TEXT NOT NULL,
                    source TEXT NOT NULL,
                    message TEXT NOT NULL,
                    due_at TIMESTAMP,
                    channel TEXT,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reminders_target ON reminders(target)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_accounts_loan ON accounts(loan_active)"
            )

            conn.commit()
            self._logger.info("Database tables created/verified")
        finally:
            conn.close()

    # ══════════════════════════════════════════════════════════
    #  Accounts
    # ══════════════════════════════════════════════════════════

    async def load_all(self) -> dict[str, dict[str, Any]]:
        """Return every account row keyed by username."""

        def _sync() -> dict[str, dict[str, Any]]:
            conn = self._get_connection()
            try:
                rows = conn.execute("SELECT * FROM accounts").fetchall()
                return {row["username"]: dict(row) for row in rows}
            finally:
                conn.close()

        accounts = await self._run(_sync)
        self._logger.info("Loaded %d accounts from %s", len(accounts), self._db_path)
        return accounts

    @staticmethod
    def _account_params(record: dict[str, Any]) -> tuple:
        return tuple(record.get(c) for c in _ACCOUNT_COLUMNS)

    async def save_one(self, username: str, record: dict[str, Any]) -> None:
        """Upsert a single account row."""
        params = self._account_params({**record, "username": username})

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute(_UPSERT_ACCOUNT, params)
                conn.commit()
            finally:
                conn.close()

        await self._run(_sync)

    async def save_all(self, records: dict[str, dict[str, Any]]) -> None:
        """Upsert every account in one transaction."""
        rows = [self._account_params({**r, "username": u}) for u, r in records.items()]

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.executemany(_UPSERT_ACCOUNT, rows)
                conn.commit()
            finally:
                conn.close()

        await self._run(_sync)

    # ══════════════════════════════════════════════════════════
    #  Reminder queue
    # ══════════════════════════════════════════════════════════

    async def load_reminders(self) -> list[dict[str, Any]]:
        """Return the queue in insertion order."""

        def _sync() -> list[dict[str, Any]]:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    f"SELECT {', '.join(_REMINDER_COLUMNS)} FROM reminders ORDER BY seq"
                ).fetchall()
                return [dict(row) for row in rows]
            finally:
                conn.close()

        return await self._run(_sync)

    async def save_reminders(self, records: list[dict[str, Any]]) -> None:
        """Replace the stored queue with exactly these records."""
        rows = [tuple(r.get(c) for c in _REMINDER_COLUMNS) for r in records]

        def _sync() -> None:
            conn = self._get_connection()
            try:
                conn.execute("DELETE FROM reminders")
                conn.executemany(
                    f"INSERT INTO reminders ({', '.join(_REMINDER_COLUMNS)}) "
                    f"VALUES ({', '.join('?' for _ in _REMINDER_COLUMNS)})",
                    rows,
                )
                conn.commit()
            finally:
                conn.close()

        await self._run(_sync)
