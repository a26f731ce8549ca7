"""Flat-file persistence backend.

Accounts live in one JSON object keyed by username, reminders in one JSON
list. Both files are rewritten wholesale through a temp file and
os.replace(), so a crash mid-write leaves the previous version intact.
File I/O runs in the default executor like the SQLite backend; each file
has its own lock so snapshots reach disk in the order they were taken.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from .errors import PersistenceFailure


class JsonFileBackend:
    """JSON-file-backed persistence."""

    name = "file"

    def __init__(self, accounts_path: str, reminders_path: str, logger: logging.Logger) -> None:
        self._accounts_path = Path(accounts_path)
        self._reminders_path = Path(reminders_path)
        self._logger = logger
        # Mirror of the accounts file; save_one rewrites the whole document
        self._accounts: dict[str, dict[str, Any]] = {}
        self._accounts_lock = asyncio.Lock()
        self._reminders_lock = asyncio.Lock()

    async def initialize(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._ensure_dirs)

    def _ensure_dirs(self) -> None:
        for path in (self._accounts_path, self._reminders_path):
            path.parent.mkdir(parents=True, exist_ok=True)

    # ══════════════════════════════════════════════════════════
    #  Raw file helpers
    # ══════════════════════════════════════════════════════════

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Could not read {path}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        tmp: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent,
                prefix=path.name + ".", suffix=".tmp", delete=False,
            ) as f:
                tmp = f.name
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)
            raise PersistenceFailure(f"Could not write {path}: {e}") from e

    # ══════════════════════════════════════════════════════════
    #  Accounts
    # ══════════════════════════════════════════════════════════

    async def load_all(self) -> dict[str, dict[str, Any]]:
        loop = asyncio.get_running_loop()

        def _sync() -> dict[str, dict[str, Any]]:
            data = self._read_json(self._accounts_path, {})
            if not isinstance(data, dict):
                raise PersistenceFailure(f"{self._accounts_path} is not a JSON object")
            for username, record in data.items():
                record.setdefault("username", username)
            return data

        self._accounts = await loop.run_in_executor(None, _sync)
        self._logger.info("Loaded %d accounts from %s", len(self._accounts), self._accounts_path)
        return {k: dict(v) for k, v in self._accounts.items()}

    async def save_one(self, username: str, record: dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        async with self._accounts_lock:
            self._accounts[username] = dict(record)
            snapshot = dict(self._accounts)
            await loop.run_in_executor(None, self._write_json, self._accounts_path, snapshot)

    async def save_all(self, records: dict[str, dict[str, Any]]) -> None:
        loop = asyncio.get_running_loop()
        async with self._accounts_lock:
            self._accounts = {k: dict(v) for k, v in records.items()}
            snapshot = dict(self._accounts)
            await loop.run_in_executor(None, self._write_json, self._accounts_path, snapshot)

    # ══════════════════════════════════════════════════════════
    #  Reminders
    # ══════════════════════════════════════════════════════════

    async def load_reminders(self) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(None, self._read_json, self._reminders_path, [])
        if not isinstance(data, list):
            raise PersistenceFailure(f"{self._reminders_path} is not a JSON list")
        return data

    async def save_reminders(self, records: list[dict[str, Any]]) -> None:
        loop = asyncio.get_running_loop()
        async with self._reminders_lock:
            snapshot = list(records)
            await loop.run_in_executor(None, self._write_json, self._reminders_path, snapshot)
