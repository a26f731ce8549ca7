"""Authoritative in-memory account store.

AccountStore owns every Account record. Engines mutate records in one
synchronous step and then await commit(), which snapshots the record before
handing it to the persistence backend. A failed save is logged and the
in-memory state is kept: availability wins over durability.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

from .models import Account
from .utils import normalize_username

if TYPE_CHECKING:
    from .persistence import PersistenceBackend


class AccountStore:
    """Per-user Account records keyed by lowercased username."""

    def __init__(
        self,
        backend: PersistenceBackend,
        logger: logging.Logger | None = None,
        save_timeout: float = 10.0,
        initial_level_cost: int = 670,
    ) -> None:
        self._backend = backend
        self._logger = logger or logging.getLogger("stars.accounts")
        self._save_timeout = save_timeout
        self._initial_level_cost = initial_level_cost
        self._accounts: dict[str, Account] = {}
        self.save_failures = 0

    async def load(self) -> int:
        """Replace the in-memory map with the backend's contents."""
        try:
            records = await self._backend.load_all()
        except Exception:
            self._logger.exception("Could not load accounts — starting with an empty store")
            return 0
        self._accounts = {}
        for username, record in records.items():
            key = normalize_username(record.get("username") or username)
            try:
                self._accounts[key] = Account.from_record({**record, "username": key})
            except (KeyError, TypeError, ValueError):
                self._logger.warning("Skipping malformed account record for %s", username)
        return len(self._accounts)

    # ══════════════════════════════════════════════════════════
    #  Lookup
    # ══════════════════════════════════════════════════════════

    def get(self, username: str) -> Account | None:
        return self._accounts.get(normalize_username(username))

    def get_or_create(self, username: str, channel: str | None = None) -> Account:
        """Return the account, creating it lazily. Updates last_channel."""
        key = normalize_username(username)
        account = self._accounts.get(key)
        if account is None:
            account = Account(username=key, next_level_cost=self._initial_level_cost)
            self._accounts[key] = account
        if channel:
            account.last_channel = channel
        return account

    def __iter__(self) -> Iterator[Account]:
        return iter(list(self._accounts.values()))

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, username: str) -> bool:
        return normalize_username(username) in self._accounts

    def total_circulation(self) -> int:
        return sum(a.balance for a in self._accounts.values())

    # ══════════════════════════════════════════════════════════
    #  Durable commit
    # ══════════════════════════════════════════════════════════

    async def commit(self, username: str) -> bool:
        """Durably save one account. Returns False if the save failed."""
        account = self.get(username)
        if account is None:
            return False
        record = account.to_record()
        try:
            await asyncio.wait_for(
                self._backend.save_one(account.username, record),
                timeout=self._save_timeout,
            )
            return True
        except Exception:
            self.save_failures += 1
            self._logger.exception(
                "Persisting account %s failed — keeping in-memory state", account.username,
            )
            return False

    async def commit_all(self) -> bool:
        records = {a.username: a.to_record() for a in self._accounts.values()}
        try:
            await asyncio.wait_for(self._backend.save_all(records), timeout=self._save_timeout)
            return True
        except Exception:
            self.save_failures += 1
            self._logger.exception("Persisting all accounts failed")
            return False
