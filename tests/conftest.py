"""Shared test fixtures for kryten-stars."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from kryten_stars.account_store import AccountStore
from kryten_stars.blackjack import BlackjackEngine
from kryten_stars.claim_engine import ClaimEngine
from kryten_stars.config import StarsConfig
from kryten_stars.database import SqliteBackend
from kryten_stars.file_store import JsonFileBackend
from kryten_stars.loans import LoanLedger
from kryten_stars.parity import ParityGameEngine
from kryten_stars.reminders import ReminderScheduler
from kryten_stars.slots import SlotGamble
from kryten_stars.timers import TimerPool
from kryten_stars.wallet import WalletEngine

CH = "testchannel"
T0 = datetime(2026, 7, 1, 10, 0, 0, tzinfo=timezone.utc)


# ── Minimal config dict matching StarsConfig schema ─────────

def make_config_dict(**overrides) -> dict:
    """Build a valid config dict with sensible test defaults."""
    base = {
        "nats": {"servers": ["nats://localhost:4222"]},
        "channels": [{"domain": "cytu.be", "channel": CH}],
        "service": {"name": "stars"},
        "persistence": {"backend": "file", "timeout_seconds": 2.0},
        "currency": {"name": "Star", "plural": "Stars"},
        "bot": {"username": "TestBot"},
        "ignored_users": ["IgnoredBot"],
        "commands": {"prefix": "-", "chunk_length": 400, "chunk_spacing_seconds": 0.01},
    }
    base.update(overrides)
    return base


class RecordingSender:
    """ChatSender + Moderator double that records every call."""

    def __init__(self, ok: bool = True, timeout_ok: bool = True) -> None:
        self.ok = ok
        self.timeout_ok = timeout_ok
        self.sent: list[tuple[str, str]] = []
        self.timeouts: list[tuple[str, str, int, str]] = []

    async def send(self, channel: str, text: str) -> bool:
        self.sent.append((channel, text))
        return self.ok

    async def request_timeout(self, channel: str, user: str, duration_seconds: int, reason: str) -> bool:
        self.timeouts.append((channel, user, duration_seconds, reason))
        return self.timeout_ok

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.sent]


@pytest.fixture
def sample_config_dict(tmp_path: Path) -> dict:
    """Config dict whose storage paths live in tmp_path."""
    return make_config_dict(persistence={
        "backend": "file",
        "accounts_file": str(tmp_path / "stars.json"),
        "reminders_file": str(tmp_path / "reminders.json"),
        "database_path": str(tmp_path / "stars.db"),
        "timeout_seconds": 2.0,
    })


@pytest.fixture
def sample_config(sample_config_dict: dict) -> StarsConfig:
    return StarsConfig(**sample_config_dict)


@pytest_asyncio.fixture
async def file_backend(tmp_path: Path) -> JsonFileBackend:
    backend = JsonFileBackend(
        str(tmp_path / "stars.json"), str(tmp_path / "reminders.json"), logging.getLogger("test"),
    )
    await backend.initialize()
    return backend


@pytest_asyncio.fixture
async def sqlite_backend(tmp_path: Path) -> SqliteBackend:
    backend = SqliteBackend(str(tmp_path / "stars.db"), logging.getLogger("test"))
    await backend.initialize()
    return backend


@pytest_asyncio.fixture
async def store(file_backend: JsonFileBackend) -> AccountStore:
    account_store = AccountStore(file_backend, logging.getLogger("test"), save_timeout=2.0)
    await account_store.load()
    return account_store


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def mock_client() -> MagicMock:
    """Return a mock KrytenClient with async methods."""
    client = MagicMock()
    client.send_chat = AsyncMock(return_value="corr-id-456")
    client.send_pm = AsyncMock(return_value="corr-id-123")
    client.connect = AsyncMock()
    client.run = AsyncMock()
    client.stop = AsyncMock()
    client.subscribe = AsyncMock()
    client.subscribe_request_reply = AsyncMock()
    return client


# ── Engines ─────────────────────────────────────────────────

@pytest_asyncio.fixture
async def claim_engine(
    sample_config: StarsConfig, store: AccountStore, sender: RecordingSender,
) -> AsyncGenerator[ClaimEngine, None]:
    engine = ClaimEngine(
        sample_config, store, sender, logging.getLogger("test"),
        timers=TimerPool("claim-notices"), default_channel=CH,
    )
    yield engine
    await engine.close()


@pytest.fixture
def loan_ledger(sample_config: StarsConfig, store: AccountStore, sender: RecordingSender) -> LoanLedger:
    return LoanLedger(sample_config, store, sender, sender, logging.getLogger("test"), default_channel=CH)


@pytest.fixture
def wallet(sample_config: StarsConfig, store: AccountStore) -> WalletEngine:
    return WalletEngine(sample_config, store, logging.getLogger("test"))


@pytest.fixture
def blackjack(sample_config: StarsConfig, store: AccountStore) -> BlackjackEngine:
    return BlackjackEngine(sample_config, store, logging.getLogger("test"))


@pytest.fixture
def parity(sample_config: StarsConfig, store: AccountStore) -> ParityGameEngine:
    return ParityGameEngine(sample_config, store, logging.getLogger("test"))


@pytest.fixture
def slots(sample_config: StarsConfig, store: AccountStore) -> SlotGamble:
    return SlotGamble(sample_config, store, logging.getLogger("test"))


@pytest_asyncio.fixture
async def reminders(
    sample_config: StarsConfig, file_backend: JsonFileBackend, sender: RecordingSender,
) -> AsyncGenerator[ReminderScheduler, None]:
    scheduler = ReminderScheduler(
        sample_config.reminders, file_backend, sender, logging.getLogger("test"),
        default_channel=CH, save_timeout=2.0,
    )
    await scheduler.load()
    yield scheduler
    await scheduler.stop()


def fund(store: AccountStore, username: str, balance: int) -> None:
    """Set a balance directly."""
    store.get_or_create(username, CH).balance = balance
