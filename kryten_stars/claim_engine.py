"""Hourly star claim with first-claim bonus and expiry notification."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .errors import CooldownActive
from .timers import TimerPool
from .utils import format_points, now_utc

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .chat_bridge import ChatSender
    from .config import StarsConfig


@dataclass
class ClaimResult:
    username: str
    reward: int
    bonus: int
    balance: int
    first_claim: bool
    message: str


@dataclass(frozen=True)
class ClaimNotice:
    """Snapshot taken at claim time; compared with the live account on fire."""

    username: str
    channel: str | None
    claimed_at: datetime


class ClaimEngine:
    """Grants the periodic star reward."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        sender: ChatSender,
        logger: logging.Logger | None = None,
        timers: TimerPool | None = None,
        default_channel: str | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._sender = sender
        self._logger = logger or logging.getLogger("stars.claim")
        self._timers = timers or TimerPool("claim-notices", self._logger)
        self._default_channel = default_channel
        self.claims_total = 0

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self._config.claim.cooldown_seconds)

    def remaining(self, username: str, now: datetime | None = None) -> timedelta:
        account = self._store.get(username)
        if account is None or account.last_claim is None:
            return timedelta()
        now = now or now_utc()
        return max(timedelta(), account.last_claim + self.cooldown - now)

    async def claim(self, username: str, channel: str | None, now: datetime | None = None) -> ClaimResult:
        """Claim stars. Raises CooldownActive inside the cooldown window."""
        cfg = self._config.claim
        now = now or now_utc()
        account = self._store.get_or_create(username, channel)

        if account.last_claim is not None and now - account.last_claim < self.cooldown:
            remaining = account.last_claim + self.cooldown - now
            minutes = math.ceil(remaining.total_seconds() / 60)
            raise CooldownActive(
                remaining.total_seconds(),
                account.balance,
                reply=(
                    f"/me @{account.username}, Nerd warte noch {minutes} minuten "
                    f"(balance: {format_points(account.balance)} {self._config.currency.name} )"
                ),
            )

        first_claim = account.last_claim is None
        base = random.randint(cfg.min_reward, cfg.max_reward)
        bonus = cfg.first_claim_bonus if first_claim else 0
        reward = base + bonus

        account.balance += reward
        account.last_claim = now
        account.reminded = False
        await self._store.commit(account.username)
        self.claims_total += 1

        if cfg.notify_on_expiry:
            self._schedule_notice(
                ClaimNotice(account.username, channel or account.last_channel, now),
                self.cooldown.total_seconds(),
            )

        currency = self._config.currency.name
        if first_claim:
            message = (
                f"/me qq @{account.username} da du das erste mal hier bist bekommst du ein bonus JUHU , "
                f"({format_points(base)} + {format_points(bonus)} bonus) dein aktueller {currency} betrag "
                f"ist {format_points(account.balance)} {currency}"
            )
        else:
            message = (
                f"/me @{account.username} du hast {format_points(reward)} {currency} bekommen Top "
                f"total: {format_points(account.balance)} {currency}"
            )
        self._logger.info("Claim: %s +%d (first=%s)", account.username, reward, first_claim)
        return ClaimResult(account.username, reward, bonus, account.balance, first_claim, message)

    # ══════════════════════════════════════════════════════════
    #  Expiry notifications
    # ══════════════════════════════════════════════════════════

    def _schedule_notice(self, notice: ClaimNotice, delay: float) -> None:
        self._timers.schedule(delay, self.fire_notice, notice, name=f"claim:{notice.username}")

    async def fire_notice(self, notice: ClaimNotice) -> bool:
        """Send the 'claim is ready' notice if it is still relevant."""
        account = self._store.get(notice.username)
        if account is None or account.reminded:
            return False
        if account.last_claim != notice.claimed_at:
            # Claimed again since; that claim scheduled its own notice
            return False

        channel = notice.channel or account.last_channel or self._default_channel
        if not channel:
            return False
        text = self._config.claim.notice.format(
            user=account.username,
            currency=self._config.currency.name,
            prefix=self._config.commands.prefix,
        )
        if not await self._sender.send(channel, text):
            return False
        account.reminded = True
        await self._store.commit(account.username)
        return True

    def restore_notifications(self, now: datetime | None = None) -> int:
        """Re-schedule notices lost with the previous process."""
        now = now or now_utc()
        restored = 0
        for account in self._store:
            if account.reminded or account.last_claim is None:
                continue
            due = account.last_claim + self.cooldown
            delay = max(1.0, math.ceil((due - now).total_seconds()))
            self._schedule_notice(ClaimNotice(account.username, account.last_channel, account.last_claim), delay)
            restored += 1
        if restored:
            self._logger.info("Restored %d claim notices", restored)
        return restored

    async def close(self) -> None:
        await self._timers.close()
