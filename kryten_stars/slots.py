"""Three-reel emote gamble.

One uniform roll in [0, 100) picks the outcome; the reels are then drawn
from the channel's emotes so the display always matches the outcome.
Spins inside the per-user cooldown are ignored without a reply.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ExternalServiceFailure
from .utils import format_points, normalize_username, now_utc, take_wager

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .config import StarsConfig


class SpinOutcome(Enum):
    JACKPOT = "jackpot"
    WIN = "win"
    NEAR_MISS = "near_miss"
    LOSS = "loss"


@dataclass
class SpinResult:
    outcome: SpinOutcome
    bet: int
    payout: int
    reels: list[str]
    balance: int
    message: str


class SlotGamble:
    """Stateless apart from the per-user spin cooldown."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._logger = logger or logging.getLogger("stars.slots")
        self._cooldowns: dict[str, datetime] = {}
        self.spins_total = 0

    def classify(self, roll: float) -> SpinOutcome:
        cfg = self._config.gambling.slots
        if roll < cfg.jackpot_below:
            return SpinOutcome.JACKPOT
        if roll < cfg.win_below:
            return SpinOutcome.WIN
        if roll < cfg.near_miss_below:
            return SpinOutcome.NEAR_MISS
        return SpinOutcome.LOSS

    def _prune_cooldowns(self, now: datetime) -> None:
        expired = [k for k, until in self._cooldowns.items() if now >= until]
        for k in expired:
            del self._cooldowns[k]

    @staticmethod
    def build_reels(outcome: SpinOutcome, emotes: list[str]) -> list[str]:
        a, b, c = random.sample(emotes, 3)
        if outcome in (SpinOutcome.JACKPOT, SpinOutcome.WIN):
            return [a, a, a]
        reels = [a, a, b] if outcome is SpinOutcome.NEAR_MISS else [a, b, c]
        random.shuffle(reels)
        return reels

    async def spin(
        self,
        username: str,
        channel: str | None,
        bet_spec: str | int | None,
        emotes: list[str],
        now: datetime | None = None,
    ) -> SpinResult | None:
        """Spin once. None when the user is still on cooldown."""
        cfg = self._config.gambling.slots
        key = normalize_username(username)
        now = now or now_utc()

        self._prune_cooldowns(now)
        if key in self._cooldowns:
            return None
        self._cooldowns[key] = now + timedelta(seconds=cfg.cooldown_seconds)

        account = self._store.get_or_create(key, channel)
        cur = self._config.currency.name
        bet = take_wager(
            bet_spec, account.balance, key, cur,
            usage=f"/me @{key} Nutzung: {self._config.commands.prefix}gamba <Menge> oder 'all'",
        )

        symbols = list(dict.fromkeys(emotes))
        if len(symbols) < 3:
            raise ExternalServiceFailure("not enough emotes", reply=f"/me @{key} Um keine emotes für gamba")

        outcome = self.classify(random.random() * 100)
        reels = self.build_reels(outcome, symbols)
        if outcome is SpinOutcome.JACKPOT:
            payout = bet * cfg.jackpot_multiplier
        elif outcome is SpinOutcome.WIN:
            payout = bet * cfg.win_multiplier
        else:
            payout = 0

        account.balance += payout - bet
        await self._store.commit(key)
        self.spins_total += 1

        display = f"/me [ {' | '.join(reels)} ] - @{key}"
        balance = format_points(account.balance)
        if outcome is SpinOutcome.JACKPOT:
            text = f"{display} HeCrazy JACKPOT HeCrazy VERDREIFACHT HeCrazy balance: {balance} {cur}"
        elif outcome is SpinOutcome.WIN:
            text = f"{display} ALTA gewonnen, aktuelle balance: {balance} {cur}"
        else:
            text = f"{display} eww verloren, aktuelle balance: {balance} {cur}"

        self._logger.info("Spin: %s bet %d → %s (payout %d)", key, bet, outcome.value, payout)
        return SpinResult(outcome, bet, payout, reels, account.balance, text)
