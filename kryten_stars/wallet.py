"""Balance views, transfers, level-ups and leaderboards."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import InsufficientFunds, InvalidInput
from .utils import format_points, normalize_username

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .config import StarsConfig
    from .models import Account


@dataclass
class TransferResult:
    sender: str
    receiver: str
    amount: int
    message: str


@dataclass
class LevelUpResult:
    username: str
    level: int
    cost: int
    next_cost: int
    message: str


class WalletEngine:
    """Everything that moves stars without a game of chance."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._logger = logger or logging.getLogger("stars.wallet")
        self.transfers_total = 0

    @property
    def _currency(self) -> str:
        return self._config.currency.name

    def balance(self, viewer: str, target: str | None = None, channel: str | None = None) -> str:
        """Render the balance line for target (defaults to the viewer)."""
        viewer_key = normalize_username(viewer)
        self._store.get_or_create(viewer_key, channel)
        target_key = normalize_username(target) if target else viewer_key
        account = self._store.get(target_key)
        cur = self._currency
        if account is None:
            return f"/me @{viewer_key} der user {target_key} hat keine {cur} Reacting"

        text = (
            f"/me @{viewer_key} der user {target_key} hat {format_points(account.balance)} {cur} "
            f"(lvl {account.level}, gesamt: {format_points(account.total_standing)})"
        )
        if account.loan.active:
            debt = account.loan.debt
            if account.balance == 0:
                text += f" (ACHTUNG: Laufender Kredit! Schulden: {format_points(debt)} {cur} !)"
            else:
                net = account.balance - debt
                text += (
                    f" (Laufender Kredit: -{format_points(debt)} {cur} | "
                    f"Netto: {'-' if net < 0 else ''}{format_points(abs(net))} {cur})"
                )
        return text

    async def give(
        self, sender: str, receiver: str | None, amount_spec: str | int | None, channel: str | None = None,
    ) -> TransferResult:
        sender_key = normalize_username(sender)
        prefix = self._config.commands.prefix
        if not receiver or amount_spec is None or amount_spec == "":
            raise InvalidInput(
                "missing arguments", reply=f"/me @{sender_key} Nutzung: {prefix}give <User> <Menge>",
            )
        receiver_key = normalize_username(receiver)
        if not receiver_key:
            raise InvalidInput("empty receiver", reply=f"/me @{sender_key} Nutzung: {prefix}give <User> <Menge>")
        if receiver_key == sender_key:
            raise InvalidInput("self transfer", reply=f"/me @{sender_key} du kannst dir selbst nichts geben lol")

        source = self._store.get_or_create(sender_key, channel)
        text = str(amount_spec).strip().lower()
        if text == "all":
            amount = source.balance
        else:
            try:
                amount = int(text)
            except ValueError:
                amount = 0
        if amount <= 0:
            raise InvalidInput(f"bad amount: {amount_spec}", reply=f"/me @{sender_key} joaa geht nicht")
        if source.balance < amount:
            raise InsufficientFunds(
                source.balance, amount, reply=f"/me @{sender_key} du hast nicht genug {self._currency} haher",
            )

        target = self._store.get_or_create(receiver_key)
        source.balance -= amount
        target.balance += amount
        await self._store.commit(sender_key)
        await self._store.commit(receiver_key)
        self.transfers_total += 1
        self._logger.info("Transfer: %s → %s %d", sender_key, receiver_key, amount)
        return TransferResult(
            sender_key, receiver_key, amount,
            f"/me gib @{sender_key} hat @{receiver_key} {format_points(amount)} {self._currency} gegeben",
        )

    async def level_up(self, username: str, channel: str | None = None) -> LevelUpResult:
        account = self._store.get_or_create(username, channel)
        cost = account.next_level_cost
        cur = self._currency
        if account.balance < cost:
            raise InsufficientFunds(
                account.balance, cost,
                reply=(
                    f"/me @{account.username} Nerd du hast nicht genug {cur} für Level {account.level + 1}. "
                    f"Kosten: {format_points(cost)} {cur} (du hast {format_points(account.balance)})"
                ),
            )

        cfg = self._config.levels
        increase = random.uniform(cfg.min_increase_percent, cfg.max_increase_percent) / 100
        next_cost = max(cost + 1, math.ceil(cost * (1 + increase)))

        account.balance -= cost
        account.level += 1
        account.invested_stars += cost
        account.next_level_cost = next_cost
        await self._store.commit(account.username)
        self._logger.info("Level up: %s → %d (paid %d, next %d)", account.username, account.level, cost, next_cost)
        return LevelUpResult(
            account.username, account.level, cost, next_cost,
            f"/me HeCrazy @{account.username} JUHU Du bist jetzt Level {account.level}! "
            f"Nächstes Level kostet {format_points(next_cost)} {cur}",
        )

    def leaderboard(self, limit: int | None = 10) -> list[Account]:
        ranked = sorted(self._store, key=lambda a: a.total_standing, reverse=True)
        return ranked if limit is None else ranked[:limit]

    def format_leaderboard(self, limit: int = 10, emotes: list[str] | None = None) -> str:
        top = self.leaderboard(limit)
        parts = []
        for rank in range(1, limit + 1):
            if rank <= len(top):
                account = top[rank - 1]
                emote = f" {random.choice(emotes)}" if emotes else ""
                parts.append(
                    f"{rank}. {account.username} ( S: {format_points(account.balance)}, L: {account.level}{emote} )"
                )
            else:
                parts.append(f"{rank}. (-)")
        return f"Top {limit} {self._config.currency.plural}: " + " ".join(parts)

    def format_all(self, emotes: list[str] | None = None) -> list[str]:
        """Every account as a ranking entry, separated for chunked sending."""
        ranked = self.leaderboard(None)
        entries = []
        for rank, account in enumerate(ranked, start=1):
            emote = f" {random.choice(emotes)}" if emotes else ""
            sep = "" if rank == len(ranked) else " |"
            entries.append(
                f"{rank}. {account.username} (Lvl {account.level}): {format_points(account.balance)}{emote}{sep}"
            )
        return entries
