"""Odd/even guessing game.

The bet is deducted at start and a secret integer is drawn. A guess can
arrive through the dedicated command or as a bare chat word; both land in
resolve(), which pops the session before evaluating it so only one of them
can ever settle a given round.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import InvalidInput, SessionConflict
from .utils import format_points, normalize_username, take_wager

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .config import StarsConfig


@dataclass
class ParitySession:
    username: str
    channel: str | None
    bet: int
    secret: int


@dataclass
class ParityResult:
    username: str
    bet: int
    secret: int | None
    won: bool
    payout: int
    balance: int
    message: str


class ParityGameEngine:
    """Bet first, then guess whether the secret number is odd or even."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._logger = logger or logging.getLogger("stars.parity")
        self._sessions: dict[str, ParitySession] = {}
        self.games_played = 0

    @property
    def _words(self) -> dict[str, str]:
        cfg = self._config.gambling.parity
        words = {w.lower(): "odd" for w in cfg.odd_words}
        words.update({w.lower(): "even" for w in cfg.even_words})
        return words

    def is_guess_word(self, text: str) -> bool:
        return text.strip().lower() in self._words

    def has_session(self, username: str) -> bool:
        return normalize_username(username) in self._sessions

    async def start(self, username: str, channel: str | None, bet_spec: str | int | None) -> ParityResult:
        key = normalize_username(username)
        cfg = self._config.gambling.parity
        prefix = self._config.commands.prefix
        if key in self._sessions:
            raise SessionConflict(
                "parity game already open",
                reply=f"/me @{key} du hast schon eine Zahl offen, rate erst: {cfg.even_words[0]} oder {cfg.odd_words[0]}",
            )
        account = self._store.get_or_create(key, channel)
        bet = take_wager(
            bet_spec, account.balance, key, self._config.currency.name,
            usage=f"/me @{key} Nutzung: {prefix}oe <Menge> oder 'all'",
        )

        account.balance -= bet
        secret = random.randrange(0, cfg.secret_range)
        self._sessions[key] = ParitySession(key, channel, bet, secret)
        await self._store.commit(key)
        self.games_played += 1
        self._logger.info("Parity started: %s bet %d", key, bet)
        return ParityResult(
            key, bet, None, False, 0, account.balance,
            f"/me @{key} Ich denke an eine Zahl zwischen 0 und {cfg.secret_range - 1} Hmmm "
            f"einsatz: {format_points(bet)}. {cfg.even_words[-1]} oder {cfg.odd_words[-1]}?",
        )

    async def resolve(self, username: str, guess: str) -> ParityResult | None:
        """Settle the open round. None when no round is open."""
        key = normalize_username(username)
        side = self._words.get(guess.strip().lower())
        if side is None:
            if key not in self._sessions:
                return None
            raise InvalidInput(f"unknown guess: {guess}", reply=f"/me @{key} sag gerade oder ungerade")

        session = self._sessions.pop(key, None)
        if session is None:
            return None

        actual = "even" if session.secret % 2 == 0 else "odd"
        won = side == actual
        payout = session.bet * self._config.gambling.parity.payout_multiplier if won else 0
        account = self._store.get_or_create(key)
        if payout:
            account.balance += payout
            await self._store.commit(key)

        cur = self._config.currency.name
        if won:
            text = (
                f"/me @{key} Die Zahl war {session.secret} PogChamp richtig! "
                f"+{format_points(payout - session.bet)} {cur}, balance: {format_points(account.balance)} {cur}"
            )
        else:
            text = (
                f"/me @{key} Die Zahl war {session.secret} eww falsch. "
                f"-{format_points(session.bet)} {cur}, balance: {format_points(account.balance)} {cur}"
            )
        self._logger.info("Parity resolved: %s guessed %s, secret %d, payout %d", key, side, session.secret, payout)
        return ParityResult(key, session.bet, session.secret, won, payout, account.balance, text)
