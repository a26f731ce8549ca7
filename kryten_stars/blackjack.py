"""Single-hand blackjack against the house.

One session per user, held in memory only. The bet is deducted when the
hand is dealt; every payout credits the full return (stake included).
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .errors import SessionConflict
from .utils import format_points, normalize_username, take_wager

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .config import StarsConfig

SUITS = ("♠", "♥", "♦", "♣")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __str__(self) -> str:
        return f"{self.rank}{self.suit}"


def new_deck() -> list[Card]:
    """A freshly shuffled 52-card deck. Draws pop from the end."""
    deck = [Card(rank, suit) for suit in SUITS for rank in RANKS]
    random.shuffle(deck)
    return deck


def hand_value(hand: list[Card]) -> int:
    value = 0
    aces = 0
    for card in hand:
        if card.rank in ("J", "Q", "K"):
            value += 10
        elif card.rank == "A":
            value += 11
            aces += 1
        else:
            value += int(card.rank)
    while value > 21 and aces:
        value -= 10
        aces -= 1
    return value


def format_hand(hand: list[Card]) -> str:
    return " ".join(str(c) for c in hand)


class HandOutcome(Enum):
    IN_PROGRESS = "in_progress"
    BLACKJACK = "blackjack"
    WIN = "win"
    DEALER_BUST = "dealer_bust"
    PUSH = "push"
    LOSS = "loss"
    BUST = "bust"


@dataclass
class BlackjackSession:
    username: str
    channel: str | None
    bet: int
    deck: list[Card]
    player: list[Card] = field(default_factory=list)
    dealer: list[Card] = field(default_factory=list)


@dataclass
class BlackjackResult:
    outcome: HandOutcome
    bet: int
    payout: int
    balance: int
    message: str

    @property
    def finished(self) -> bool:
        return self.outcome is not HandOutcome.IN_PROGRESS


class BlackjackEngine:
    """Deals, hits and stands for every open blackjack hand."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        logger: logging.Logger | None = None,
        deck_factory: Callable[[], list[Card]] = new_deck,
    ) -> None:
        self._config = config
        self._store = store
        self._logger = logger or logging.getLogger("stars.blackjack")
        self._deck_factory = deck_factory
        self._sessions: dict[str, BlackjackSession] = {}
        self.games_played = 0

    @property
    def _currency(self) -> str:
        return self._config.currency.name

    def has_session(self, username: str) -> bool:
        return normalize_username(username) in self._sessions

    def session(self, username: str) -> BlackjackSession | None:
        return self._sessions.get(normalize_username(username))

    async def start(self, username: str, channel: str | None, bet_spec: str | int | None) -> BlackjackResult:
        key = normalize_username(username)
        prefix = self._config.commands.prefix
        if key in self._sessions:
            raise SessionConflict(
                "blackjack already open",
                reply=(
                    f"/me @{key} du hast schon ein spiel offen ADHD schreib '{prefix}hit' "
                    f"oder '{prefix}stand' wideSpeedNod"
                ),
            )
        account = self._store.get_or_create(key, channel)
        bet = take_wager(
            bet_spec, account.balance, key, self._currency,
            usage=f"/me @{key} Nerd Nutzung: {prefix}bj <Menge> oder 'all'",
        )

        account.balance -= bet
        deck = self._deck_factory()
        session = BlackjackSession(key, channel, bet, deck)
        session.player = [deck.pop(), deck.pop()]
        session.dealer = [deck.pop(), deck.pop()]
        self._sessions[key] = session
        await self._store.commit(key)
        self.games_played += 1
        self._logger.info("Blackjack started: %s bet %d", key, bet)

        player_total = hand_value(session.player)
        if player_total == 21:
            return await self._natural(session)

        return BlackjackResult(
            HandOutcome.IN_PROGRESS, bet, 0, account.balance,
            f"/me wideSpeedNod @{key} blackjack gestartet, einsatz: {format_points(bet)}, "
            f"deine hand: [ {format_hand(session.player)} ] ({player_total}) | "
            f"dealer: [ {session.dealer[0]} ? ] , hit oder stand? Hmmm",
        )

    async def hit(self, username: str) -> BlackjackResult | None:
        """Draw a card. None when no hand is open."""
        key = normalize_username(username)
        session = self._sessions.get(key)
        if session is None:
            return None
        session.player.append(session.deck.pop())
        total = hand_value(session.player)

        if total > 21:
            del self._sessions[key]
            balance = self._balance(key)
            self._logger.info("Blackjack bust: %s lost %d", key, session.bet)
            return BlackjackResult(
                HandOutcome.BUST, session.bet, 0, balance,
                f"/me @{key} BUST ohno [ {format_hand(session.player)} ] ({total}), du verlierst "
                f"{format_points(session.bet)} {self._currency} , balance: {format_points(balance)} {self._currency}",
            )
        if total == 21:
            return await self.stand(key)

        return BlackjackResult(
            HandOutcome.IN_PROGRESS, session.bet, 0, self._balance(key),
            f"/me @{key} [ {format_hand(session.player)} ] ({total}) | "
            f"dealer: [ {session.dealer[0]} ? ] wideSpeedNod",
        )

    async def stand(self, username: str) -> BlackjackResult | None:
        """Play out the dealer and settle. None when no hand is open."""
        key = normalize_username(username)
        session = self._sessions.pop(key, None)
        if session is None:
            return None

        cfg = self._config.gambling.blackjack
        dealer_total = hand_value(session.dealer)
        while dealer_total < cfg.dealer_stands_on:
            session.dealer.append(session.deck.pop())
            dealer_total = hand_value(session.dealer)
        player_total = hand_value(session.player)

        if dealer_total > 21:
            outcome, payout = HandOutcome.DEALER_BUST, session.bet * cfg.win_payout
        elif player_total > dealer_total:
            outcome, payout = HandOutcome.WIN, session.bet * cfg.win_payout
        elif player_total == dealer_total:
            outcome, payout = HandOutcome.PUSH, session.bet
        else:
            outcome, payout = HandOutcome.LOSS, 0

        balance = await self._credit(key, payout)
        cur = self._currency
        text = (
            f"/me @{key} Stand. Du: [ {format_hand(session.player)} ] ({player_total}) | "
            f"Dealer: [ {format_hand(session.dealer)} ] ({dealer_total}). "
        )
        if outcome is HandOutcome.DEALER_BUST:
            text += f"Dealer Bust! Du gewinnst {format_points(payout - session.bet)} {cur}."
        elif outcome is HandOutcome.WIN:
            text += f"Gewonnen! +{format_points(payout - session.bet)} {cur}."
        elif outcome is HandOutcome.PUSH:
            text += "Unentschieden. Du behältst deinen Einsatz."
        else:
            text += f"Verloren. -{format_points(session.bet)} {cur}."
        text += f" Balance: {format_points(balance)} {cur}"

        self._logger.info(
            "Blackjack settled: %s %s (%d vs %d), payout %d",
            key, outcome.value, player_total, dealer_total, payout,
        )
        return BlackjackResult(outcome, session.bet, payout, balance, text)

    # ══════════════════════════════════════════════════════════
    #  Internals
    # ══════════════════════════════════════════════════════════

    async def _natural(self, session: BlackjackSession) -> BlackjackResult:
        self._sessions.pop(session.username, None)
        key = session.username
        hands = f"du: [{format_hand(session.player)}] dealer: [{format_hand(session.dealer)}]"
        if hand_value(session.dealer) == 21:
            balance = await self._credit(key, session.bet)
            return BlackjackResult(
                HandOutcome.PUSH, session.bet, session.bet, balance,
                f"/me wideSpeedNod @{key} blackjack push {hands}, "
                f"balance: {format_points(balance)} {self._currency}",
            )
        payout = math.ceil(session.bet * self._config.gambling.blackjack.natural_payout)
        balance = await self._credit(key, payout)
        self._logger.info("Blackjack natural: %s payout %d", key, payout)
        return BlackjackResult(
            HandOutcome.BLACKJACK, session.bet, payout, balance,
            f"/me wideSpeedNod @{key} BLACKJACK {hands}, Gewinn: {format_points(payout - session.bet)} "
            f"balance: {format_points(balance)} {self._currency}",
        )

    async def _credit(self, username: str, amount: int) -> int:
        account = self._store.get_or_create(username)
        if amount > 0:
            account.balance += amount
            await self._store.commit(username)
        return account.balance

    def _balance(self, username: str) -> int:
        account = self._store.get(username)
        return account.balance if account else 0
