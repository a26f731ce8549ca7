"""Error taxonomy for kryten-stars.

Engines raise these; the chat router turns them into short chat replies,
preferring the engine-supplied ``reply`` text when one is given.
Persistence and external-service failures are caught where they happen and
only logged, so a command never blocks on durability.
"""

from __future__ import annotations


class StarsError(Exception):
    """Base class for every economy-level failure."""

    def __init__(self, *args: object, reply: str | None = None) -> None:
        super().__init__(*args)
        self.reply = reply


class InvalidInput(StarsError):
    """Unparseable bet, missing argument, unknown word."""


class InsufficientFunds(StarsError):
    """Wager or payment exceeds the current balance."""

    def __init__(self, balance: int, needed: int | None = None, reply: str | None = None) -> None:
        super().__init__(f"Insufficient funds: balance {balance}, needed {needed}", reply=reply)
        self.balance = balance
        self.needed = needed


class SessionConflict(StarsError):
    """A game or loan of the same kind is already open for this user."""


class CooldownActive(StarsError):
    """Action is still on cooldown."""

    def __init__(self, remaining_seconds: float, balance: int = 0, reply: str | None = None) -> None:
        super().__init__(f"Cooldown active: {remaining_seconds:.0f}s remaining", reply=reply)
        self.remaining_seconds = remaining_seconds
        self.balance = balance


class PersistenceFailure(StarsError):
    """Backend unreachable or write failed."""


class ExternalServiceFailure(StarsError):
    """Emote catalog, moderation or delivery collaborator failed."""
