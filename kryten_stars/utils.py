"""Shared utility helpers for kryten-stars."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from .errors import InsufficientFunds, InvalidInput


def parse_timestamp(ts: str | None) -> datetime | None:
    """Parse an ISO timestamp string to a timezone-aware datetime, or None."""
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
        # Naive timestamps are stored as UTC
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        return None


def format_timestamp(dt: datetime | None) -> str | None:
    """Inverse of parse_timestamp."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat()


def now_utc() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def normalize_username(name: str) -> str:
    """Lowercase and strip a leading '@' so mentions and logins match."""
    return name.strip().lstrip("@").lower()


def format_points(points: int) -> str:
    """German thousands grouping: 1234567 → '1.234.567'."""
    return f"{points:,}".replace(",", ".")


def resolve_bet(spec: str | int | None, balance: int) -> int:
    """Resolve a bet spec (integer, 'all', 'half', 'N%') against a balance.

    Raises InvalidInput for anything that does not resolve to a positive
    integer. The caller checks the result against the balance.
    """
    if spec is None or spec == "":
        raise InvalidInput("missing bet")
    text = str(spec).strip().lower()

    if text == "all":
        amount = balance
    elif text in ("half", "hälfte"):
        amount = balance // 2
    elif text.endswith("%"):
        try:
            percent = int(text[:-1])
        except ValueError:
            raise InvalidInput(f"bad percentage: {spec}") from None
        if not 0 < percent <= 100:
            raise InvalidInput(f"percentage out of range: {spec}")
        amount = math.ceil(balance * percent / 100)
    else:
        try:
            amount = int(text)
        except ValueError:
            raise InvalidInput(f"bad bet: {spec}") from None

    if amount <= 0:
        raise InvalidInput(f"bet must be positive: {spec}")
    return amount


def take_wager(spec: str | int | None, balance: int, username: str, currency: str, usage: str) -> int:
    """resolve_bet with the chat replies every game shares."""
    try:
        amount = resolve_bet(spec, balance)
    except InvalidInput as e:
        text = usage if spec is None or spec == "" else f"/me @{username} Ungültiger Einsatz bob"
        raise InvalidInput(str(e), reply=text) from None
    if amount > balance:
        raise InsufficientFunds(
            balance, amount,
            reply=f"/me @{username} idiot du hast nur {format_points(balance)} {currency}",
        )
    return amount
