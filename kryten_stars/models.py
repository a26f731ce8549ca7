"""Account and reminder records.

Plain dataclasses with to_record()/from_record() converters. Records are
flat JSON-safe dicts; both persistence backends store exactly these keys.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .utils import format_timestamp, now_utc, parse_timestamp

DEFAULT_LEVEL_COST = 670


@dataclass
class Loan:
    active: bool = False
    amount: int = 0
    debt: int = 0
    due_at: datetime | None = None
    last_interest_at: datetime | None = None
    hours_tracked: int = 0

    def clear(self) -> None:
        self.active = False
        self.amount = 0
        self.debt = 0
        self.due_at = None
        self.last_interest_at = None
        self.hours_tracked = 0


@dataclass
class Account:
    username: str
    balance: int = 0
    level: int = 0
    invested_stars: int = 0
    next_level_cost: int = DEFAULT_LEVEL_COST
    last_claim: datetime | None = None
    reminded: bool = False
    pending_loan: bool = False
    last_channel: str | None = None
    loan: Loan = field(default_factory=Loan)

    @property
    def total_standing(self) -> int:
        return self.balance + self.invested_stars

    def to_record(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "balance": self.balance,
            "level": self.level,
            "invested_stars": self.invested_stars,
            "next_level_cost": self.next_level_cost,
            "last_claim": format_timestamp(self.last_claim),
            "reminded": self.reminded,
            "pending_loan": self.pending_loan,
            "last_channel": self.last_channel,
            "loan_active": self.loan.active,
            "loan_amount": self.loan.amount,
            "loan_debt": self.loan.debt,
            "loan_due_at": format_timestamp(self.loan.due_at),
            "loan_last_interest_at": format_timestamp(self.loan.last_interest_at),
            "loan_hours_tracked": self.loan.hours_tracked,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Account:
        return cls(
            username=record["username"],
            balance=max(0, int(record.get("balance") or 0)),
            level=int(record.get("level") or 0),
            invested_stars=int(record.get("invested_stars") or 0),
            next_level_cost=int(record.get("next_level_cost") or DEFAULT_LEVEL_COST),
            last_claim=parse_timestamp(record.get("last_claim")),
            reminded=bool(record.get("reminded")),
            pending_loan=bool(record.get("pending_loan")),
            last_channel=record.get("last_channel"),
            loan=Loan(
                active=bool(record.get("loan_active")),
                amount=int(record.get("loan_amount") or 0),
                debt=int(record.get("loan_debt") or 0),
                due_at=parse_timestamp(record.get("loan_due_at")),
                last_interest_at=parse_timestamp(record.get("loan_last_interest_at")),
                hours_tracked=int(record.get("loan_hours_tracked") or 0),
            ),
        )


@dataclass(frozen=True)
class Reminder:
    """A reminder is never mutated; it is deleted after its one delivery."""

    target: str
    source: str
    message: str
    due_at: datetime | None  # None → deliver on the target's next message
    channel: str | None
    created_at: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def on_next_message(self) -> bool:
        return self.due_at is None

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "target": self.target,
            "source": self.source,
            "message": self.message,
            "due_at": format_timestamp(self.due_at),
            "channel": self.channel,
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Reminder:
        return cls(
            id=record["id"],
            target=record["target"],
            source=record["source"],
            message=record.get("message") or "",
            due_at=parse_timestamp(record.get("due_at")),
            channel=record.get("channel"),
            created_at=parse_timestamp(record.get("created_at")) or now_utc(),
        )
