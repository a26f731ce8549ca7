"""Loan ledger — grant, hourly interest, deadline default, repay policy.

One loan per account. The canonical policy compounds a flat hourly rate
(rounded up); the "stepped" policy charges a smaller hourly rate and a
steeper final hour (floored). On the deadline the ledger auto-repays what
the balance covers; any remainder triggers a moderation timeout and the
loan is cleared regardless.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from .errors import InsufficientFunds, InvalidInput, SessionConflict
from .utils import format_points, now_utc

if TYPE_CHECKING:
    from .account_store import AccountStore
    from .chat_bridge import ChatSender, Moderator
    from .config import StarsConfig
    from .models import Account

YES_WORDS = frozenset({"ja", "yes"})
NO_WORDS = frozenset({"nein", "no"})

_HOUR = timedelta(hours=1)


@dataclass
class LoanResult:
    username: str
    granted: bool
    amount: int
    message: str


@dataclass
class LoanDefault:
    username: str
    channel: str | None
    paid: int
    remaining: int
    timeout_seconds: int
    timeout_ok: bool | None


class LoanLedger:
    """Owns the loan state machine for every account."""

    def __init__(
        self,
        config: StarsConfig,
        store: AccountStore,
        sender: ChatSender,
        moderator: Moderator,
        logger: logging.Logger | None = None,
        default_channel: str | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._sender = sender
        self._moderator = moderator
        self._logger = logger or logging.getLogger("stars.loans")
        self._default_channel = default_channel
        self._task: asyncio.Task | None = None
        self.loans_granted_total = 0
        self.loans_defaulted_total = 0

    @property
    def _currency(self) -> str:
        return self._config.currency.name

    # ══════════════════════════════════════════════════════════
    #  Lifecycle
    # ══════════════════════════════════════════════════════════

    async def start(self) -> None:
        if self._config.loans.enabled and self._task is None:
            self._task = asyncio.create_task(self._tick_loop())
            self._logger.info(
                "Loan tick started (interval: %ds, policy: %s)",
                self._config.loans.tick_seconds, self._config.loans.policy,
            )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.loans.tick_seconds)
            try:
                await self.tick()
            except Exception:
                self._logger.exception("Loan tick failed")

    # ══════════════════════════════════════════════════════════
    #  Grant
    # ══════════════════════════════════════════════════════════

    def rules_text(self) -> str:
        cfg = self._config.loans
        if cfg.policy == "stepped":
            interest = (
                f"Jede Stunde +{cfg.stepped_hourly_rate * 100:.1f}% Zinsen. "
                f"Letzte Stunde +{cfg.stepped_final_rate * 100:.1f}%."
            )
        else:
            interest = f"Jede Stunde +{cfg.hourly_rate * 100:.0f}% Zinsen."
        return (
            f"REGELN: Zufälliger Betrag ({format_points(cfg.min_amount)}-{format_points(cfg.max_amount)}). "
            f"Laufzeit {cfg.duration_hours}h. {interest}"
        )

    async def request(self, username: str, channel: str | None, now: datetime | None = None) -> LoanResult:
        """Ask for a loan. Grants at once unless consent is required."""
        if not self._config.loans.enabled:
            raise InvalidInput("loans disabled", reply=f"/me @{username} Kredite sind gerade aus.")
        account = self._store.get_or_create(username, channel)

        if account.loan.active:
            raise SessionConflict(
                "loan already active",
                reply=(
                    f"/me wideSpeedNod @{account.username} du hast schon einen laufenden Kredit. "
                    f"Schulden: {format_points(account.loan.debt)} {self._currency}."
                ),
            )

        if self._config.loans.require_consent:
            if account.pending_loan:
                return LoanResult(
                    account.username, False, 0,
                    f"/me wideSpeedNod @{account.username} willst du den Kredit nun? Schreib 'ja' oder 'nein'.",
                )
            account.pending_loan = True
            await self._store.commit(account.username)
            return LoanResult(
                account.username, False, 0,
                f"/me wideSpeedNod @{account.username} {self.rules_text()} Willst du? (Schreib 'ja')",
            )

        return await self._grant(account, now or now_utc())

    def has_pending(self, username: str) -> bool:
        account = self._store.get(username)
        return bool(account and account.pending_loan)

    async def answer(
        self, username: str, channel: str | None, word: str, now: datetime | None = None,
    ) -> LoanResult | None:
        """Resolve a pending consent question. None if nothing was pending."""
        account = self._store.get(username)
        if account is None or not account.pending_loan:
            return None
        reply = word.strip().lower()
        if reply in NO_WORDS:
            account.pending_loan = False
            await self._store.commit(account.username)
            return LoanResult(account.username, False, 0, f"/me @{account.username} Kredit abgelehnt. Smart")
        if reply in YES_WORDS:
            account.pending_loan = False
            if channel:
                account.last_channel = channel
            return await self._grant(account, now or now_utc())
        return None

    async def _grant(self, account: Account, now: datetime) -> LoanResult:
        cfg = self._config.loans
        amount = random.randint(cfg.min_amount, cfg.max_amount)
        account.balance += amount
        loan = account.loan
        loan.active = True
        loan.amount = amount
        loan.debt = amount
        loan.due_at = now + timedelta(hours=cfg.duration_hours)
        loan.last_interest_at = now
        loan.hours_tracked = 0
        await self._store.commit(account.username)
        self.loans_granted_total += 1
        self._logger.info("Loan granted: %s %d (due %s)", account.username, amount, loan.due_at.isoformat())
        return LoanResult(
            account.username, True, amount,
            f"/me @{account.username} Kredit genehmigt! Du hast {format_points(amount)} {self._currency} "
            f"erhalten. Viel Glück beim Zurückzahlen in {cfg.duration_hours}h...",
        )

    # ══════════════════════════════════════════════════════════
    #  Interest & default
    # ══════════════════════════════════════════════════════════

    def _next_debt(self, debt: int, hour: int) -> int:
        cfg = self._config.loans
        if cfg.policy == "stepped":
            rate = cfg.stepped_final_rate if hour >= cfg.duration_hours else cfg.stepped_hourly_rate
            return math.floor(Decimal(debt) * (1 + Decimal(str(rate))))
        return math.ceil(Decimal(debt) * (1 + Decimal(str(cfg.hourly_rate))))

    def accrue(self, account: Account, now: datetime) -> int:
        """Apply every interest step that is due. Returns the step count."""
        loan = account.loan
        steps = 0
        while (
            loan.last_interest_at is not None
            and now - loan.last_interest_at >= _HOUR
            and (loan.due_at is None or loan.last_interest_at + _HOUR <= loan.due_at)
        ):
            old = loan.debt
            loan.hours_tracked += 1
            loan.debt = self._next_debt(loan.debt, loan.hours_tracked)
            loan.last_interest_at += _HOUR
            steps += 1
            self._logger.info(
                "Interest for %s: %d -> %d (hour %d)", account.username, old, loan.debt, loan.hours_tracked,
            )
        return steps

    def _is_overdue(self, account: Account, now: datetime) -> bool:
        due = account.loan.due_at
        if due is None:
            return False
        return now >= due + timedelta(minutes=self._config.loans.default_grace_minutes)

    async def tick(self, now: datetime | None = None) -> list[LoanDefault]:
        """Accrue interest and settle overdue loans for every account."""
        now = now or now_utc()
        defaults: list[LoanDefault] = []
        for account in self._store:
            if not account.loan.active:
                continue
            changed = self.accrue(account, now) > 0
            settled: LoanDefault | None = None
            if self._is_overdue(account, now):
                settled = self._settle(account)
                changed = True
            if changed:
                await self._store.commit(account.username)
            if settled is not None:
                await self._announce_default(settled)
                defaults.append(settled)
        return defaults

    def _settle(self, account: Account) -> LoanDefault:
        """Auto-repay what the balance covers, then clear the loan."""
        loan = account.loan
        pay = min(account.balance, loan.debt)
        account.balance -= pay
        remaining = loan.debt - pay
        loan.clear()
        timeout = min(remaining, self._config.moderation.max_timeout_seconds) if remaining > 0 else 0
        if remaining > 0:
            self.loans_defaulted_total += 1
        self._logger.info(
            "Loan due for %s: paid %d, remaining %d", account.username, pay, remaining,
        )
        return LoanDefault(
            username=account.username,
            channel=account.last_channel or self._default_channel,
            paid=pay,
            remaining=remaining,
            timeout_seconds=timeout,
            timeout_ok=None,
        )

    async def _announce_default(self, settled: LoanDefault) -> None:
        channel = settled.channel
        if not channel:
            self._logger.warning("No channel to announce loan settlement for %s", settled.username)
            return
        user = settled.username
        if settled.remaining <= 0:
            await self._sender.send(
                channel,
                f"/me @{user} Kredit automatisch zurückgezahlt ({format_points(settled.paid)} {self._currency}). "
                f"bist frei FREIHEIT",
            )
            return

        settled.timeout_ok = await self._moderator.request_timeout(
            channel, user, settled.timeout_seconds, self._config.moderation.loan_default_reason,
        )
        if settled.timeout_ok:
            text = (
                f"/me @{user} hat seinen Kredit nicht bezahlt haher Timeout für "
                f"{settled.timeout_seconds} Sekunden! Rest in Peace o7"
            )
        else:
            text = f"/me @{user} hat Glück. Aber Kredit ist weg. Top"
        await self._sender.send(channel, text)

    # ══════════════════════════════════════════════════════════
    #  Repay & queries
    # ══════════════════════════════════════════════════════════

    async def repay(self, username: str, channel: str | None) -> LoanResult:
        account = self._store.get_or_create(username, channel)
        loan = account.loan
        if not loan.active:
            raise InvalidInput("no active loan", reply=f"/me @{account.username} du hast keine Schulden lol")

        if self._config.loans.repay_mode == "trap":
            self._logger.info("Repay denied by trap policy for %s", account.username)
            return LoanResult(
                account.username, False, 0,
                f"/me @{account.username} zurückzahlen? haher nope. Die Bank nimmt nichts an, "
                f"warte auf die Deadline.",
            )

        if account.balance < loan.debt:
            raise InsufficientFunds(
                account.balance, loan.debt,
                reply=(
                    f"/me @{account.username} du bist zu broke. Du brauchst {format_points(loan.debt)} "
                    f"{self._currency} , hast aber nur {format_points(account.balance)}."
                ),
            )

        paid = loan.debt
        account.balance -= paid
        loan.clear()
        await self._store.commit(account.username)
        self._logger.info("Loan repaid by %s: %d", account.username, paid)
        return LoanResult(
            account.username, False, paid,
            f"/me @{account.username} keine schulden mehr, bist frei FREIHEIT",
        )

    def active_loans(self) -> list[Account]:
        return [a for a in self._store if a.loan.active]

    def top_debtor(self) -> Account | None:
        debtors = sorted(self.active_loans(), key=lambda a: a.loan.debt, reverse=True)
        return debtors[0] if debtors else None
