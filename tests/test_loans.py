"""Tests for the loan ledger: grant, interest, default and repay."""

from __future__ import annotations

import logging
from datetime import timedelta
from unittest.mock import patch

import pytest

from conftest import CH, T0, RecordingSender, fund, make_config_dict
from kryten_stars.config import StarsConfig
from kryten_stars.errors import InsufficientFunds, InvalidInput, SessionConflict
from kryten_stars.loans import LoanLedger


def make_ledger(store, sender, **loan_overrides) -> LoanLedger:
    config = StarsConfig(**make_config_dict(loans=loan_overrides))
    return LoanLedger(config, store, sender, sender, logging.getLogger("test"), default_channel=CH)


async def grant(ledger, username="alice", amount=1000):
    with patch("kryten_stars.loans.random.randint", return_value=amount):
        return await ledger.request(username, CH, now=T0)


class TestGrant:
    async def test_grant(self, loan_ledger, store):
        result = await grant(loan_ledger)
        assert result.granted is True
        assert result.amount == 1000
        assert "Kredit genehmigt!" in result.message
        account = store.get("alice")
        assert account.balance == 1000
        assert account.loan.active is True
        assert account.loan.debt == 1000
        assert account.loan.due_at == T0 + timedelta(hours=6)
        assert loan_ledger.loans_granted_total == 1

    async def test_amount_in_range(self, loan_ledger, store):
        result = await loan_ledger.request("alice", CH, now=T0)
        assert 67 <= result.amount <= 676767

    async def test_second_loan_conflicts(self, loan_ledger, store):
        await grant(loan_ledger)
        with pytest.raises(SessionConflict):
            await loan_ledger.request("alice", CH, now=T0 + timedelta(minutes=5))
        assert store.get("alice").balance == 1000

    async def test_disabled(self, store, sender):
        ledger = make_ledger(store, sender, enabled=False)
        with pytest.raises(InvalidInput):
            await ledger.request("alice", CH, now=T0)


class TestConsent:
    async def test_request_asks_first(self, store, sender):
        ledger = make_ledger(store, sender, require_consent=True)
        result = await ledger.request("alice", CH, now=T0)
        assert result.granted is False
        assert "REGELN" in result.message
        assert ledger.has_pending("alice")
        assert store.get("alice").loan.active is False

    async def test_yes_grants(self, store, sender):
        ledger = make_ledger(store, sender, require_consent=True)
        await ledger.request("alice", CH, now=T0)
        with patch("kryten_stars.loans.random.randint", return_value=500):
            result = await ledger.answer("alice", CH, "Ja", now=T0)
        assert result.granted is True
        assert store.get("alice").balance == 500
        assert not ledger.has_pending("alice")

    async def test_no_declines(self, store, sender):
        ledger = make_ledger(store, sender, require_consent=True)
        await ledger.request("alice", CH, now=T0)
        result = await ledger.answer("alice", CH, "nein", now=T0)
        assert result.granted is False
        assert "Kredit abgelehnt" in result.message
        assert store.get("alice").loan.active is False
        assert not ledger.has_pending("alice")

    async def test_other_word_is_ignored(self, store, sender):
        ledger = make_ledger(store, sender, require_consent=True)
        await ledger.request("alice", CH, now=T0)
        assert await ledger.answer("alice", CH, "vielleicht", now=T0) is None
        assert ledger.has_pending("alice")

    async def test_answer_without_question(self, loan_ledger):
        assert await loan_ledger.answer("alice", CH, "ja", now=T0) is None


class TestInterest:
    async def test_one_hour_compounding(self, loan_ledger, store):
        await grant(loan_ledger)
        await loan_ledger.tick(T0 + timedelta(seconds=3700))
        assert store.get("alice").loan.debt == 1100
        assert store.get("alice").loan.hours_tracked == 1

    async def test_no_interest_before_an_hour(self, loan_ledger, store):
        await grant(loan_ledger)
        await loan_ledger.tick(T0 + timedelta(minutes=59))
        assert store.get("alice").loan.debt == 1000

    async def test_stepped_policy_floors(self, store, sender):
        ledger = make_ledger(store, sender, policy="stepped")
        await grant(ledger)
        await ledger.tick(T0 + timedelta(hours=1))
        assert store.get("alice").loan.debt == 1067

    async def test_compounding_sequence(self, loan_ledger, store):
        await grant(loan_ledger)
        seen = []
        for hour in range(1, 6):
            await loan_ledger.tick(T0 + timedelta(hours=hour))
            seen.append(store.get("alice").loan.debt)
        assert seen == [1100, 1210, 1331, 1465, 1612]

    async def test_missed_hours_are_caught_up(self, loan_ledger, store):
        await grant(loan_ledger)
        await loan_ledger.tick(T0 + timedelta(hours=3, minutes=30))
        assert store.get("alice").loan.debt == 1331


class TestDefault:
    async def test_partial_default_times_out(self, loan_ledger, store, sender):
        await grant(loan_ledger)
        defaults = await loan_ledger.tick(T0 + timedelta(hours=6))

        assert len(defaults) == 1
        settled = defaults[0]
        assert settled.paid == 1000
        assert settled.remaining == 774
        assert settled.timeout_seconds == 774
        assert settled.timeout_ok is True
        assert sender.timeouts == [(CH, "alice", 774, "Kredit nicht zurückgezahlt!")]
        assert "Timeout für 774 Sekunden" in sender.texts[-1]

        account = store.get("alice")
        assert account.balance == 0
        assert account.loan.active is False
        assert account.loan.debt == 0
        assert loan_ledger.loans_defaulted_total == 1

        assert await loan_ledger.tick(T0 + timedelta(hours=7)) == []
        assert len(sender.timeouts) == 1

    async def test_covered_debt_is_repaid_automatically(self, loan_ledger, store, sender):
        await grant(loan_ledger)
        store.get("alice").balance = 5000
        defaults = await loan_ledger.tick(T0 + timedelta(hours=6))
        assert defaults[0].remaining == 0
        assert store.get("alice").balance == 5000 - 1774
        assert sender.timeouts == []
        assert "automatisch zurückgezahlt" in sender.texts[-1]
        assert loan_ledger.loans_defaulted_total == 0

    async def test_failed_timeout_still_clears_loan(self, loan_ledger, store):
        moderator = RecordingSender(timeout_ok=False)
        loan_ledger._moderator = moderator
        loan_ledger._sender = moderator
        await grant(loan_ledger)
        defaults = await loan_ledger.tick(T0 + timedelta(hours=6))
        assert defaults[0].timeout_ok is False
        assert "hat Glück" in moderator.texts[-1]
        assert store.get("alice").loan.active is False

    async def test_timeout_is_capped(self, store, sender):
        ledger = make_ledger(store, sender)
        ledger._config.moderation.max_timeout_seconds = 100
        await grant(ledger)
        defaults = await ledger.tick(T0 + timedelta(hours=6))
        assert defaults[0].timeout_seconds == 100

    async def test_grace_period(self, store, sender):
        ledger = make_ledger(store, sender, default_grace_minutes=10)
        await grant(ledger)
        assert await ledger.tick(T0 + timedelta(hours=6)) == []
        assert len(await ledger.tick(T0 + timedelta(hours=6, minutes=10))) == 1


class TestRepay:
    async def test_repay(self, loan_ledger, store):
        await grant(loan_ledger)
        fund(store, "alice", 1500)
        result = await loan_ledger.repay("alice", CH)
        assert result.amount == 1000
        assert "keine schulden mehr" in result.message
        assert store.get("alice").balance == 500
        assert store.get("alice").loan.active is False

    async def test_repay_too_broke(self, loan_ledger, store):
        await grant(loan_ledger)
        await loan_ledger.tick(T0 + timedelta(hours=1))
        with pytest.raises(InsufficientFunds) as exc_info:
            await loan_ledger.repay("alice", CH)
        assert "zu broke" in exc_info.value.reply
        assert store.get("alice").loan.active is True

    async def test_repay_without_loan(self, loan_ledger):
        with pytest.raises(InvalidInput):
            await loan_ledger.repay("alice", CH)

    async def test_trap_keeps_loan(self, store, sender):
        ledger = make_ledger(store, sender, repay_mode="trap")
        await grant(ledger)
        result = await ledger.repay("alice", CH)
        assert result.granted is False
        assert store.get("alice").balance == 1000
        assert store.get("alice").loan.active is True


class TestQueries:
    async def test_top_debtor(self, loan_ledger):
        assert loan_ledger.top_debtor() is None
        await grant(loan_ledger, "alice", 1000)
        await grant(loan_ledger, "bob", 3000)
        assert loan_ledger.top_debtor().username == "bob"
        assert {a.username for a in loan_ledger.active_loans()} == {"alice", "bob"}

    def test_rules_text(self, loan_ledger):
        text = loan_ledger.rules_text()
        assert text.startswith("REGELN")
        assert "6h" in text
