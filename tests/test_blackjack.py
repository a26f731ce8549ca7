"""Tests for the blackjack engine."""

from __future__ import annotations

import logging

import pytest

from conftest import CH, fund
from kryten_stars.blackjack import BlackjackEngine, Card, HandOutcome, hand_value, new_deck
from kryten_stars.errors import InsufficientFunds, InvalidInput, SessionConflict


def cards(*ranks: str) -> list[Card]:
    return [Card(rank, "♠") for rank in ranks]


def rigged(*draws: str):
    """Deck factory dealing player, player, dealer, dealer, then further draws."""
    return lambda: list(reversed(cards(*draws)))


def make_engine(sample_config, store, *draws: str) -> BlackjackEngine:
    return BlackjackEngine(sample_config, store, logging.getLogger("test"), deck_factory=rigged(*draws))


class TestHandValue:
    @pytest.mark.parametrize("ranks,expected", [
        (("A", "A"), 12),
        (("A", "K"), 21),
        (("A", "5", "K"), 16),
        (("K", "Q", "2"), 22),
        (("7", "8"), 15),
        (("A", "A", "9"), 21),
    ])
    def test_values(self, ranks, expected):
        assert hand_value(cards(*ranks)) == expected

    def test_new_deck_is_complete(self):
        deck = new_deck()
        assert len(deck) == 52
        assert len(set(deck)) == 52


class TestBlackjack:
    async def test_start_deducts_bet(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "9", "10", "6", "5")
        result = await engine.start("alice", CH, "50")
        assert result.outcome is HandOutcome.IN_PROGRESS
        assert not result.finished
        assert store.get("alice").balance == 50
        assert engine.has_session("Alice")
        assert "10♠ 9♠" in result.message
        assert engine.games_played == 1

    async def test_stand_loss(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "9", "10", "6", "5")
        await engine.start("alice", CH, "50")
        result = await engine.stand("alice")
        assert result.outcome is HandOutcome.LOSS
        assert result.payout == 0
        assert "Verloren" in result.message
        assert store.get("alice").balance == 50
        assert not engine.has_session("alice")

    async def test_stand_dealer_bust(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "9", "10", "6", "K")
        await engine.start("alice", CH, "50")
        result = await engine.stand("alice")
        assert result.outcome is HandOutcome.DEALER_BUST
        assert result.payout == 100
        assert "Dealer Bust!" in result.message
        assert store.get("alice").balance == 150

    async def test_stand_push(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "8", "10", "8")
        await engine.start("alice", CH, "50")
        result = await engine.stand("alice")
        assert result.outcome is HandOutcome.PUSH
        assert store.get("alice").balance == 100

    async def test_natural_pays_two_and_a_half(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "A", "K", "10", "6")
        result = await engine.start("alice", CH, "15")
        assert result.outcome is HandOutcome.BLACKJACK
        assert result.payout == 38
        assert store.get("alice").balance == 123
        assert not engine.has_session("alice")

    async def test_natural_push_refunds(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "A", "K", "A", "Q")
        result = await engine.start("alice", CH, "40")
        assert result.outcome is HandOutcome.PUSH
        assert store.get("alice").balance == 100

    async def test_hit_bust(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "6", "10", "7", "K")
        await engine.start("alice", CH, "50")
        result = await engine.hit("alice")
        assert result.outcome is HandOutcome.BUST
        assert "BUST" in result.message
        assert store.get("alice").balance == 50
        assert not engine.has_session("alice")

    async def test_hit_to_21_stands(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "6", "10", "8", "5")
        await engine.start("alice", CH, "50")
        result = await engine.hit("alice")
        assert result.outcome is HandOutcome.WIN
        assert result.payout == 100
        assert store.get("alice").balance == 150

    async def test_hit_keeps_playing(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "5", "6", "10", "8", "2")
        await engine.start("alice", CH, "50")
        result = await engine.hit("alice")
        assert result.outcome is HandOutcome.IN_PROGRESS
        assert len(engine.session("alice").player) == 3

    async def test_no_session(self, blackjack):
        assert await blackjack.hit("alice") is None
        assert await blackjack.stand("alice") is None


class TestBlackjackErrors:
    async def test_second_game_conflicts(self, sample_config, store):
        fund(store, "alice", 100)
        engine = make_engine(sample_config, store, "10", "9", "10", "6", "5")
        await engine.start("alice", CH, "50")
        with pytest.raises(SessionConflict):
            await engine.start("alice", CH, "10")
        assert store.get("alice").balance == 50

    async def test_bet_over_balance(self, blackjack, store):
        fund(store, "alice", 10)
        with pytest.raises(InsufficientFunds) as exc_info:
            await blackjack.start("alice", CH, "50")
        assert "du hast nur 10" in exc_info.value.reply
        assert store.get("alice").balance == 10
        assert not blackjack.has_session("alice")

    async def test_missing_bet_shows_usage(self, blackjack, store):
        fund(store, "alice", 10)
        with pytest.raises(InvalidInput) as exc_info:
            await blackjack.start("alice", CH, None)
        assert "Nutzung" in exc_info.value.reply

    async def test_garbage_bet(self, blackjack, store):
        fund(store, "alice", 10)
        with pytest.raises(InvalidInput) as exc_info:
            await blackjack.start("alice", CH, "viel")
        assert "Ungültiger Einsatz" in exc_info.value.reply
