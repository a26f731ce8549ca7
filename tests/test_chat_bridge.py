"""Tests for ChatBridge — outbound chat and moderation."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

from conftest import CH
from kryten_stars.chat_bridge import ChatBridge
from kryten_stars.config import ModerationConfig


def _bridge(client, **overrides) -> ChatBridge:
    return ChatBridge(client, ModerationConfig(**overrides), logging.getLogger("test"))


class TestSend:
    async def test_send(self, mock_client: MagicMock):
        bridge = _bridge(mock_client)
        assert await bridge.send(CH, "hallo") is True
        mock_client.send_chat.assert_awaited_once_with(CH, "hallo")
        assert bridge.messages_sent == 1

    async def test_send_failure_is_swallowed(self, mock_client: MagicMock):
        mock_client.send_chat = AsyncMock(side_effect=RuntimeError("nats down"))
        bridge = _bridge(mock_client)
        assert await bridge.send(CH, "hallo") is False
        assert bridge.send_failures == 1

    async def test_send_timeout(self, mock_client: MagicMock):
        async def hang(*_args):
            await asyncio.sleep(5)

        mock_client.send_chat = AsyncMock(side_effect=hang)
        bridge = _bridge(mock_client, send_timeout_seconds=0.01)
        assert await bridge.send(CH, "hallo") is False

    async def test_no_client(self):
        assert await _bridge(None).send(CH, "hallo") is False


class TestTimeout:
    async def test_request_timeout_formats_command(self, mock_client: MagicMock):
        bridge = _bridge(mock_client)
        assert await bridge.request_timeout(CH, "alice", 774, "Kredit nicht zurückgezahlt!") is True
        mock_client.send_chat.assert_awaited_once_with(CH, "/timeout alice 774 Kredit nicht zurückgezahlt!")

    async def test_request_timeout_is_capped(self, mock_client: MagicMock):
        bridge = _bridge(mock_client, max_timeout_seconds=60)
        await bridge.request_timeout(CH, "alice", 5000, "x")
        mock_client.send_chat.assert_awaited_once_with(CH, "/timeout alice 60 x")

    async def test_request_timeout_failure(self, mock_client: MagicMock):
        mock_client.send_chat = AsyncMock(side_effect=RuntimeError("nope"))
        assert await _bridge(mock_client).request_timeout(CH, "alice", 10, "x") is False
