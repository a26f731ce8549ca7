"""Outbound chat and moderation through kryten-py.

ChatBridge is the only component that talks to the KrytenClient for
output. Every call is bounded by a timeout and never raises: delivery is
fire-and-forget from the engines' point of view.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from kryten import KrytenClient

    from .config import ModerationConfig


class ChatSender(Protocol):
    async def send(self, channel: str, text: str) -> bool:
        ...


class Moderator(Protocol):
    async def request_timeout(self, channel: str, user: str, duration_seconds: int, reason: str) -> bool:
        ...


class ChatBridge:
    """ChatSender + Moderator backed by a KrytenClient."""

    def __init__(
        self,
        client: KrytenClient | None,
        config: ModerationConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._logger = logger or logging.getLogger("stars.chat")
        self.messages_sent = 0
        self.send_failures = 0

    async def send(self, channel: str, text: str) -> bool:
        """Post a message in public chat via kryten-py."""
        if self._client is None:
            self._logger.debug("No client, dropping message to %s", channel)
            return False
        try:
            await asyncio.wait_for(
                self._client.send_chat(channel, text),
                timeout=self._config.send_timeout_seconds,
            )
            self.messages_sent += 1
            return True
        except Exception:
            self.send_failures += 1
            self._logger.warning("Failed to send chat to %s", channel, exc_info=True)
            return False

    async def request_timeout(self, channel: str, user: str, duration_seconds: int, reason: str) -> bool:
        """Ask the chat to time a user out. Returns False on failure."""
        seconds = max(1, min(int(duration_seconds), self._config.max_timeout_seconds))
        command = self._config.timeout_command.format(
            user=user, seconds=seconds, reason=reason,
        ).strip()
        ok = await self.send(channel, command)
        if ok:
            self._logger.info("Timeout requested for %s in %s: %ds (%s)", user, channel, seconds, reason)
        else:
            self._logger.warning("Timeout request for %s in %s failed", user, channel)
        return ok
