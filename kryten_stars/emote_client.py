"""7TV emote catalog client — async HTTP wrapper with caching.

Provides get_emotes(channel) for slot symbols and cosmetic flourishes.
Returns the configured fallback list (possibly empty) when a channel has no
7TV mapping or the API is unreachable. Tests mock the HTTP layer.
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Protocol

import aiohttp

if TYPE_CHECKING:
    from .config import EmotesConfig


class EmoteCatalog(Protocol):
    async def get_emotes(self, channel: str) -> list[str]:
        ...


class SevenTVEmoteClient:
    """Async client for the 7TV v3 user emote-set API."""

    def __init__(self, config: EmotesConfig, logger: logging.Logger) -> None:
        self._config = config
        self._logger = logger
        self._session: aiohttp.ClientSession | None = None
        self._cache: dict[str, tuple[float, list[str]]] = {}  # {channel: (expiry_ts, emotes)}

    async def start(self) -> None:
        """Create the HTTP session."""
        self._session = aiohttp.ClientSession(
            base_url=self._config.base_url,
            headers={"Content-Type": "application/json"},
            timeout=aiohttp.ClientTimeout(total=10.0),
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def get_emotes(self, channel: str) -> list[str]:
        """Return the unique emote names for a channel."""
        key = channel.lstrip("#").lower()
        cached = self._get_cached(key)
        if cached is not None:
            return cached

        user_id = self._config.channel_user_ids.get(key)
        if not user_id or not self._session:
            return list(self._config.fallback)

        try:
            async with self._session.get(f"/v3/users/twitch/{user_id}") as resp:
                if resp.status == 404:
                    self._logger.warning("No 7TV profile for %s (%s)", key, user_id)
                    return list(self._config.fallback)
                resp.raise_for_status()
                data = await resp.json()
                emotes = self._parse_emote_set(data)
                self._set_cached(key, emotes)
                self._logger.info("Loaded %d 7TV emotes for %s", len(emotes), key)
                return emotes
        except Exception as e:
            self._logger.error("7TV emote lookup failed for '%s': %s", key, e)
            return list(self._config.fallback)

    async def random_emote(self, channel: str) -> str:
        emotes = await self.get_emotes(channel)
        return random.choice(emotes) if emotes else ""

    def invalidate(self, channel: str | None = None) -> None:
        if channel is None:
            self._cache.clear()
        else:
            self._cache.pop(channel.lstrip("#").lower(), None)

    # ══════════════════════════════════════════════════════════
    #  Internal Helpers
    # ══════════════════════════════════════════════════════════

    @staticmethod
    def _parse_emote_set(data: dict) -> list[str]:
        """Pull unique emote names out of a 7TV user payload."""
        emote_set = (data or {}).get("emote_set") or {}
        names: list[str] = []
        seen: set[str] = set()
        for emote in emote_set.get("emotes") or []:
            name = emote.get("name")
            if name and name not in seen:
                seen.add(name)
                names.append(name)
        return names

    def _get_cached(self, key: str) -> list[str] | None:
        """Return cached value if not expired, else None."""
        if key in self._cache:
            expiry, data = self._cache[key]
            if time.time() < expiry:
                return data
            del self._cache[key]
        return None

    def _set_cached(self, key: str, data: list[str]) -> None:
        self._cache[key] = (time.time() + self._config.cache_ttl_seconds, data)
