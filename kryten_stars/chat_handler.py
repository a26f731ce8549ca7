"""Chat command router.

Subscribed to 'chatmsg' events via @client.on("chatmsg"). Every message
first releases the author's next-message reminders, then may answer a
pending loan question or an open odd/even round, and finally is dispatched
as a prefixed command. Engines raise StarsError subclasses; the router
sends their reply text and never lets an exception escape.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Awaitable, Callable

from .errors import InvalidInput, StarsError
from .loans import NO_WORDS, YES_WORDS
from .timeparse import format_berlin, format_delay, parse_time_input
from .timers import TimerPool
from .utils import format_points, normalize_username, now_utc

if TYPE_CHECKING:
    from kryten import ChatMessageEvent

    from .blackjack import BlackjackEngine
    from .chat_bridge import ChatSender
    from .claim_engine import ClaimEngine
    from .config import StarsConfig
    from .emote_client import EmoteCatalog
    from .loans import LoanLedger
    from .parity import ParityGameEngine
    from .reminders import ReminderScheduler
    from .slots import SlotGamble
    from .wallet import WalletEngine

CommandFn = Callable[[str, str, list[str]], Awaitable["str | None"]]

GENERIC_FAILURE = "/me Nerd da ist was schiefgelaufen, versuch es nochmal"


class ChatHandler:
    """Routes public chat messages to the economy engines."""

    def __init__(
        self,
        config: StarsConfig,
        sender: ChatSender,
        claims: ClaimEngine,
        loans: LoanLedger,
        wallet: WalletEngine,
        blackjack: BlackjackEngine,
        parity: ParityGameEngine,
        slots: SlotGamble,
        reminders: ReminderScheduler,
        emotes: EmoteCatalog | None = None,
        logger: logging.Logger | None = None,
        chatter: TimerPool | None = None,
    ) -> None:
        self._config = config
        self._sender = sender
        self._claims = claims
        self._loans = loans
        self._wallet = wallet
        self._blackjack = blackjack
        self._parity = parity
        self._slots = slots
        self._reminders = reminders
        self._emotes = emotes
        self._logger = logger or logging.getLogger("stars.chat")
        self._chatter = chatter or TimerPool("chatter", self._logger)

        self._ignored_users: set[str] = {u.lower() for u in config.ignored_users}
        self._bot_username_lower = config.bot.username.lower()

        self.messages_seen = 0
        self.commands_total = 0
        self.command_errors = 0

        self._command_map: dict[str, CommandFn] = {
            "star": self._cmd_star,
            "balance": self._cmd_balance,
            "stars": self._cmd_balance,
            "give": self._cmd_give,
            "pay": self._cmd_give,
            "levelup": self._cmd_levelup,
            "lb": self._cmd_leaderboard,
            "leaderboard": self._cmd_leaderboard,
            "kredit": self._cmd_kredit,
            "repay": self._cmd_repay,
            "payback": self._cmd_repay,
            "topdebt": self._cmd_topdebt,
            "schulden": self._cmd_topdebt,
            "gamba": self._cmd_gamba,
            "bj": self._cmd_blackjack,
            "blackjack": self._cmd_blackjack,
            "hit": self._cmd_hit,
            "h": self._cmd_hit,
            "stand": self._cmd_stand,
            "s": self._cmd_stand,
            "oe": self._cmd_parity,
            "parity": self._cmd_parity,
            "remind": self._cmd_remind,
            "remindme": self._cmd_remindme,
            "stop": self._cmd_stop,
            "ping": self._cmd_ping,
            "hilfe": self._cmd_help,
            "help": self._cmd_help,
            "commands": self._cmd_help,
            "befehle": self._cmd_help,
        }

        # Mod-only commands (CyTube rank >= admin.mod_level)
        self._mod_command_map: dict[str, CommandFn] = {
            "allstars": self._cmd_allstars,
            "listall": self._cmd_allstars,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._command_map)

    @property
    def chatter(self) -> TimerPool:
        return self._chatter

    async def handle_chat(self, event: ChatMessageEvent) -> None:
        """Entry point for kryten 'chatmsg' events."""
        rank = getattr(event, "rank", 0) or 0
        await self.handle_message(event.username, event.channel, event.message, rank)

    async def handle_message(self, username: str, channel: str, text: str, rank: int = 0) -> str | None:
        """Process one chat line. Returns the reply that was sent, if any."""
        user = normalize_username(username or "")
        if not user or user in self._ignored_users or user == self._bot_username_lower:
            return None
        text = (text or "").strip()
        if not text:
            return None
        self.messages_seen += 1

        try:
            await self._reminders.on_message(user, channel)
        except Exception:
            self._logger.exception("Next-message reminders failed for %s", user)

        response = await self._guarded(user, "<reply>", self._route_bare_word, user, channel, text)
        if response is None:
            response = await self._dispatch(user, channel, text, rank)

        if response:
            await self._sender.send(channel, response)
        return response

    # ══════════════════════════════════════════════════════════
    #  Routing
    # ══════════════════════════════════════════════════════════

    async def _route_bare_word(self, user: str, channel: str, text: str) -> str | None:
        word = text.lower()
        if (word in YES_WORDS or word in NO_WORDS) and self._loans.has_pending(user):
            result = await self._loans.answer(user, channel, word)
            return result.message if result else None
        if self._parity.is_guess_word(word) and self._parity.has_session(user):
            result = await self._parity.resolve(user, word)
            return result.message if result else None
        return None

    async def _dispatch(self, user: str, channel: str, text: str, rank: int = 0) -> str | None:
        prefix = self._config.commands.prefix
        if not text.startswith(prefix):
            return None
        parts = text[len(prefix):].split()
        if not parts:
            return None
        command = parts[0].lower()
        handler = self._command_map.get(command)
        if handler is None:
            handler = self._mod_command_map.get(command)
            if handler is None:
                return None
            if rank < self._config.admin.mod_level:
                return f"/me @{user} du hast nicht die nötige rolle"
        self.commands_total += 1
        return await self._guarded(user, command, handler, user, channel, parts[1:])

    async def _guarded(self, user: str, command: str, fn: Callable[..., Awaitable[str | None]], *args) -> str | None:
        try:
            return await fn(*args)
        except StarsError as e:
            self._logger.debug("Command %s rejected for %s: %s", command, user, e)
            return e.reply or f"/me @{user} joaa geht nicht"
        except Exception:
            self.command_errors += 1
            self._logger.exception("Command handler error for %s/%s", user, command)
            return GENERIC_FAILURE

    # ══════════════════════════════════════════════════════════
    #  Economy commands
    # ══════════════════════════════════════════════════════════

    async def _cmd_star(self, username: str, channel: str, args: list[str]) -> str:
        result = await self._claims.claim(username, channel)
        return result.message

    async def _cmd_balance(self, username: str, channel: str, args: list[str]) -> str:
        return self._wallet.balance(username, args[0] if args else None, channel)

    async def _cmd_give(self, username: str, channel: str, args: list[str]) -> str:
        receiver = args[0] if args else None
        amount = args[1] if len(args) > 1 else None
        result = await self._wallet.give(username, receiver, amount, channel)
        return result.message

    async def _cmd_levelup(self, username: str, channel: str, args: list[str]) -> str:
        result = await self._wallet.level_up(username, channel)
        return result.message

    async def _cmd_leaderboard(self, username: str, channel: str, args: list[str]) -> str:
        emotes = await self._lookup_emotes(channel)
        return self._wallet.format_leaderboard(10, emotes)

    async def _cmd_kredit(self, username: str, channel: str, args: list[str]) -> str:
        result = await self._loans.request(username, channel)
        return result.message

    async def _cmd_repay(self, username: str, channel: str, args: list[str]) -> str:
        result = await self._loans.repay(username, channel)
        return result.message

    async def _cmd_topdebt(self, username: str, channel: str, args: list[str]) -> str:
        top = self._loans.top_debtor()
        if top is None:
            return "/me Niemand hat schulden wowii"
        return (
            f"/me DprePffttt @{top.username} hat die meisten schulden: "
            f"{format_points(top.loan.debt)} {self._config.currency.name}"
        )

    async def _cmd_allstars(self, username: str, channel: str, args: list[str]) -> str:
        emotes = await self._lookup_emotes(channel)
        entries = self._wallet.format_all(emotes)
        if not entries:
            return f"/me @{username} Niemand hat {self._config.currency.plural}."
        limit = self._config.commands.chunk_length - len("/me ")
        chunks = [f"/me {c}" for c in self.chunk(entries, "", limit)]
        self._send_chunks_later(channel, chunks[1:], "allstars")
        return chunks[0]

    # ══════════════════════════════════════════════════════════
    #  Games
    # ══════════════════════════════════════════════════════════

    async def _cmd_gamba(self, username: str, channel: str, args: list[str]) -> str | None:
        if not self._config.gambling.slots.enabled:
            return None
        emotes = await self._lookup_emotes(channel)
        result = await self._slots.spin(username, channel, args[0] if args else None, emotes)
        return result.message if result else None

    async def _cmd_blackjack(self, username: str, channel: str, args: list[str]) -> str | None:
        if not self._config.gambling.blackjack.enabled:
            return None
        result = await self._blackjack.start(username, channel, args[0] if args else None)
        return result.message

    async def _cmd_hit(self, username: str, channel: str, args: list[str]) -> str | None:
        result = await self._blackjack.hit(username)
        return result.message if result else None

    async def _cmd_stand(self, username: str, channel: str, args: list[str]) -> str | None:
        result = await self._blackjack.stand(username)
        return result.message if result else None

    async def _cmd_parity(self, username: str, channel: str, args: list[str]) -> str | None:
        if not self._config.gambling.parity.enabled:
            return None
        arg = args[0] if args else None
        if arg is not None and self._parity.is_guess_word(arg):
            result = await self._parity.resolve(username, arg)
            if result is None:
                return f"/me @{username} du hast kein spiel offen, starte mit {self._config.commands.prefix}oe <Menge>"
            return result.message
        result = await self._parity.start(username, channel, arg)
        return result.message

    async def _lookup_emotes(self, channel: str) -> list[str]:
        """Bounded emote lookup; any failure yields an empty list."""
        if self._emotes is None:
            return []
        try:
            return await asyncio.wait_for(
                self._emotes.get_emotes(channel),
                timeout=self._config.gambling.slots.emote_timeout_seconds,
            )
        except Exception:
            self._logger.warning("Emote lookup for %s failed", channel, exc_info=True)
            return []

    # ══════════════════════════════════════════════════════════
    #  Reminders
    # ══════════════════════════════════════════════════════════

    async def _cmd_remindme(self, username: str, channel: str, args: list[str]) -> str:
        prefix = self._config.commands.prefix
        if not args:
            raise InvalidInput(
                "missing time", reply=f"/me @{username} Nerd Nutzung: {prefix}remindme in 2h 30m <Nachricht>",
            )
        now = now_utc()
        parsed = parse_time_input(args, now)
        if parsed is None:
            raise InvalidInput(
                "unparseable time", reply=f"/me @{username} Nerd try mal sowas wie 'in 2h 10min wäsche'",
            )
        await self._reminders.create(username, username, parsed.message, parsed.due_at, channel, now=now)
        return f"/me @{username} ich reminde dich {self._describe_due(parsed, now)} Top"

    async def _cmd_remind(self, username: str, channel: str, args: list[str]) -> str:
        if len(args) < 2:
            raise InvalidInput(
                "missing target or message",
                reply=f"/me Nerd benutzung: {self._config.commands.prefix}remind <user> (in 1h) <nachricht>",
            )
        target = normalize_username(args[0])
        now = now_utc()
        parsed = parse_time_input(args[1:], now)
        if parsed is None:
            await self._reminders.create(target, username, " ".join(args[1:]), None, channel, now=now)
            return f"/me Hm ich schreib @{target} beim nächsten chatten"
        await self._reminders.create(target, username, parsed.message, parsed.due_at, channel, now=now)
        return f"/me @{username} reminder für @{target} {self._describe_due(parsed, now)} gesetzt Top"

    @staticmethod
    def _describe_due(parsed, now) -> str:
        if parsed.absolute:
            return f"am {format_berlin(parsed.due_at)}"
        return f"in {format_delay(parsed.delay(now))}"

    # ══════════════════════════════════════════════════════════
    #  Misc
    # ══════════════════════════════════════════════════════════

    async def _cmd_stop(self, username: str, channel: str, args: list[str]) -> str:
        cancelled = self._chatter.cancel_all()
        self._logger.info("Chatter stopped by %s (%d pending)", username, cancelled)
        return "bob bin schon leise"

    async def _cmd_ping(self, username: str, channel: str, args: list[str]) -> str:
        return "anwesend bin da"

    async def _cmd_help(self, username: str, channel: str, args: list[str]) -> str | None:
        emotes = await self._lookup_emotes(channel)
        entries = []
        for name in self._command_map:
            mark = random.choice(emotes) if emotes else "-"
            entries.append(f"{mark} {name}")
        chunks = self.chunk(entries, "Nerd commands:", self._config.commands.chunk_length)
        if not chunks:
            return None
        self._send_chunks_later(channel, chunks[1:], "help")
        return chunks[0]

    def _send_chunks_later(self, channel: str, chunks: list[str], name: str) -> None:
        spacing = self._config.commands.chunk_spacing_seconds
        for i, chunk in enumerate(chunks, start=1):
            self._chatter.schedule(i * spacing, self._send_later, (channel, chunk), name=name)

    async def _send_later(self, payload: tuple[str, str]) -> None:
        channel, text = payload
        await self._sender.send(channel, text)

    @staticmethod
    def chunk(entries: list[str], header: str, limit: int) -> list[str]:
        """Join entries into messages no longer than limit characters."""
        chunks: list[str] = []
        current = header
        for entry in entries:
            candidate = f"{current} {entry}" if current.strip() else entry
            if len(candidate) > limit and current.strip():
                chunks.append(current.strip())
                current = entry
            else:
                current = candidate
        if current.strip():
            chunks.append(current.strip())
        return chunks

    async def close(self) -> None:
        await self._chatter.close()
