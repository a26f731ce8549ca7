"""Service orchestrator — StarsApp.

Follows the kryten-py microservice pattern:
config → persistence → engines → register handlers → connect → loops → run.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from kryten import KrytenClient

from . import __version__
from .account_store import AccountStore
from .blackjack import BlackjackEngine
from .chat_bridge import ChatBridge
from .chat_handler import ChatHandler
from .claim_engine import ClaimEngine
from .command_handler import SUBJECT, CommandHandler
from .config import StarsConfig, load_config
from .emote_client import SevenTVEmoteClient
from .loans import LoanLedger
from .metrics_server import StarsMetricsServer
from .parity import ParityGameEngine
from .persistence import PersistenceBackend, create_backend
from .reminders import ReminderScheduler
from .slots import SlotGamble
from .timers import TimerPool
from .wallet import WalletEngine


class StarsApp:
    """Top-level application orchestrator."""

    def __init__(self, config_path: str) -> None:
        self.config_path = Path(config_path)
        self.logger = logging.getLogger("stars")

        self.config: StarsConfig | None = None
        self.client: KrytenClient | None = None
        self.backend: PersistenceBackend | None = None
        self.store: AccountStore | None = None
        self.bridge: ChatBridge | None = None
        self.emotes: SevenTVEmoteClient | None = None
        self.reminders: ReminderScheduler | None = None
        self.claims: ClaimEngine | None = None
        self.loans: LoanLedger | None = None
        self.wallet: WalletEngine | None = None
        self.blackjack: BlackjackEngine | None = None
        self.parity: ParityGameEngine | None = None
        self.slots: SlotGamble | None = None
        self.chat_handler: ChatHandler | None = None
        self.command_handler: CommandHandler | None = None
        self.metrics_server: StarsMetricsServer | None = None

        self._running = False
        self._start_time: float | None = None

        self.events_processed: int = 0
        self.commands_processed: int = 0

    @property
    def uptime_seconds(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.time() - self._start_time

    async def build(self, config: StarsConfig, client: KrytenClient | None) -> None:
        """Create persistence and every engine. No network I/O besides storage."""
        self.config = config
        self.client = client
        default_channel = config.channels[0].channel if config.channels else None
        timeout = config.persistence.timeout_seconds

        self.backend = await create_backend(config.persistence, logging.getLogger("stars.persistence"))
        self.logger.info("Persistence backend: %s", self.backend.name)

        self.store = AccountStore(
            self.backend,
            logging.getLogger("stars.accounts"),
            save_timeout=timeout,
            initial_level_cost=config.levels.initial_cost,
        )
        loaded = await self.store.load()
        self.logger.info("Accounts loaded: %d", loaded)

        self.bridge = ChatBridge(client, config.moderation, logging.getLogger("stars.chat"))
        self.emotes = SevenTVEmoteClient(config.emotes, logging.getLogger("stars.emotes"))

        self.reminders = ReminderScheduler(
            config.reminders, self.backend, self.bridge,
            logging.getLogger("stars.reminders"),
            default_channel=default_channel,
            save_timeout=timeout,
        )
        await self.reminders.load()

        self.claims = ClaimEngine(
            config, self.store, self.bridge, logging.getLogger("stars.claim"),
            timers=TimerPool("claim-notices"),
            default_channel=default_channel,
        )
        self.loans = LoanLedger(
            config, self.store, self.bridge, self.bridge,
            logging.getLogger("stars.loans"),
            default_channel=default_channel,
        )
        self.wallet = WalletEngine(config, self.store, logging.getLogger("stars.wallet"))
        self.blackjack = BlackjackEngine(config, self.store, logging.getLogger("stars.blackjack"))
        self.parity = ParityGameEngine(config, self.store, logging.getLogger("stars.parity"))
        self.slots = SlotGamble(config, self.store, logging.getLogger("stars.slots"))

        self.chat_handler = ChatHandler(
            config=config,
            sender=self.bridge,
            claims=self.claims,
            loans=self.loans,
            wallet=self.wallet,
            blackjack=self.blackjack,
            parity=self.parity,
            slots=self.slots,
            reminders=self.reminders,
            emotes=self.emotes,
            logger=logging.getLogger("stars.chat"),
            chatter=TimerPool("chatter"),
        )

    async def start(self) -> None:
        """Start the stars service."""
        self.logger.info("Starting kryten-stars...")
        self._start_time = time.time()

        # 1. Load and validate config
        config = load_config(str(self.config_path))
        self.logger.info("Config loaded: %d channel(s)", len(config.channels))

        # 2. Persistence and engines
        await self.build(config, KrytenClient(config))

        # 3. Register event handlers BEFORE connect
        @self.client.on("chatmsg")
        async def handle_chatmsg(event):
            try:
                self.events_processed += 1
                await self.chat_handler.handle_chat(event)
            except Exception:
                self.logger.exception("chatmsg handler error for %s", getattr(event, "username", "?"))

        # 4. Connect to NATS
        await self.client.connect()
        self.logger.info("Connected to NATS")

        # 5. Emote catalog
        await self.emotes.start()

        # 6. Metrics server
        metrics_port = config.metrics.port if config.metrics else 28290
        self.metrics_server = StarsMetricsServer(self, port=metrics_port)
        await self.metrics_server.start()
        self.logger.info("Metrics server started on port %d", metrics_port)

        # 7. Request-reply API
        self.command_handler = CommandHandler(self, self.client, logging.getLogger("stars.command"))
        await self.command_handler.connect()
        self.logger.info("Command handler ready on %s", SUBJECT)

        # 8. Periodic loops and restored timers
        await self.reminders.start()
        await self.loans.start()
        self.claims.restore_notifications()

        self._running = True
        self.logger.info("kryten-stars started successfully (v%s)", __version__)

        # 9. Block on client event loop
        await self.client.run()

    async def stop(self) -> None:
        """Gracefully shut down all components in reverse order."""
        if not self._running:
            return
        self.logger.info("Shutting down kryten-stars...")
        self._running = False

        if self.chat_handler:
            await self.chat_handler.close()
        if self.claims:
            await self.claims.close()
        if self.loans:
            await self.loans.stop()
        if self.reminders:
            await self.reminders.stop()
        if self.store:
            await self.store.commit_all()
        if self.metrics_server:
            await self.metrics_server.stop()
        if self.emotes:
            await self.emotes.stop()
        if self.client:
            await self.client.stop()

        self.logger.info("kryten-stars stopped.")
