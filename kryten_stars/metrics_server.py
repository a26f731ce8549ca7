"""Prometheus metrics server for kryten-stars.

Subclasses BaseMetricsServer from kryten-py to expose economy counters,
gauges and health details.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from kryten import BaseMetricsServer

if TYPE_CHECKING:
    from .main import StarsApp


class StarsMetricsServer(BaseMetricsServer):
    """Stars-specific Prometheus metrics endpoint."""

    def __init__(self, app: StarsApp, port: int = 28290) -> None:
        super().__init__(
            service_name="stars",
            port=port,
            client=app.client,
            logger=app.logger,
        )
        self._app = app

    async def _collect_custom_metrics(self) -> list[str]:
        app = self._app
        lines: list[str] = []

        # ── Counters ─────────────────────────────────────────
        lines.append(f"stars_events_processed_total {app.events_processed}")
        lines.append(f"stars_commands_processed_total {app.commands_processed}")
        if app.chat_handler:
            lines.append(f"stars_chat_messages_total {app.chat_handler.messages_seen}")
            lines.append(f"stars_chat_commands_total {app.chat_handler.commands_total}")
            lines.append(f"stars_chat_command_errors_total {app.chat_handler.command_errors}")
        if app.claims:
            lines.append(f"stars_claims_total {app.claims.claims_total}")
        if app.loans:
            lines.append(f"stars_loans_granted_total {app.loans.loans_granted_total}")
            lines.append(f"stars_loans_defaulted_total {app.loans.loans_defaulted_total}")
        if app.blackjack:
            lines.append(f'stars_games_played_total{{game="blackjack"}} {app.blackjack.games_played}')
        if app.parity:
            lines.append(f'stars_games_played_total{{game="parity"}} {app.parity.games_played}')
        if app.slots:
            lines.append(f'stars_games_played_total{{game="slots"}} {app.slots.spins_total}')
        if app.reminders:
            lines.append(f"stars_reminders_delivered_total {app.reminders.delivered_total}")
        if app.store:
            lines.append(f"stars_save_failures_total {app.store.save_failures}")

        # ── Gauges ───────────────────────────────────────────
        if app.store:
            lines.append(f"stars_accounts {len(app.store)}")
            lines.append(f"stars_total_circulation {app.store.total_circulation()}")
        if app.loans:
            active = app.loans.active_loans()
            lines.append(f"stars_active_loans {len(active)}")
            lines.append(f"stars_outstanding_debt {sum(a.loan.debt for a in active)}")
        if app.reminders:
            lines.append(f"stars_pending_reminders {len(app.reminders.pending)}")

        return lines

    async def _get_health_details(self) -> dict:
        app = self._app
        return {
            "persistence": app.backend.name if app.backend else "none",
            "channels_configured": len(app.config.channels) if app.config else 0,
            "accounts": len(app.store) if app.store else 0,
        }
