"""Request-reply command handler on kryten.stars.command.

Read-only NATS API for other services and admin tooling.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from . import __version__
from .utils import format_timestamp

if TYPE_CHECKING:
    from kryten import KrytenClient

    from .main import StarsApp

SUBJECT = "kryten.stars.command"


class CommandHandler:
    """Handles request-reply commands on kryten.stars.command."""

    def __init__(
        self,
        app: StarsApp,
        client: KrytenClient,
        logger: logging.Logger | None = None,
    ) -> None:
        self._app = app
        self._client = client
        self._logger = logger or logging.getLogger("stars.command")

    async def connect(self) -> None:
        await self._client.subscribe_request_reply(SUBJECT, self._handle_command)

    async def _handle_command(self, request: dict[str, Any]) -> dict[str, Any]:
        """Route a command request to the appropriate handler."""
        command = request.get("command", "")
        handler = self._HANDLER_MAP.get(command)

        if not handler:
            return {
                "service": "stars",
                "command": command,
                "success": False,
                "error": f"Unknown command: {command}",
            }

        try:
            result = await handler(self, request)
            self._app.commands_processed += 1
            return {
                "service": "stars",
                "command": command,
                "success": True,
                "data": result,
            }
        except Exception as e:
            self._logger.exception("Command handler error for %s", command)
            return {
                "service": "stars",
                "command": command,
                "success": False,
                "error": str(e),
            }

    # ══════════════════════════════════════════════════════════
    #  Commands
    # ══════════════════════════════════════════════════════════

    async def _handle_ping(self, request: dict[str, Any]) -> dict[str, Any]:
        return {"pong": True, "version": __version__}

    async def _handle_health(self, request: dict[str, Any]) -> dict[str, Any]:
        app = self._app
        return {
            "status": "healthy",
            "persistence": app.backend.name if app.backend else "none",
            "accounts": len(app.store) if app.store else 0,
            "pending_reminders": len(app.reminders.pending) if app.reminders else 0,
            "save_failures": app.store.save_failures if app.store else 0,
            "uptime_seconds": app.uptime_seconds,
        }

    async def _handle_balance_get(self, request: dict[str, Any]) -> dict[str, Any]:
        username = request.get("username")
        if not username:
            raise ValueError("username is required")

        account = self._app.store.get(username)
        if account is None:
            return {"found": False}

        return {
            "found": True,
            "username": account.username,
            "balance": account.balance,
            "level": account.level,
            "invested_stars": account.invested_stars,
            "total_standing": account.total_standing,
            "loan_debt": account.loan.debt if account.loan.active else 0,
        }

    async def _handle_loans_list(self, request: dict[str, Any]) -> dict[str, Any]:
        loans = sorted(self._app.loans.active_loans(), key=lambda a: a.loan.debt, reverse=True)
        return {
            "count": len(loans),
            "loans": [
                {
                    "username": a.username,
                    "amount": a.loan.amount,
                    "debt": a.loan.debt,
                    "hours_tracked": a.loan.hours_tracked,
                    "due_at": format_timestamp(a.loan.due_at),
                }
                for a in loans
            ],
        }

    _HANDLER_MAP: dict[str, Any] = {
        "system.ping": _handle_ping,
        "system.health": _handle_health,
        "balance.get": _handle_balance_get,
        "loans.list": _handle_loans_list,
    }
