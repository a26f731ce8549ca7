"""Configuration system for kryten-stars.

All Pydantic models are defined here with the tuned defaults the bot has
always run with. Reward ranges, odds and interest rates are
named fields rather than literals in the engines.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from kryten import KrytenConfig
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════
#  Core
# ═══════════════════════════════════════════════════════════════

class PersistenceConfig(BaseModel):
    backend: Literal["file", "sqlite"] = "file"
    accounts_file: str = "stars.json"
    reminders_file: str = "reminders.json"
    database_path: str = "stars.db"
    timeout_seconds: float = 10.0


class CurrencyConfig(BaseModel):
    name: str = "Star"
    plural: str = "Star"


class BotConfig(BaseModel):
    username: str = "StarBot"


class CommandsConfig(BaseModel):
    prefix: str = "-"
    chunk_length: int = 400
    chunk_spacing_seconds: float = 1.5


# ═══════════════════════════════════════════════════════════════
#  Claim, levels & loans
# ═══════════════════════════════════════════════════════════════

class ClaimConfig(BaseModel):
    cooldown_seconds: int = 3600
    min_reward: int = 67
    max_reward: int = 677
    first_claim_bonus: int = 676
    notify_on_expiry: bool = True
    notice: str = "/me @{user} bingi hol deine {currency} ab mit {prefix}star"


class LevelsConfig(BaseModel):
    initial_cost: int = 670
    min_increase_percent: float = 16.7
    max_increase_percent: float = 26.7


class LoanConfig(BaseModel):
    enabled: bool = True
    policy: Literal["compounding", "stepped"] = "compounding"
    require_consent: bool = False
    repay_mode: Literal["allowed", "trap"] = "allowed"
    min_amount: int = 67
    max_amount: int = 676767
    duration_hours: int = 6
    default_grace_minutes: int = 0
    # compounding: flat hourly rate, rounded up
    hourly_rate: float = 0.10
    # stepped: hourly rate, with a steeper rate for the final hour, floored
    stepped_hourly_rate: float = 0.067
    stepped_final_rate: float = 0.167
    tick_seconds: int = 60


# ═══════════════════════════════════════════════════════════════
#  Games
# ═══════════════════════════════════════════════════════════════

class SlotsConfig(BaseModel):
    enabled: bool = True
    cooldown_seconds: int = 5
    # Upper bounds of the roll ranges on a 0–100 scale
    jackpot_below: float = 1
    win_below: float = 68
    near_miss_below: float = 84
    jackpot_multiplier: int = 3
    win_multiplier: int = 2
    emote_timeout_seconds: float = 5.0


class ParityConfig(BaseModel):
    enabled: bool = True
    secret_range: int = 68
    payout_multiplier: int = 2
    odd_words: list[str] = Field(default_factory=lambda: ["odd", "ungerade"])
    even_words: list[str] = Field(default_factory=lambda: ["even", "gerade"])


class BlackjackConfig(BaseModel):
    enabled: bool = True
    dealer_stands_on: int = 17
    natural_payout: float = 2.5
    win_payout: int = 2


class GamblingConfig(BaseModel):
    slots: SlotsConfig = Field(default_factory=SlotsConfig)
    parity: ParityConfig = Field(default_factory=ParityConfig)
    blackjack: BlackjackConfig = Field(default_factory=BlackjackConfig)


# ═══════════════════════════════════════════════════════════════
#  Reminders & collaborators
# ═══════════════════════════════════════════════════════════════

class RemindersConfig(BaseModel):
    enabled: bool = True
    tick_seconds: int = 10
    template: str = "/me @{target} Erinnerung von @{source}: {message}"
    default_message: str = "Zeit ist um!"


class ModerationConfig(BaseModel):
    timeout_command: str = "/timeout {user} {seconds} {reason}"
    max_timeout_seconds: int = 1209600  # 2 weeks
    loan_default_reason: str = "Kredit nicht zurückgezahlt!"
    send_timeout_seconds: float = 5.0


class AdminConfig(BaseModel):
    mod_level: int = 2  # CyTube moderator


class EmotesConfig(BaseModel):
    base_url: str = "https://7tv.io"
    channel_user_ids: dict[str, str] = Field(
        default_factory=dict,
        description="Channel name → Twitch user id used for 7TV lookups",
    )
    fallback: list[str] = Field(default_factory=list)
    cache_ttl_seconds: int = 900


# ═══════════════════════════════════════════════════════════════
#  Top-Level Config
# ═══════════════════════════════════════════════════════════════

class StarsConfig(KrytenConfig):
    """Full stars config — extends KrytenConfig with the economy sub-models."""

    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    currency: CurrencyConfig = Field(default_factory=CurrencyConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    ignored_users: list[str] = Field(default_factory=list)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)

    claim: ClaimConfig = Field(default_factory=ClaimConfig)
    levels: LevelsConfig = Field(default_factory=LevelsConfig)
    loans: LoanConfig = Field(default_factory=LoanConfig)
    gambling: GamblingConfig = Field(default_factory=GamblingConfig)

    reminders: RemindersConfig = Field(default_factory=RemindersConfig)
    moderation: ModerationConfig = Field(default_factory=ModerationConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    emotes: EmotesConfig = Field(default_factory=EmotesConfig)
    # NOTE: metrics is inherited from KrytenConfig (kryten.config.MetricsConfig)


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: os.environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def load_config(config_path: str) -> StarsConfig:
    """Load and validate YAML config file into StarsConfig."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError("Config file must contain a YAML mapping at the top level.")

    raw = _expand_env_vars(raw)
    return StarsConfig(**raw)
