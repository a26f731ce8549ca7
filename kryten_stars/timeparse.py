"""Berlin civil time and free-text time phrases.

The EU summer-time rule is computed directly (last Sunday of March to last
Sunday of October, switching at 01:00 UTC) so no timezone database is
needed. Wall-clock datetimes below are carried as UTC-tagged datetimes
whose fields hold Berlin local time; _wall_to_instant() turns them into
real instants using the offset in force at the target date.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from .utils import now_utc

SUMMER_OFFSET = timedelta(hours=2)
WINTER_OFFSET = timedelta(hours=1)

_UNITS: dict[str, timedelta] = {
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "sek": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "std": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
    "mo": timedelta(days=30),
    "y": timedelta(days=365),
}

# Longest alternatives first so "min"/"mo" are never read as "m"
_COMBINED_RE = re.compile(r"(\d+)(min|mo|sec|sek|std|s|m|h|d|w|y)")
_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})")
_DATE_RE = re.compile(r"(\d{1,2})\.(\d{1,2})(?:\.(\d{4}|\d{2})?)?")
_UHR_RE = re.compile(r"(\d{1,2})uhr")

FILLER_WORDS = frozenset({"in", "um", "am", "at", "on", "für", "for", "and", "und"})


# ═══════════════════════════════════════════════════════════════
#  Berlin offset
# ═══════════════════════════════════════════════════════════════

def _last_sunday(year: int, month: int) -> date:
    if month == 12:
        last = date(year, 12, 31)
    else:
        last = date(year, month + 1, 1) - timedelta(days=1)
    return last - timedelta(days=(last.weekday() + 1) % 7)


def berlin_offset(instant: datetime) -> timedelta:
    """UTC offset of Europe/Berlin at the given instant."""
    instant = instant.astimezone(timezone.utc)
    year = instant.year
    summer_start = datetime.combine(_last_sunday(year, 3), time(1, 0), tzinfo=timezone.utc)
    summer_end = datetime.combine(_last_sunday(year, 10), time(1, 0), tzinfo=timezone.utc)
    if summer_start <= instant < summer_end:
        return SUMMER_OFFSET
    return WINTER_OFFSET


def to_berlin_wall(instant: datetime) -> datetime:
    """Shift an instant to Berlin wall-clock fields (still tagged UTC)."""
    instant = instant.astimezone(timezone.utc)
    return instant + berlin_offset(instant)


def _wall_to_instant(wall: datetime) -> datetime:
    # Probe with the winter offset, then use the regime of the target itself
    offset = berlin_offset(wall - WINTER_OFFSET)
    return wall - offset


def format_berlin(instant: datetime) -> str:
    return to_berlin_wall(instant).strftime("%d.%m.%Y %H:%M")


def format_delay(delta: timedelta) -> str:
    """Compact human delay: '1d 2h 5min', '45s'."""
    seconds = max(0, int(delta.total_seconds()))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}min")
    if seconds and not days and not hours:
        parts.append(f"{seconds}s")
    return " ".join(parts) or "0s"


# ═══════════════════════════════════════════════════════════════
#  Phrase parser
# ═══════════════════════════════════════════════════════════════

@dataclass
class ParsedTime:
    due_at: datetime
    message: str
    duration: timedelta
    absolute: bool

    def delay(self, now: datetime) -> timedelta:
        return self.due_at - now


def _valid_day_month(day: int, month: int, year: int | None) -> bool:
    try:
        date(year if year is not None else 2000, month, day)
    except ValueError:
        return False
    return True


def _make_wall(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    # 29.02 without an explicit year lands on the next leap year
    for candidate in range(year, year + 8):
        try:
            return datetime(candidate, month, day, hour, minute, tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"invalid date {day}.{month}")


def parse_time_input(
    tokens: list[str] | str,
    now: datetime | None = None,
) -> ParsedTime | None:
    """Read a leading time expression from tokens.

    Returns None when no time expression is recognised; otherwise the due
    instant and the remaining tokens joined as the message. A duration too
    large to represent counts as unrecognised.
    """
    if isinstance(tokens, str):
        tokens = tokens.split()
    try:
        return _parse_tokens(tokens, now or now_utc())
    except OverflowError:
        return None


def _parse_tokens(tokens: list[str], now: datetime) -> ParsedTime | None:
    duration = timedelta()
    saw_duration = False
    clock: tuple[int, int] | None = None
    day_month: tuple[int, int, int | None] | None = None
    end = 0
    i = 0

    while i < len(tokens):
        tok = tokens[i].lower()
        nxt = tokens[i + 1].lower() if i + 1 < len(tokens) else None

        m = _COMBINED_RE.fullmatch(tok)
        if m:
            duration += int(m.group(1)) * _UNITS[m.group(2)]
            saw_duration = True
            i += 1
            end = i
            continue

        if tok.isdigit() and nxt in _UNITS:
            duration += int(tok) * _UNITS[nxt]
            saw_duration = True
            i += 2
            end = i
            continue

        m = _CLOCK_RE.fullmatch(tok)
        if m and clock is None:
            hour, minute = int(m.group(1)), int(m.group(2))
            if hour < 24 and minute < 60:
                clock = (hour, minute)
                i += 1
                end = i
                continue

        m = _DATE_RE.fullmatch(tok)
        if m and day_month is None:
            day, month = int(m.group(1)), int(m.group(2))
            year = m.group(3)
            year_num = None if year is None else (int(year) + 2000 if len(year) == 2 else int(year))
            if _valid_day_month(day, month, year_num):
                day_month = (day, month, year_num)
                i += 1
                end = i
                continue

        m = _UHR_RE.fullmatch(tok)
        hour_token = m.group(1) if m else (tok if tok.isdigit() and nxt == "uhr" else None)
        if hour_token is not None and clock is None and int(hour_token) < 24:
            clock = (int(hour_token), 0)
            i += 1 if m else 2
            end = i
            continue

        if tok in FILLER_WORDS:
            i += 1
            continue

        break

    message = " ".join(tokens[end:]).strip()

    if clock is None and day_month is None:
        if not saw_duration or duration <= timedelta():
            return None
        return ParsedTime(due_at=now + duration, message=message, duration=duration, absolute=False)

    local_now = to_berlin_wall(now)
    hour, minute = clock or (0, 0)

    if day_month is not None:
        day, month, year = day_month
        wall = _make_wall(year if year is not None else local_now.year, month, day, hour, minute)
        due = _wall_to_instant(wall)
        if year is None and due <= now:
            wall = _make_wall(wall.year + 1, month, day, hour, minute)
            due = _wall_to_instant(wall)
    else:
        wall = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        due = _wall_to_instant(wall)
        if due <= now:
            due = _wall_to_instant(wall + timedelta(days=1))

    return ParsedTime(due_at=due + duration, message=message, duration=duration, absolute=True)
