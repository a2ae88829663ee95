import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from .models import Window

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)
WEEK = timedelta(days=7)

# Ordered presets with their display names
WINDOW_PRESETS = [
    ("today", "Today"),
    ("yesterday", "Yesterday"),
    ("24h", "Last 24h"),
    ("48h", "Last 48h"),
    ("week", "Week-to-date"),
    ("lastweek", "Last week"),
    ("7d", "Last 7 days"),
    ("14d", "Last 14 days"),
]

PRESET_NAMES = frozenset(name for name, _ in WINDOW_PRESETS)


def _utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _now(now: Optional[datetime]) -> datetime:
    return _utc(now) if now is not None else datetime.now(timezone.utc)


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _week_start(moment: datetime) -> datetime:
    """Sunday 00:00 UTC of the week containing moment"""
    days_since_sunday = (moment.weekday() + 1) % 7
    return _midnight(moment) - days_since_sunday * DAY


def parse_instant(value: str) -> datetime:
    """
    Parse an ISO8601 instant. A trailing 'Z' is accepted and date-only values
    mean midnight UTC. Raises ValueError when the value is not ISO8601.
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return _utc(datetime.fromisoformat(text))


def parse_custom_window(win: str) -> Tuple[datetime, datetime]:
    """Split a "<start>,<end>" specifier into its bounds"""
    parts = win.split(",")
    if len(parts) != 2:
        raise ValueError(f"Custom window must be '<start>,<end>', got {win!r}")
    return parse_instant(parts[0]), parse_instant(parts[1])


def resolve_window(win: str, now: Optional[datetime] = None) -> Window:
    """
    Resolve a window specifier to the bounds of the window it names.

    Raises ValueError when the specifier is neither a preset nor a parseable
    custom range.
    """
    now = _now(now)
    today = _midnight(now)

    if win == "today":
        return Window(start=today, end=today + DAY)
    if win == "yesterday":
        return Window(start=today - DAY, end=today)
    if win == "24h":
        return Window(start=now - DAY, end=now)
    if win == "48h":
        return Window(start=now - 2 * DAY, end=now)
    if win == "week":
        return Window(start=_week_start(now), end=now)
    if win == "lastweek":
        this_week = _week_start(now)
        return Window(start=this_week - WEEK, end=this_week)
    if win == "7d":
        return Window(start=now - WEEK, end=now)
    if win == "14d":
        return Window(start=now - 2 * WEEK, end=now)

    start, end = parse_custom_window(win)
    return Window(start=start, end=end)


def is_valid_window(win: str) -> bool:
    try:
        resolve_window(win)
    except ValueError:
        return False
    return True


def _prior_bounds(win: str, now: datetime) -> Window:
    today = _midnight(now)

    if win == "today":
        return Window(start=today - DAY, end=today)
    if win == "yesterday":
        return Window(start=today - 2 * DAY, end=today - DAY)
    if win == "24h":
        return Window(start=now - 2 * DAY, end=now - DAY)
    if win == "48h":
        return Window(start=now - 4 * DAY, end=now - 2 * DAY)
    if win == "week":
        # Same elapsed time as the current week-to-date, ending where this week starts
        week_start = _week_start(now)
        return Window(start=week_start - (now - week_start), end=week_start)
    if win == "lastweek":
        last_week_start = _week_start(now) - WEEK
        return Window(start=last_week_start - WEEK, end=last_week_start)
    if win == "7d":
        return Window(start=now - 2 * WEEK, end=now - WEEK)
    if win == "14d":
        return Window(start=now - 4 * WEEK, end=now - 2 * WEEK)

    try:
        start, end = parse_custom_window(win)
    except (ValueError, OverflowError) as e:
        logger.warning(f"Unparseable window {win!r}, comparing against the prior 7 days: {e}")
        return Window(start=now - 2 * WEEK, end=now - WEEK)

    return Window(start=start - (end - start), end=start)


def prior_window(win: str, now: Optional[datetime] = None) -> str:
    """
    Return the custom range specifier of the period immediately preceding
    ``win`` with an equivalent length. Never raises: anything that cannot be
    resolved falls back to the 7 days before the last 7 days.
    """
    now = _now(now)
    try:
        return str(_prior_bounds(win or "", now))
    except (ValueError, OverflowError) as e:
        # Shifting a range back can step outside datetime's supported years
        logger.warning(f"Cannot shift window {win!r} back, comparing against the prior 7 days: {e}")
        return str(Window(start=now - 2 * WEEK, end=now - WEEK))
