"""Text helpers for rendering counts and capture times."""
import math
import re
from datetime import datetime, timezone

from history import parse_timestamp

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_count(value) -> str:
    return f"{int(value or 0):,}"


def format_badge_number(value) -> str:
    number = int(value or 0)
    if number <= 0:
        return "0"
    if number >= 1_000_000:
        return f"{_round_half_up(number / 1_000_000)}M"
    if number >= 1_000:
        return f"{_round_half_up(number / 1_000)}K"
    return str(number)


def format_relative_time(value, now: datetime | None = None) -> str:
    moment = parse_timestamp(value)
    if moment is None:
        return ""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed = (now - moment).total_seconds()
    if elapsed < 0:
        return "just now"
    if elapsed < HOUR:
        return f"{max(1, math.floor(elapsed / MINUTE))} min ago"
    if elapsed < DAY:
        return f"{math.floor(elapsed / HOUR)}h ago"
    return f"{math.floor(elapsed / DAY)}d ago"


def format_timestamp_label(value) -> str:
    """``Feb 23, 2026, 21:00`` in the timestamp's own offset."""
    moment = parse_timestamp(value)
    if moment is None:
        return ""
    return moment.strftime("%b %d, %Y, %H:%M")


def format_tooltip_timestamp(value) -> str:
    text = str(value or "").strip()
    text = re.sub(r"\.\d{1,6}(?=(?:[+-]\d{2}:?\d{2}|Z)$)", "", text)
    text = re.sub(r"(?:[+-]\d{2}:?\d{2}|Z)$", "", text)
    return text.replace("T", " ")


def truncate_label(value, max_length: int) -> str:
    text = str(value or "").strip()
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - 1)].rstrip() + "…"


def increase_label(item, max_title: int | None = None) -> str:
    title = truncate_label(item.title, max_title) if max_title else item.title
    return f"{title} (+{format_count(item.delta)})"
