from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from formatting import (
    format_badge_number,
    format_count,
    format_relative_time,
    format_timestamp_label,
    increase_label,
)
from history import effective_timestamp, sort_history
from series import Series, SeriesSet, build_series


@dataclass(slots=True)
class SketchIncrease:
    id: int
    title: str
    url: str
    delta: int


@dataclass(slots=True)
class Increase:
    index: int
    delta: int
    at: Optional[str] = None


@dataclass(slots=True)
class Summary:
    captures: int
    latest_total: int
    latest_delta: Optional[int]
    status: str  # empty | waiting | increased | flat
    text: str
    last_increase: Optional[Increase] = None
    increases: List[SketchIncrease] = field(default_factory=list)
    remaining: int = 0
    breakdown: str = ""


def totals_per_snapshot(series: List[Series], snapshot_count: int) -> List[int]:
    totals = []
    for index in range(snapshot_count):
        totals.append(sum(line.points[index].views for line in series if index < len(line.points)))
    return totals


def latest_delta(totals: List[int]) -> Optional[int]:
    if len(totals) < 2:
        return None
    return totals[-1] - totals[-2]


def sketch_increases(series: List[Series]) -> List[SketchIncrease]:
    """Sketches whose views grew between the two most recent captures.

    Sketches missing from the previous capture count from zero.
    """
    increases = []
    for line in series:
        if len(line.points) < 2:
            continue
        delta = line.points[-1].views - line.points[-2].views
        if delta > 0:
            increases.append(SketchIncrease(id=line.id, title=line.title, url=line.url, delta=delta))
    increases.sort(key=lambda item: item.delta, reverse=True)
    return increases


def last_increase(totals: List[int]) -> Optional[Increase]:
    for index in range(len(totals) - 1, 0, -1):
        if totals[index] > totals[index - 1]:
            return Increase(index=index, delta=totals[index] - totals[index - 1])
    return None


def _breakdown_text(text, increases, limit, max_title):
    if not increases:
        return text
    visible = increases[:limit]
    parts = [increase_label(item, max_title) for item in visible]
    line = f"{text} · sketches: {', '.join(parts)}"
    remaining = len(increases) - limit
    if remaining > 0:
        line += f", +{remaining} more"
    return line


def summarize(
    history,
    *,
    series_set: SeriesSet | None = None,
    now: datetime | None = None,
    limit: int = 6,
    max_title: int | None = None,
) -> Summary:
    ordered = sort_history(history)
    if not ordered:
        return Summary(
            captures=0,
            latest_total=0,
            latest_delta=None,
            status="empty",
            text="New views: waiting for captures",
            breakdown="New views: waiting for captures",
        )

    series_set = series_set or build_series(ordered)
    totals = totals_per_snapshot(series_set.series, series_set.snapshot_count)
    latest_total = totals[-1] if totals else 0
    delta = latest_delta(totals)
    stamps = [effective_timestamp(snapshot) for snapshot in ordered]

    if delta is None:
        first_at = format_timestamp_label(stamps[0])
        text = "New views: waiting for next capture"
        if first_at:
            text += f" (first capture {first_at})"
        return Summary(len(ordered), latest_total, None, "waiting", text, breakdown=text)

    latest_at = format_timestamp_label(stamps[-1])

    if delta > 0:
        previous_at = format_timestamp_label(stamps[-2])
        text = f"New views: +{format_count(delta)}"
        if previous_at:
            text += f" since {previous_at}"
        if latest_at:
            text += f" (captured {latest_at})"
        increases = sketch_increases(series_set.series)
        return Summary(
            captures=len(ordered),
            latest_total=latest_total,
            latest_delta=delta,
            status="increased",
            text=text,
            last_increase=Increase(index=len(totals) - 1, delta=delta, at=stamps[-1]),
            increases=increases[:limit],
            remaining=max(0, len(increases) - limit),
            breakdown=_breakdown_text(text, increases, limit, max_title),
        )

    lookback = last_increase(totals)
    if lookback is None:
        text = "New views: none observed yet"
        return Summary(len(ordered), latest_total, delta, "flat", text, breakdown=text)

    lookback.at = stamps[lookback.index]
    increase_at = format_timestamp_label(lookback.at)
    relative = format_relative_time(lookback.at, now)
    text = f"New views: none since {increase_at or 'last increase'} (+{format_count(lookback.delta)})"
    if relative:
        text += f" ({relative})"
    if latest_at:
        text += f" · latest capture {latest_at}"
    return Summary(len(ordered), latest_total, delta, "flat", text, last_increase=lookback, breakdown=text)


def badge(history) -> dict:
    """Latest total for a badge-style label."""
    series_set = build_series(history)
    totals = totals_per_snapshot(series_set.series, series_set.snapshot_count)
    total = totals[-1] if totals else 0
    return {
        "text": format_badge_number(total),
        "total": total,
        "title": f"{format_count(total)} total views captured",
    }
