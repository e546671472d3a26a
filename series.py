"""Per-sketch time series derived from the snapshot history."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from formatting import format_tooltip_timestamp
from history import coerce_id, coerce_views, effective_timestamp, snapshot_label, sort_history

EPOCH_ISO = "1970-01-01T00:00:00.000Z"


@dataclass(slots=True)
class Point:
    time_label: str
    date: str
    views: int
    tooltip: str = ""


@dataclass(slots=True)
class Series:
    id: int
    title: str
    url: str
    points: List[Point] = field(default_factory=list)
    latest_views: int = 0


@dataclass(slots=True)
class SeriesSet:
    time_labels: List[str]
    series: List[Series]
    snapshot_count: int = 0


@dataclass(slots=True)
class SeriesView:
    selection: str
    series: List[Series]
    options: List[dict]
    header: str


def _sketches(snapshot) -> list:
    sketches = snapshot.get("sketches") if isinstance(snapshot, dict) else None
    return sketches if isinstance(sketches, list) else []


def build_series(history) -> SeriesSet:
    ordered = sort_history(history)
    time_labels = [snapshot_label(snapshot, index) for index, snapshot in enumerate(ordered)]
    dates = {
        label: effective_timestamp(snapshot) or EPOCH_ISO
        for label, snapshot in zip(time_labels, ordered)
    }

    by_id: dict[int, dict] = {}
    for label, snapshot in zip(time_labels, ordered):
        for sketch in _sketches(snapshot):
            if not isinstance(sketch, dict):
                continue
            sketch_id = coerce_id(sketch.get("id"))
            if sketch_id is None:
                continue
            entry = by_id.setdefault(sketch_id, {"title": "", "url": "", "points": {}})
            # later snapshots win for display fields
            if sketch.get("title"):
                entry["title"] = str(sketch["title"])
            if sketch.get("url"):
                entry["url"] = str(sketch["url"])
            entry["points"][label] = coerce_views(sketch.get("views"))

    series = []
    for sketch_id, entry in by_id.items():
        points = [
            Point(
                time_label=label,
                date=dates.get(label, EPOCH_ISO),
                views=entry["points"].get(label, 0),
                tooltip=format_tooltip_timestamp(label),
            )
            for label in time_labels
        ]
        if not any(point.views > 0 for point in points):
            continue
        series.append(
            Series(
                id=sketch_id,
                title=entry["title"] or f"Sketch {sketch_id}",
                url=entry["url"],
                points=points,
                latest_views=points[-1].views if points else 0,
            )
        )

    series.sort(key=lambda item: item.latest_views, reverse=True)
    return SeriesSet(time_labels=time_labels, series=series, snapshot_count=len(ordered))


def filter_options(series_set: SeriesSet) -> list[dict]:
    options = [{"value": "all", "label": f"All sketches ({len(series_set.series)})"}]
    for line in sorted(series_set.series, key=lambda item: item.title.casefold()):
        options.append({"value": str(line.id), "label": f"{line.title} (#{line.id})"})
    return options


def select_view(series_set: SeriesSet, selection="all") -> SeriesView:
    """Apply a sketch filter to a built series set.

    Unknown selections fall back to ``"all"``.
    """
    options = filter_options(series_set)
    selection = str(selection) if selection not in (None, "") else "all"
    if selection not in {option["value"] for option in options}:
        selection = "all"

    if not series_set.snapshot_count:
        return SeriesView(selection, [], options, "No stored snapshots yet. Capture from the popup first.")

    if selection == "all":
        visible = list(series_set.series)
    else:
        visible = [line for line in series_set.series if str(line.id) == selection]

    if not visible:
        return SeriesView(selection, [], options, "No data for selected sketch.")

    if selection == "all":
        header = f"{series_set.snapshot_count} captures · {len(visible)} sketches"
    else:
        header = f"{series_set.snapshot_count} captures · {visible[0].title} (#{visible[0].id})"
    return SeriesView(selection, visible, options, header)
