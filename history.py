"""Snapshot history: effective timestamps, snapshot construction and merge."""
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from errors import CaptureError


def effective_timestamp(snapshot):
    """Return ``fetched_at``, else ``date``, else None."""
    if not isinstance(snapshot, dict):
        return None
    for key in ("fetched_at", "date"):
        value = snapshot.get(key)
        if value:
            return str(value)
    return None


def parse_timestamp(value):
    """Parse an ISO-8601 string into an aware datetime, or None.

    Date-only values and values without an offset are read as UTC.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def snapshot_time(snapshot) -> float:
    parsed = parse_timestamp(effective_timestamp(snapshot))
    if parsed is None:
        return 0.0
    return parsed.timestamp()


def snapshot_label(snapshot, index: int = 0) -> str:
    return effective_timestamp(snapshot) or f"snapshot-{index + 1}"


def sort_history(history):
    return sorted(history, key=snapshot_time)


def merge_snapshot(history, snapshot):
    """Merge one snapshot into history and return the new list.

    A snapshot whose ``fetched_at`` is already stored replaces that entry in
    place; anything else is appended and the list re-sorted by time.
    """
    merged = list(history)
    fetched_at = snapshot.get("fetched_at")
    for index, entry in enumerate(merged):
        if isinstance(entry, dict) and entry.get("fetched_at") == fetched_at:
            merged[index] = snapshot
            return merged
    merged.append(snapshot)
    return sort_history(merged)


def coerce_id(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value or "").strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    return None


def coerce_views(value) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return max(0, int(value))
    digits = re.sub(r"[^\d]", "", str(value or ""))
    return int(digits) if digits else 0


def normalize_record(record):
    """Coerce one collector record, or return None when it has no usable id."""
    if not isinstance(record, dict):
        return None
    sketch_id = coerce_id(record.get("id"))
    if sketch_id is None:
        return None
    sketch = {
        "id": sketch_id,
        "title": re.sub(r"\s+", " ", str(record.get("title") or "")).strip(),
        "views": coerce_views(record.get("views")),
    }
    url = record.get("url")
    if url:
        sketch["url"] = str(url)
    return sketch


def capture_timestamps(now: datetime | None = None, tz_name: str = "UTC"):
    """Return ``(date, fetched_at)`` for a capture happening at ``now``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    date = now.astimezone(timezone.utc).date().isoformat()
    fetched_at = now.astimezone(ZoneInfo(tz_name)).isoformat(timespec="milliseconds")
    return date, fetched_at


def build_snapshot(records, page_url: str = "", now: datetime | None = None, tz_name: str = "UTC"):
    if not isinstance(records, list):
        raise CaptureError("Unexpected scrape result.")

    by_id = {}
    for record in records:
        sketch = normalize_record(record)
        if sketch is None or sketch["id"] in by_id:
            continue
        by_id[sketch["id"]] = sketch

    if not by_id:
        raise CaptureError(
            "No sketches found on this page. Try your sketch list page and scroll to load entries."
        )

    date, fetched_at = capture_timestamps(now, tz_name)
    return {
        "date": date,
        "fetched_at": fetched_at,
        "page_url": page_url or "",
        "sketches": sorted(by_id.values(), key=lambda s: s["views"], reverse=True),
    }
