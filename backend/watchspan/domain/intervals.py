"""Watched-interval arithmetic.

Everything here is pure and synchronous. Inputs coming from playback
telemetry are noisy, so malformed entries are dropped instead of raising:
a broken entry must never block the rest of an update.

A watched set is *normalized* when it is sorted by start and no two
intervals overlap or touch (``next.start > prev.end`` for every pair).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class WatchInterval:
    start: float
    end: float

    @property
    def length(self) -> float:
        return self.end - self.start

    def to_dict(self) -> dict[str, float]:
        return {"start": self.start, "end": self.end}


WatchedSet = list[WatchInterval]


def _as_number(value: Any) -> float | None:
    # bool is an int subclass; true/false are not positions
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def coerce_interval(raw: Any) -> WatchInterval | None:
    """Return a valid interval for ``raw`` or ``None`` when it is malformed.

    Accepts ``WatchInterval`` instances, mappings with ``start``/``end`` keys
    and objects exposing ``start``/``end`` attributes.
    """
    if isinstance(raw, Mapping):
        start = _as_number(raw.get("start"))
        end = _as_number(raw.get("end"))
    else:
        start = _as_number(getattr(raw, "start", None))
        end = _as_number(getattr(raw, "end", None))

    if start is None or end is None:
        return None
    if start < 0 or start >= end:
        return None
    return WatchInterval(start=start, end=end)


def _valid_intervals(raw_intervals: Iterable[Any] | None) -> list[WatchInterval]:
    if raw_intervals is None or isinstance(raw_intervals, (str, bytes, Mapping)):
        return []
    try:
        candidates = list(raw_intervals)
    except TypeError:
        return []

    valid: list[WatchInterval] = []
    for raw in candidates:
        interval = coerce_interval(raw)
        if interval is None:
            logger.debug("interval_discarded raw=%r", raw)
            continue
        valid.append(interval)
    return valid


def merge_intervals(
    existing: Iterable[Any] | None,
    incoming: Iterable[Any] | None = None,
) -> WatchedSet:
    """Merge ``existing`` and ``incoming`` into one normalized watched set.

    Touching intervals (``next.start == current.end``) are merged so frequent
    small reports do not fragment the set. The result is independent of the
    order in which intervals were supplied.
    """
    combined = _valid_intervals(existing) + _valid_intervals(incoming)
    if not combined:
        return []

    combined.sort(key=lambda interval: (interval.start, interval.end))

    merged: WatchedSet = []
    current_start = combined[0].start
    current_end = combined[0].end
    for interval in combined[1:]:
        if interval.start <= current_end:
            current_end = max(current_end, interval.end)
            continue
        merged.append(WatchInterval(start=current_start, end=current_end))
        current_start = interval.start
        current_end = interval.end
    merged.append(WatchInterval(start=current_start, end=current_end))
    return merged


def calculate_total_seconds(watched: Iterable[Any] | None) -> float:
    """Sum ``end - start`` over ``watched``, skipping invalid entries."""
    return sum(interval.length for interval in _valid_intervals(watched))


def round_percentage(value: float) -> float:
    """Round half up to two decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def calculate_progress(
    total_unique_watched_seconds: float,
    video_duration: float,
    *,
    context: Mapping[str, Any] | None = None,
) -> float:
    """Completion percentage in ``[0, 100]`` rounded to two decimals.

    A non-positive duration yields ``0``; watched time without a usable
    duration is logged as an anomaly.
    """
    total = _as_number(total_unique_watched_seconds) or 0.0
    duration = _as_number(video_duration) or 0.0
    if duration <= 0:
        if total > 0:
            logger.warning(
                "progress_anomaly reason=non_positive_duration duration=%s "
                "total_unique_watched_seconds=%s %s",
                video_duration,
                total,
                " ".join(f"{k}={v}" for k, v in (context or {}).items()),
            )
        return 0.0

    percentage = round_percentage(total / duration * 100)
    return max(0.0, min(100.0, percentage))


def to_payload(watched: Iterable[WatchInterval]) -> list[dict[str, float]]:
    return [interval.to_dict() for interval in watched]
