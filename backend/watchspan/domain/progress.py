"""Progress record and the update rules applied to it."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from ..errors import ValidationError
from .intervals import (
    WatchInterval,
    WatchedSet,
    calculate_progress,
    calculate_total_seconds,
    merge_intervals,
)

logger = logging.getLogger(__name__)


@dataclass
class ProgressRecord:
    viewer_id: str
    video_id: str
    video_duration: float
    watched_intervals: WatchedSet = field(default_factory=list)
    total_unique_watched_seconds: float = 0.0
    progress_percentage: float = 0.0
    last_watched_position: float = 0.0
    # 0 means the record has never been persisted
    revision: int = 0
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_new(self) -> bool:
        return self.revision == 0

    def merge_watched(self, incoming: list[Any]) -> None:
        self.watched_intervals = merge_intervals(self.watched_intervals, incoming)
        self.recalculate()

    def recalculate(self) -> None:
        self.total_unique_watched_seconds = calculate_total_seconds(self.watched_intervals)
        self.progress_percentage = calculate_progress(
            self.total_unique_watched_seconds,
            self.video_duration,
            context={"viewer_id": self.viewer_id, "video_id": self.video_id},
        )

    def clamp_position(self, position: float) -> float:
        upper = self.video_duration if self.video_duration > 0 else math.inf
        return max(0.0, min(float(position), upper))


@dataclass(frozen=True)
class ProgressUpdate:
    """Incoming update; ``intervals=None`` means "not supplied", ``[]`` does not."""

    intervals: list[Any] | None = None
    last_watched_position: float | None = None
    video_duration: float | None = None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def positive_duration(value: Any) -> float | None:
    if _is_number(value) and value > 0:
        return float(value)
    return None


def validate_update_request(update: ProgressUpdate) -> None:
    has_intervals = isinstance(update.intervals, list) and len(update.intervals) > 0
    has_position = _is_number(update.last_watched_position)
    if not has_intervals and not has_position:
        raise ValidationError(
            "Request must include a non-empty intervals list or a numeric last_watched_position"
        )


def empty_progress(viewer_id: str, video_id: str) -> ProgressRecord:
    """Default returned when a viewer has no stored progress for a video."""
    return ProgressRecord(viewer_id=viewer_id, video_id=video_id, video_duration=0.0)


def apply_update(
    record: ProgressRecord | None,
    viewer_id: str,
    video_id: str,
    update: ProgressUpdate,
    *,
    fallback_duration: float | None = None,
    now: datetime | None = None,
) -> ProgressRecord:
    """Apply ``update`` and return the recalculated record.

    The input record is never mutated, so a caller that loses the revision
    race still holds the state it read.

    Raises:
        ValidationError: If the request carries nothing to record, or a new
            record cannot be created because no positive duration resolves.
    """
    validate_update_request(update)
    now = now or datetime.now(timezone.utc)
    requested_duration = positive_duration(update.video_duration)

    if record is None:
        duration = requested_duration or positive_duration(fallback_duration)
        if duration is None:
            logger.warning(
                "operation=progress-update action=reject reason=missing_duration "
                "viewer_id=%s video_id=%s",
                viewer_id,
                video_id,
            )
            raise ValidationError(
                "missing duration: a positive video_duration is required to create progress"
            )
        updated = ProgressRecord(
            viewer_id=viewer_id,
            video_id=video_id,
            video_duration=duration,
            created_at=now,
        )
    else:
        updated = replace(record, watched_intervals=list(record.watched_intervals))
        if requested_duration is not None and requested_duration != updated.video_duration:
            logger.info(
                "operation=progress-update action=duration_change viewer_id=%s video_id=%s "
                "old=%s new=%s",
                viewer_id,
                video_id,
                updated.video_duration,
                requested_duration,
            )
            updated.video_duration = requested_duration

    if _is_number(update.last_watched_position):
        updated.last_watched_position = updated.clamp_position(update.last_watched_position)
    else:
        updated.last_watched_position = updated.clamp_position(updated.last_watched_position)

    if update.intervals is not None:
        updated.merge_watched(update.intervals)
    else:
        updated.recalculate()

    updated.updated_at = now
    return updated


__all__ = [
    "ProgressRecord",
    "ProgressUpdate",
    "WatchInterval",
    "apply_update",
    "empty_progress",
    "positive_duration",
    "validate_update_request",
]
