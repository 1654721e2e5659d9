"""
Progress record invariants.

Checked right before a record is written; a violation means a bug in the
update path, never bad client input, so it is logged loudly and the write is
refused.

INVARIANTS:
1. Normalized watched set - sorted, no overlapping or touching intervals
2. Total equals the exact sum of interval lengths
3. Percentage derived from total and duration, clamped to [0, 100]
4. Position within [0, duration] whenever duration is positive
"""

import logging
import math
from typing import Any

from .intervals import calculate_progress, calculate_total_seconds
from .progress import ProgressRecord

logger = logging.getLogger(__name__)

_TOLERANCE = 1e-9


class InvariantViolation(Exception):
    """Raised when a progress record about to be persisted is inconsistent."""

    def __init__(self, message: str, *, invariant: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.invariant = invariant
        self.details = details or {}

        logger.error(
            "invariant_violation invariant=%s message=%s details=%s",
            invariant,
            message,
            details,
        )


def validate_normalized(record: ProgressRecord) -> None:
    previous = None
    for interval in record.watched_intervals:
        if interval.start < 0 or interval.start >= interval.end:
            raise InvariantViolation(
                f"Interval {interval} is malformed",
                invariant="normalized_set.interval_bounds",
                details={"video_id": record.video_id, "viewer_id": record.viewer_id},
            )
        if previous is not None and interval.start <= previous.end:
            raise InvariantViolation(
                f"Intervals {previous} and {interval} overlap or touch",
                invariant="normalized_set.disjoint",
                details={"video_id": record.video_id, "viewer_id": record.viewer_id},
            )
        previous = interval


def validate_aggregates(record: ProgressRecord) -> None:
    expected_total = calculate_total_seconds(record.watched_intervals)
    if not math.isclose(
        record.total_unique_watched_seconds, expected_total, abs_tol=_TOLERANCE
    ):
        raise InvariantViolation(
            "Total watched seconds does not match the watched set",
            invariant="aggregates.total",
            details={
                "stored": record.total_unique_watched_seconds,
                "expected": expected_total,
            },
        )

    expected_percentage = calculate_progress(expected_total, record.video_duration)
    if not math.isclose(
        record.progress_percentage, expected_percentage, abs_tol=_TOLERANCE
    ):
        raise InvariantViolation(
            "Progress percentage does not match total and duration",
            invariant="aggregates.percentage",
            details={
                "stored": record.progress_percentage,
                "expected": expected_percentage,
            },
        )


def validate_position_bounds(record: ProgressRecord) -> None:
    position = record.last_watched_position
    if position < 0 or (record.video_duration > 0 and position > record.video_duration):
        raise InvariantViolation(
            f"Position {position} is outside [0, {record.video_duration}]",
            invariant="position_bounds",
            details={"video_id": record.video_id, "viewer_id": record.viewer_id},
        )


def validate_record(record: ProgressRecord) -> None:
    validate_normalized(record)
    validate_aggregates(record)
    validate_position_bounds(record)
