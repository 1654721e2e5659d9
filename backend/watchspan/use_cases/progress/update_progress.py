import logging

from ...domain.invariants import InvariantViolation, validate_record
from ...domain.ports.progress import ProgressRepository, VideoCatalog
from ...domain.progress import (
    ProgressRecord,
    ProgressUpdate,
    apply_update,
    positive_duration,
    validate_update_request,
)
from ...errors import ConflictError, InternalError

logger = logging.getLogger(__name__)


async def _resolve_fallback_duration(
    catalog: VideoCatalog, existing: ProgressRecord | None, update: ProgressUpdate, video_id: str
) -> float | None:
    # Only a record being created needs the catalog, and only without a usable payload duration
    if existing is not None or positive_duration(update.video_duration) is not None:
        return None
    duration = await catalog.get_duration(video_id)
    logger.info(
        "operation=progress-update action=catalog_lookup video_id=%s duration=%s",
        video_id,
        duration,
    )
    return duration


async def update_progress(
    progress_repo: ProgressRepository,
    catalog: VideoCatalog,
    viewer_id: str,
    video_id: str,
    update: ProgressUpdate,
) -> ProgressRecord:
    """
    Merge a progress report into the viewer's record and persist it.

    The write is conditioned on the revision read here. If a concurrent
    writer advanced it first, nothing is written and ConflictError is raised;
    re-reading and re-submitting is always safe because the merge is
    commutative and idempotent.

    Raises:
        ValidationError: Nothing to record, or no duration for a new record
        ConflictError: Lost the revision race against a concurrent writer
    """
    validate_update_request(update)

    try:
        existing = await progress_repo.get(viewer_id, video_id)
        fallback_duration = await _resolve_fallback_duration(
            catalog, existing, update, video_id
        )
        updated = apply_update(
            existing,
            viewer_id,
            video_id,
            update,
            fallback_duration=fallback_duration,
        )
        try:
            validate_record(updated)
        except InvariantViolation as exc:
            raise InternalError("Progress record failed consistency checks") from exc

        expected_revision = existing.revision if existing is not None else 0
        saved = await progress_repo.save(updated, expected_revision)
        if saved is None:
            logger.warning(
                "operation=progress-update action=conflict viewer_id=%s video_id=%s "
                "expected_revision=%d",
                viewer_id,
                video_id,
                expected_revision,
            )
            raise ConflictError(
                details={"video_id": video_id, "expected_revision": expected_revision}
            )
        await progress_repo.commit()
    except Exception:
        await progress_repo.rollback()
        raise

    logger.info(
        "operation=progress-update action=%s viewer_id=%s video_id=%s revision=%d "
        "total_unique_watched_seconds=%s progress_percentage=%s",
        "create" if existing is None else "update",
        viewer_id,
        video_id,
        saved.revision,
        saved.total_unique_watched_seconds,
        saved.progress_percentage,
    )
    return saved
