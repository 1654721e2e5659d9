import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.intervals import merge_intervals, to_payload
from ..domain.ports.progress import ProgressRepository as ProgressRepositoryPort
from ..domain.progress import ProgressRecord
from ..models.video_progress import VideoProgress

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    bind = session.get_bind()
    dialect = bind.dialect.name if bind is not None else "postgresql"
    if dialect == "sqlite":
        return sqlite_insert
    return pg_insert


def _to_record(row: VideoProgress) -> ProgressRecord:
    return ProgressRecord(
        id=row.id,
        viewer_id=row.viewer_id,
        video_id=row.video_id,
        watched_intervals=merge_intervals(row.watched_intervals or []),
        total_unique_watched_seconds=row.total_unique_watched_seconds,
        progress_percentage=row.progress_percentage,
        last_watched_position=row.last_watched_position,
        video_duration=row.video_duration,
        revision=row.revision,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _values_for(record: ProgressRecord) -> dict[str, object]:
    return {
        "watched_intervals": to_payload(record.watched_intervals),
        "total_unique_watched_seconds": record.total_unique_watched_seconds,
        "progress_percentage": record.progress_percentage,
        "last_watched_position": record.last_watched_position,
        "video_duration": record.video_duration,
        "updated_at": record.updated_at or datetime.now(timezone.utc),
    }


async def get_video_progress(
    session: AsyncSession, viewer_id: str, video_id: str
) -> VideoProgress | None:
    stmt = (
        select(VideoProgress)
        .where(VideoProgress.viewer_id == viewer_id, VideoProgress.video_id == video_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_video_progress(
    session: AsyncSession, viewer_id: str, limit: int
) -> list[VideoProgress]:
    stmt = (
        select(VideoProgress)
        .where(VideoProgress.viewer_id == viewer_id)
        .order_by(VideoProgress.updated_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def insert_video_progress(
    session: AsyncSession, record: ProgressRecord
) -> VideoProgress | None:
    """Create the row unless another writer created it first."""
    values = {
        "id": record.id,
        "viewer_id": record.viewer_id,
        "video_id": record.video_id,
        "revision": 1,
        **_values_for(record),
    }
    if record.created_at is not None:
        values["created_at"] = record.created_at
    insert_fn = _insert_for(session)
    stmt = insert_fn(VideoProgress).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=["viewer_id", "video_id"])
    await session.execute(stmt)

    stored = await get_video_progress(session, record.viewer_id, record.video_id)
    if stored is None:
        raise RuntimeError(
            f"Progress insert did not return a row for viewer={record.viewer_id} "
            f"video={record.video_id}"
        )
    if stored.id != record.id:
        return None
    return stored


async def update_video_progress(
    session: AsyncSession, record: ProgressRecord, expected_revision: int
) -> VideoProgress | None:
    """Write ``record`` only if the stored revision is still ``expected_revision``."""
    stmt = (
        update(VideoProgress)
        .where(
            VideoProgress.viewer_id == record.viewer_id,
            VideoProgress.video_id == record.video_id,
            VideoProgress.revision == expected_revision,
        )
        .values(revision=expected_revision + 1, **_values_for(record))
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        return None
    return await get_video_progress(session, record.viewer_id, record.video_id)


class ProgressRepository(ProgressRepositoryPort):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, viewer_id: str, video_id: str) -> ProgressRecord | None:
        row = await get_video_progress(self._session, viewer_id, video_id)
        return _to_record(row) if row is not None else None

    async def list(self, viewer_id: str, limit: int) -> list[ProgressRecord]:
        rows = await list_video_progress(self._session, viewer_id=viewer_id, limit=limit)
        return [_to_record(row) for row in rows]

    async def save(
        self, record: ProgressRecord, expected_revision: int
    ) -> ProgressRecord | None:
        if expected_revision == 0:
            row = await insert_video_progress(self._session, record)
        else:
            row = await update_video_progress(self._session, record, expected_revision)
        if row is None:
            logger.info(
                "operation=progress-save action=conflict viewer_id=%s video_id=%s "
                "expected_revision=%d",
                record.viewer_id,
                record.video_id,
                expected_revision,
            )
            return None
        return _to_record(row)

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()
