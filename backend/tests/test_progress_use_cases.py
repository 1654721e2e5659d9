from datetime import datetime, timedelta, timezone

import pytest

from tests.progress_helpers import FakeCatalog, InMemoryProgressRepository
from watchspan.domain.intervals import WatchInterval
from watchspan.domain.progress import ProgressRecord, ProgressUpdate
from watchspan.errors import ConflictError, ValidationError
from watchspan.use_cases.progress.get_progress import get_progress, list_progress
from watchspan.use_cases.progress.update_progress import update_progress

VIEWER = "viewer-1"
VIDEO = "video-1"


@pytest.mark.anyio
async def test_get_progress_defaults_to_zero_when_missing() -> None:
    repo = InMemoryProgressRepository()

    progress = await get_progress(repo, VIEWER, VIDEO)

    assert progress.video_id == VIDEO
    assert progress.watched_intervals == []
    assert progress.progress_percentage == 0
    assert progress.last_watched_position == 0
    assert progress.revision == 0


@pytest.mark.anyio
async def test_get_progress_returns_stored_record() -> None:
    repo = InMemoryProgressRepository()
    repo.seed(
        ProgressRecord(
            viewer_id=VIEWER,
            video_id=VIDEO,
            video_duration=100,
            watched_intervals=[WatchInterval(0, 40)],
            total_unique_watched_seconds=40,
            progress_percentage=40.0,
            last_watched_position=40,
        )
    )

    progress = await get_progress(repo, VIEWER, VIDEO)

    assert progress.progress_percentage == 40.0
    assert progress.revision == 1


@pytest.mark.anyio
async def test_list_progress_is_scoped_to_viewer_and_newest_first() -> None:
    repo = InMemoryProgressRepository()
    now = datetime.now(timezone.utc)
    for index, video_id in enumerate(["a", "b", "c"]):
        repo.seed(
            ProgressRecord(
                viewer_id=VIEWER,
                video_id=video_id,
                video_duration=10,
                updated_at=now + timedelta(minutes=index),
            )
        )
    repo.seed(ProgressRecord(viewer_id="someone-else", video_id="d", video_duration=10))

    records = await list_progress(repo, VIEWER, limit=2)

    assert [record.video_id for record in records] == ["c", "b"]


@pytest.mark.anyio
async def test_watch_rewatch_and_resume_flow() -> None:
    repo = InMemoryProgressRepository()
    catalog = FakeCatalog()

    first = await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(
            intervals=[{"start": 0, "end": 30}, {"start": 60, "end": 80}],
            last_watched_position=80,
            video_duration=100,
        ),
    )
    assert first.total_unique_watched_seconds == 50
    assert first.progress_percentage == 50.0
    assert first.revision == 1

    rewatch = await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 10, "end": 20}], last_watched_position=20),
    )
    assert rewatch.total_unique_watched_seconds == 50
    assert rewatch.progress_percentage == 50.0
    assert rewatch.last_watched_position == 20
    assert rewatch.revision == 2

    resumed = await get_progress(repo, VIEWER, VIDEO)
    assert resumed.last_watched_position == 20
    assert resumed.watched_intervals == [WatchInterval(0, 30), WatchInterval(60, 80)]
    assert repo.commits == 2
    assert catalog.lookups == []


@pytest.mark.anyio
async def test_update_progress_fills_gap_to_complete() -> None:
    repo = InMemoryProgressRepository()
    catalog = FakeCatalog()
    await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 0, "end": 30}, {"start": 60, "end": 100}], video_duration=100),
    )

    saved = await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 30, "end": 60}], last_watched_position=100),
    )

    assert saved.watched_intervals == [WatchInterval(0, 100)]
    assert saved.progress_percentage == 100.0


@pytest.mark.anyio
async def test_update_progress_uses_catalog_duration_for_new_record() -> None:
    repo = InMemoryProgressRepository()
    catalog = FakeCatalog({VIDEO: 200.0})

    saved = await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 0, "end": 50}]),
    )

    assert saved.video_duration == 200.0
    assert saved.progress_percentage == 25.0
    assert catalog.lookups == [VIDEO]


@pytest.mark.anyio
async def test_update_progress_rejects_new_record_without_any_duration() -> None:
    repo = InMemoryProgressRepository()

    with pytest.raises(ValidationError, match="missing duration"):
        await update_progress(
            repo,
            FakeCatalog(),
            VIEWER,
            VIDEO,
            ProgressUpdate(intervals=[{"start": 0, "end": 50}]),
        )

    assert repo.rows == {}
    assert repo.rollbacks == 1
    assert repo.commits == 0


@pytest.mark.anyio
async def test_update_progress_rejects_empty_report_before_reading() -> None:
    repo = InMemoryProgressRepository()

    with pytest.raises(ValidationError):
        await update_progress(repo, FakeCatalog(), VIEWER, VIDEO, ProgressUpdate(intervals=[]))

    assert repo.rollbacks == 0


@pytest.mark.anyio
async def test_update_progress_raises_conflict_when_revision_moved() -> None:
    repo = InMemoryProgressRepository()
    catalog = FakeCatalog()
    await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 0, "end": 10}], video_duration=100),
    )

    def concurrent_writer(_record: ProgressRecord) -> None:
        stored = repo.rows[(VIEWER, VIDEO)]
        stored.watched_intervals = [WatchInterval(0, 10), WatchInterval(50, 60)]
        stored.revision += 1

    repo.before_save = concurrent_writer

    with pytest.raises(ConflictError) as exc_info:
        await update_progress(
            repo,
            catalog,
            VIEWER,
            VIDEO,
            ProgressUpdate(intervals=[{"start": 10, "end": 20}]),
        )

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"video_id": VIDEO, "expected_revision": 1}
    assert repo.rollbacks == 1
    # the concurrent write survives untouched
    assert repo.rows[(VIEWER, VIDEO)].watched_intervals == [
        WatchInterval(0, 10),
        WatchInterval(50, 60),
    ]

    retried = await update_progress(
        repo,
        catalog,
        VIEWER,
        VIDEO,
        ProgressUpdate(intervals=[{"start": 10, "end": 20}]),
    )
    assert retried.watched_intervals == [WatchInterval(0, 20), WatchInterval(50, 60)]
    assert retried.revision == 3


@pytest.mark.anyio
async def test_update_progress_conflicts_on_concurrent_create() -> None:
    repo = InMemoryProgressRepository()
    catalog = FakeCatalog()

    def concurrent_create(record: ProgressRecord) -> None:
        repo.seed(ProgressRecord(viewer_id=VIEWER, video_id=VIDEO, video_duration=100))

    repo.before_save = concurrent_create

    with pytest.raises(ConflictError):
        await update_progress(
            repo,
            catalog,
            VIEWER,
            VIDEO,
            ProgressUpdate(intervals=[{"start": 0, "end": 10}], video_duration=100),
        )
