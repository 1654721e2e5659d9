from ...domain.ports.progress import ProgressRepository
from ...domain.progress import ProgressRecord, empty_progress


async def get_progress(
    progress_repo: ProgressRepository, viewer_id: str, video_id: str
) -> ProgressRecord:
    """Stored progress, or an all-zero default when the viewer has none yet."""
    progress = await progress_repo.get(viewer_id, video_id)
    if progress is None:
        return empty_progress(viewer_id, video_id)
    return progress


async def list_progress(
    progress_repo: ProgressRepository, viewer_id: str, limit: int
) -> list[ProgressRecord]:
    return await progress_repo.list(viewer_id, limit)
