from fastapi import APIRouter, Depends, Query

from ..dependencies import get_current_viewer_id, get_progress_port, get_video_catalog
from ..domain.progress import ProgressUpdate
from ..schemas.progress import ProgressRead, ProgressUpdateRequest
from ..use_cases.progress.get_progress import get_progress, list_progress
from ..use_cases.progress.update_progress import update_progress

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("", response_model=list[ProgressRead])
async def read_progress_list(
    limit: int = Query(20, ge=1, le=100),
    viewer_id: str = Depends(get_current_viewer_id),
    progress_port=Depends(get_progress_port),
) -> list[ProgressRead]:
    records = await list_progress(progress_port, viewer_id, limit)
    return [ProgressRead.model_validate(record) for record in records]


@router.get("/{video_id}", response_model=ProgressRead)
async def read_progress(
    video_id: str,
    viewer_id: str = Depends(get_current_viewer_id),
    progress_port=Depends(get_progress_port),
) -> ProgressRead:
    record = await get_progress(progress_port, viewer_id, video_id)
    return ProgressRead.model_validate(record)


@router.post("/{video_id}", response_model=ProgressRead)
@router.put("/{video_id}", response_model=ProgressRead)
async def save_progress(
    video_id: str,
    payload: ProgressUpdateRequest,
    viewer_id: str = Depends(get_current_viewer_id),
    progress_port=Depends(get_progress_port),
    catalog=Depends(get_video_catalog),
) -> ProgressRead:
    record = await update_progress(
        progress_port,
        catalog,
        viewer_id,
        video_id,
        ProgressUpdate(
            intervals=payload.intervals,
            last_watched_position=payload.last_watched_position,
            video_duration=payload.video_duration,
        ),
    )
    return ProgressRead.model_validate(record)
