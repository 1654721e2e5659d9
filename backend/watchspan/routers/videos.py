from fastapi import APIRouter, Depends, Query

from ..dependencies import get_catalog_repository
from ..schemas.video import VideoRead
from ..use_cases.videos.get_video import get_video, list_videos

router = APIRouter(prefix="/videos", tags=["videos"])


@router.get("", response_model=list[VideoRead])
async def read_videos(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    catalog=Depends(get_catalog_repository),
) -> list[VideoRead]:
    videos = await list_videos(catalog, limit=limit, offset=offset)
    return [VideoRead.model_validate(video) for video in videos]


@router.get("/{video_id}", response_model=VideoRead)
async def read_video(
    video_id: str,
    catalog=Depends(get_catalog_repository),
) -> VideoRead:
    video = await get_video(catalog, video_id)
    return VideoRead.model_validate(video)
