from ...crud.video import VideoCatalogRepository
from ...errors import NotFoundError
from ...models.video import Video


async def get_video(catalog: VideoCatalogRepository, video_id: str) -> Video:
    video = await catalog.get(video_id)
    if video is None:
        raise NotFoundError("Video not found")
    return video


async def list_videos(
    catalog: VideoCatalogRepository, limit: int, offset: int
) -> list[Video]:
    return await catalog.list(limit=limit, offset=offset)
