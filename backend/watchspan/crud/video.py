from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.ports.progress import VideoCatalog
from ..models.video import Video


async def get_video(session: AsyncSession, video_id: str) -> Video | None:
    stmt = select(Video).where(Video.video_id == video_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_videos(session: AsyncSession, limit: int, offset: int) -> list[Video]:
    stmt = (
        select(Video)
        .order_by(Video.created_at.desc(), Video.video_id)
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


class VideoCatalogRepository(VideoCatalog):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, video_id: str) -> Video | None:
        return await get_video(self._session, video_id)

    async def list(self, limit: int, offset: int) -> list[Video]:
        return await list_videos(self._session, limit=limit, offset=offset)

    async def get_duration(self, video_id: str) -> float | None:
        video = await get_video(self._session, video_id)
        if video is None:
            return None
        return video.duration
