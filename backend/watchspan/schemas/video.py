from datetime import datetime

from pydantic import BaseModel, ConfigDict


class VideoRead(BaseModel):
    video_id: str
    title: str
    description: str | None = None
    url: str
    duration: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
