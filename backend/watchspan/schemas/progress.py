from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt


class WatchIntervalRead(BaseModel):
    start: float
    end: float

    model_config = ConfigDict(from_attributes=True)


class ProgressUpdateRequest(BaseModel):
    """
    Progress report sent by the playback client.
    Interval entries are kept raw: malformed ones are dropped during the merge
    instead of failing the whole request.
    Numbers are strict: booleans and numeric strings are not positions.
    """
    intervals: list[Any] | None = None
    last_watched_position: StrictFloat | StrictInt | None = None
    video_duration: StrictFloat | StrictInt | None = None


class ProgressRead(BaseModel):
    video_id: str
    watched_intervals: list[WatchIntervalRead] = Field(default_factory=list)
    total_unique_watched_seconds: float = 0.0
    progress_percentage: float = 0.0
    last_watched_position: float = 0.0
    video_duration: float = 0.0
    revision: int = 0
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
