import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class VideoProgress(Base):
    __tablename__ = "video_progress"
    __table_args__ = (
        # One record per viewer and video
        UniqueConstraint("viewer_id", "video_id", name="uq_video_progress_viewer_video"),
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_video_progress_percentage_range",
        ),
        CheckConstraint(
            "total_unique_watched_seconds >= 0",
            name="ck_video_progress_total_nonnegative",
        ),
        CheckConstraint(
            "last_watched_position >= 0",
            name="ck_video_progress_position_nonnegative",
        ),
        CheckConstraint("video_duration >= 0", name="ck_video_progress_duration_nonnegative"),
        CheckConstraint("revision > 0", name="ck_video_progress_revision_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    viewer_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    video_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    watched_intervals: Mapped[list[dict[str, float]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    total_unique_watched_seconds: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    progress_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_watched_position: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    video_duration: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
