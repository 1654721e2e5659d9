"""Create videos catalog and video_progress tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

video_progress holds one row per (viewer_id, video_id). The revision column
backs the optimistic concurrency check on every progress write.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        "videos",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("video_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("duration", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("duration >= 0", name="ck_videos_duration_nonnegative"),
    )
    op.create_index("ix_videos_video_id", "videos", ["video_id"], unique=True)

    op.create_table(
        "video_progress",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("viewer_id", sa.String(length=255), nullable=False),
        sa.Column("video_id", sa.String(length=255), nullable=False),
        sa.Column("watched_intervals", sa.JSON(), nullable=False),
        sa.Column("total_unique_watched_seconds", sa.Float(), nullable=False),
        sa.Column("progress_percentage", sa.Float(), nullable=False),
        sa.Column("last_watched_position", sa.Float(), nullable=False),
        sa.Column("video_duration", sa.Float(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("viewer_id", "video_id", name="uq_video_progress_viewer_video"),
        sa.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_video_progress_percentage_range",
        ),
        sa.CheckConstraint(
            "total_unique_watched_seconds >= 0",
            name="ck_video_progress_total_nonnegative",
        ),
        sa.CheckConstraint(
            "last_watched_position >= 0",
            name="ck_video_progress_position_nonnegative",
        ),
        sa.CheckConstraint("video_duration >= 0", name="ck_video_progress_duration_nonnegative"),
        sa.CheckConstraint("revision > 0", name="ck_video_progress_revision_positive"),
    )
    op.create_index("ix_video_progress_viewer_id", "video_progress", ["viewer_id"])
    op.create_index("ix_video_progress_video_id", "video_progress", ["video_id"])


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_index("ix_video_progress_video_id", table_name="video_progress")
    op.drop_index("ix_video_progress_viewer_id", table_name="video_progress")
    op.drop_table("video_progress")

    op.drop_index("ix_videos_video_id", table_name="videos")
    op.drop_table("videos")
