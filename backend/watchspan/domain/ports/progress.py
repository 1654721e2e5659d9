from __future__ import annotations

from typing import Protocol

from ..progress import ProgressRecord


class ProgressRepository(Protocol):
    async def get(self, viewer_id: str, video_id: str) -> ProgressRecord | None:
        ...

    async def list(self, viewer_id: str, limit: int) -> list[ProgressRecord]:
        ...

    async def save(
        self, record: ProgressRecord, expected_revision: int
    ) -> ProgressRecord | None:
        """Persist ``record`` only if the stored revision still equals ``expected_revision``.

        ``expected_revision == 0`` means the record must not exist yet.
        Returns the stored record with its new revision, or ``None`` when a
        concurrent writer got there first.
        """
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


class VideoCatalog(Protocol):
    async def get_duration(self, video_id: str) -> float | None:
        ...

