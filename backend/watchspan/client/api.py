from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..domain.intervals import WatchInterval, merge_intervals
from ..errors import AppError, error_from_status

logger = logging.getLogger("watchspan.client")


@dataclass(frozen=True)
class ProgressSnapshot:
    """Server view of a viewer's progress on one video."""

    video_id: str
    watched_intervals: list[WatchInterval] = field(default_factory=list)
    total_unique_watched_seconds: float = 0.0
    progress_percentage: float = 0.0
    last_watched_position: float = 0.0
    video_duration: float = 0.0
    revision: int = 0

    @classmethod
    def from_payload(cls, video_id: str, payload: Mapping[str, Any]) -> "ProgressSnapshot":
        return cls(
            video_id=video_id,
            watched_intervals=merge_intervals(payload.get("watched_intervals") or []),
            total_unique_watched_seconds=float(payload.get("total_unique_watched_seconds") or 0),
            progress_percentage=float(payload.get("progress_percentage") or 0),
            last_watched_position=float(payload.get("last_watched_position") or 0),
            video_duration=float(payload.get("video_duration") or 0),
            revision=int(payload.get("revision") or 0),
        )


@dataclass(frozen=True)
class ProgressPayload:
    intervals: list[WatchInterval] | None = None
    last_watched_position: float | None = None
    video_duration: float | None = None

    def to_json(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.intervals is not None:
            body["intervals"] = [interval.to_dict() for interval in self.intervals]
        if self.last_watched_position is not None:
            body["last_watched_position"] = self.last_watched_position
        if self.video_duration is not None:
            body["video_duration"] = self.video_duration
        return body


def _raise_for_error(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        error = {}
    message = error.get("message") if isinstance(error, dict) else None
    details = error.get("details") if isinstance(error, dict) else None
    raise error_from_status(response.status_code, message, details)


class ProgressApiClient:
    """HTTP access to the progress endpoints for one authenticated viewer."""

    def __init__(
        self,
        *,
        base_url: str,
        access_token: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def fetch_progress(self, video_id: str) -> ProgressSnapshot:
        try:
            response = await self._client.get(f"/progress/{video_id}")
        except httpx.RequestError as exc:
            raise AppError("Progress request failed", details=str(exc)) from exc
        _raise_for_error(response)
        return ProgressSnapshot.from_payload(video_id, response.json())

    async def save_progress(self, video_id: str, payload: ProgressPayload) -> ProgressSnapshot:
        """
        Raises:
            ConflictError: Another writer updated the record first
            ValidationError: The server rejected the payload
            AppError: Transport failures and any other server error
        """
        try:
            response = await self._client.post(f"/progress/{video_id}", json=payload.to_json())
        except httpx.RequestError as exc:
            raise AppError("Progress request failed", details=str(exc)) from exc
        logger.debug(
            "progress_save video_id=%s status=%d", video_id, response.status_code
        )
        _raise_for_error(response)
        return ProgressSnapshot.from_payload(video_id, response.json())

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProgressApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
