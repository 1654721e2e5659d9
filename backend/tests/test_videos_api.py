from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from watchspan.dependencies import get_catalog_repository
from watchspan.main import app


@dataclass
class FakeVideo:
    video_id: str
    title: str
    url: str
    duration: float
    description: str | None = None
    created_at: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeCatalogRepository:
    def __init__(self, videos: list[FakeVideo]) -> None:
        self._videos = {video.video_id: video for video in videos}

    async def get(self, video_id: str) -> FakeVideo | None:
        return self._videos.get(video_id)

    async def list(self, limit: int, offset: int) -> list[FakeVideo]:
        return list(self._videos.values())[offset : offset + limit]


@pytest.fixture
def client():
    catalog = FakeCatalogRepository(
        [
            FakeVideo("intro", "Intro", "https://cdn.example.com/intro.mp4", 95.0),
            FakeVideo("deep-dive", "Deep dive", "https://cdn.example.com/deep.mp4", 1800.0),
        ]
    )
    app.dependency_overrides[get_catalog_repository] = lambda: catalog
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_list_videos_paginates(client: TestClient) -> None:
    response = client.get("/videos", params={"limit": 1, "offset": 1})

    assert response.status_code == status.HTTP_200_OK
    assert [video["video_id"] for video in response.json()] == ["deep-dive"]


def test_get_video_returns_duration_and_url(client: TestClient) -> None:
    response = client.get("/videos/intro")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["duration"] == 95.0
    assert body["url"] == "https://cdn.example.com/intro.mp4"


def test_get_unknown_video_is_404(client: TestClient) -> None:
    response = client.get("/videos/missing")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == {
        "code": "NOT_FOUND",
        "message": "Video not found",
        "details": None,
    }
