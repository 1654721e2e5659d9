from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import status
from fastapi.testclient import TestClient

from tests.progress_helpers import FakeCatalog, InMemoryProgressRepository
from watchspan.config import get_settings
from watchspan.dependencies import (
    get_current_viewer_id,
    get_progress_port,
    get_video_catalog,
)
from watchspan.domain.progress import ProgressRecord
from watchspan.main import app

VIEWER = "viewer-1"


@pytest.fixture
def repo() -> InMemoryProgressRepository:
    return InMemoryProgressRepository()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog({"catalogued": 300.0})


@pytest.fixture
def client(repo, catalog):
    app.dependency_overrides[get_progress_port] = lambda: repo
    app.dependency_overrides[get_video_catalog] = lambda: catalog
    app.dependency_overrides[get_current_viewer_id] = lambda: VIEWER
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(subject: str, *, expires_in: timedelta = timedelta(minutes=5)) -> str:
    settings = get_settings()
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def test_get_progress_without_record_returns_defaults(client: TestClient) -> None:
    response = client.get("/progress/v1")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["video_id"] == "v1"
    assert body["watched_intervals"] == []
    assert body["progress_percentage"] == 0
    assert body["last_watched_position"] == 0
    assert body["revision"] == 0


def test_post_progress_merges_and_reports_percentage(client: TestClient) -> None:
    response = client.post(
        "/progress/v1",
        json={
            "intervals": [{"start": 0, "end": 30}, {"start": 60, "end": 80}],
            "last_watched_position": 80,
            "video_duration": 100,
        },
    )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["watched_intervals"] == [{"start": 0, "end": 30}, {"start": 60, "end": 80}]
    assert body["total_unique_watched_seconds"] == 50
    assert body["progress_percentage"] == 50.0
    assert body["revision"] == 1

    response = client.put(
        "/progress/v1",
        json={"intervals": [{"start": 10, "end": 20}], "last_watched_position": 20},
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["progress_percentage"] == 50.0
    assert body["last_watched_position"] == 20
    assert body["revision"] == 2


def test_post_progress_drops_malformed_intervals(client: TestClient) -> None:
    response = client.post(
        "/progress/v1",
        json={
            "intervals": [{"start": 10, "end": 5}, {"start": "a", "end": 3}, {"start": 0, "end": 10}],
            "video_duration": 100,
        },
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["watched_intervals"] == [{"start": 0, "end": 10}]


def test_post_progress_uses_catalog_duration(client: TestClient) -> None:
    response = client.post("/progress/catalogued", json={"intervals": [{"start": 0, "end": 75}]})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["video_duration"] == 300.0
    assert response.json()["progress_percentage"] == 25.0


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"intervals": []},
        {"video_duration": 100},
    ],
)
def test_post_progress_rejects_empty_report(client: TestClient, payload: dict) -> None:
    response = client.post("/progress/v1", json=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_post_progress_rejects_missing_duration(client: TestClient) -> None:
    response = client.post("/progress/unknown", json={"intervals": [{"start": 0, "end": 5}]})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "missing duration" in response.json()["error"]["message"]


def test_post_progress_rejects_wrong_shapes(client: TestClient) -> None:
    response = client.post("/progress/v1", json={"intervals": "0-10"})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["loc"] == ["body", "intervals"]


@pytest.mark.parametrize(
    "payload",
    [
        {"last_watched_position": True, "video_duration": 100},
        {"intervals": [], "last_watched_position": True, "video_duration": 100},
        {"last_watched_position": "30", "video_duration": 100},
        {"last_watched_position": 30, "video_duration": "100"},
    ],
)
def test_post_progress_rejects_non_numeric_numbers(
    client: TestClient, repo: InMemoryProgressRepository, payload: dict
) -> None:
    response = client.post("/progress/v1", json=payload)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert repo.rows == {}


def test_post_progress_accepts_integer_numbers(client: TestClient) -> None:
    response = client.post("/progress/v1", json={"last_watched_position": 30, "video_duration": 100})

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["last_watched_position"] == 30


def test_post_progress_conflict_returns_409(client: TestClient, repo: InMemoryProgressRepository) -> None:
    repo.seed(ProgressRecord(viewer_id=VIEWER, video_id="v1", video_duration=100))

    def concurrent_writer(_record: ProgressRecord) -> None:
        repo.rows[(VIEWER, "v1")].revision += 1

    repo.before_save = concurrent_writer

    response = client.post("/progress/v1", json={"intervals": [{"start": 0, "end": 5}]})

    assert response.status_code == status.HTTP_409_CONFLICT
    error = response.json()["error"]
    assert error["code"] == "CONFLICT_ERROR"
    assert error["details"] == {"video_id": "v1", "expected_revision": 1}


def test_list_progress_returns_viewer_records(client: TestClient) -> None:
    client.post("/progress/a", json={"last_watched_position": 1, "video_duration": 10})
    client.post("/progress/b", json={"last_watched_position": 2, "video_duration": 10})

    response = client.get("/progress")
    limited = client.get("/progress", params={"limit": 1})

    assert response.status_code == status.HTTP_200_OK
    assert sorted(item["video_id"] for item in response.json()) == ["a", "b"]
    assert len(limited.json()) == 1


def test_progress_requires_authentication(repo: InMemoryProgressRepository) -> None:
    app.dependency_overrides[get_progress_port] = lambda: repo
    try:
        response = TestClient(app).get("/progress/v1")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "AUTH_ERROR"


def test_progress_reads_viewer_from_bearer_token(repo: InMemoryProgressRepository) -> None:
    repo.seed(ProgressRecord(viewer_id="viewer-7", video_id="v1", video_duration=100, last_watched_position=12))
    app.dependency_overrides[get_progress_port] = lambda: repo
    try:
        client = TestClient(app)
        ok = client.get("/progress/v1", headers={"Authorization": f"Bearer {make_token('viewer-7')}"})
        expired = client.get(
            "/progress/v1",
            headers={"Authorization": f"Bearer {make_token('viewer-7', expires_in=timedelta(minutes=-5))}"},
        )
        forged = client.get("/progress/v1", headers={"Authorization": "Bearer not-a-jwt"})
    finally:
        app.dependency_overrides.clear()

    assert ok.status_code == status.HTTP_200_OK
    assert ok.json()["last_watched_position"] == 12
    assert expired.status_code == status.HTTP_401_UNAUTHORIZED
    assert forged.status_code == status.HTTP_401_UNAUTHORIZED
