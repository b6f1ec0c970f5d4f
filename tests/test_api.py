from __future__ import annotations

import io
import random
import time
import zipfile
from pathlib import Path
from typing import Iterator

import pytest
from conftest import FakeImageTool, FakeMetadataWriter, create_source_archive
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.dependencies import Services
from app.main import create_app
from app.services.job_manager import JobManager
from app.services.sessions import SessionRegistry
from app.services.store import JsonKeyValueStore, StoreConfigProvider, StoreStatistics


@pytest.fixture
def client(tmp_path: Path) -> Iterator[TestClient]:
    settings = Settings(
        storage_root=tmp_path / "storage",
        source_dir=tmp_path / "sources",
        store_path=tmp_path / "storage" / "store.json",
    )
    store = JsonKeyValueStore(settings.store_path)
    config_provider = StoreConfigProvider(store, default_folder_count=3)
    statistics = StoreStatistics(store)
    job_manager = JobManager(
        jobs_root=settings.jobs_root,
        temp_root=settings.temp_root,
        config_provider=config_provider,
        statistics=statistics,
        image_tool=FakeImageTool(),
        metadata_writer=FakeMetadataWriter(),
        sessions=SessionRegistry(retention=5),
        source_dir=settings.source_dir,
        rng=random.Random(1),
    )
    services = Services(job_manager=job_manager, config_provider=config_provider, statistics=statistics)
    with TestClient(create_app(settings, services)) as test_client:
        yield test_client


def _archive_bytes(tmp_path: Path, folders: dict) -> bytes:
    return create_source_archive(tmp_path / "upload" / "batch.zip", folders).read_bytes()


def _wait_for_job(client: TestClient, job_id: str, timeout: float = 10.0) -> dict:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/v1/jobs/{job_id}").json()
        if body["status"] in {"completed", "failed"}:
            return body
        time.sleep(0.05)
    raise AssertionError(f"job {job_id} did not finish")


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_upload_process_and_download(client: TestClient, tmp_path: Path) -> None:
    payload = _archive_bytes(tmp_path, {"alpha": 3, "beta": 3})

    response = client.post(
        "/api/v1/jobs",
        files=[("files", ("batch.zip", payload, "application/zip"))],
        data={"number_of_folders": "5"},
    )
    assert response.status_code == 201
    job_id = response.json()["job_id"]

    body = _wait_for_job(client, job_id)
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert body["selected_folders"] == 2
    assert body["processed_images"] == 6
    assert body["download_url"].endswith(f"/api/v1/jobs/{job_id}/download")

    download = client.get(f"/api/v1/jobs/{job_id}/download")
    assert download.status_code == 200
    with zipfile.ZipFile(io.BytesIO(download.content)) as bundle:
        assert {name.split("/")[0] for name in bundle.namelist()} == {"alpha", "beta"}

    stats = client.get("/api/v1/statistics").json()
    assert stats["images_processed"] == 6
    assert stats["files_sent"] == 1
    assert stats["total_source_files"] == 1
    assert stats["recent_activity"][0]["action"] == "image_processing"


def test_non_zip_upload_is_rejected(client: TestClient) -> None:
    response = client.post("/api/v1/jobs", files=[("files", ("photo.jpg", b"jpeg", "image/jpeg"))])

    assert response.status_code == 400
    assert ".zip" in response.json()["detail"]


def test_zero_folders_is_rejected(client: TestClient, tmp_path: Path) -> None:
    payload = _archive_bytes(tmp_path, {"alpha": 1})

    response = client.post(
        "/api/v1/jobs",
        files=[("files", ("batch.zip", payload, "application/zip"))],
        data={"number_of_folders": "0"},
    )

    assert response.status_code == 400


def test_job_without_sources_fails(client: TestClient) -> None:
    response = client.post("/api/v1/jobs", data={"number_of_folders": "2"})
    assert response.status_code == 201

    body = _wait_for_job(client, response.json()["job_id"])

    assert body["status"] == "failed"
    assert body["error"] == "No source archives found"
    assert client.get("/api/v1/statistics").json()["failed_operations"] == 1


def test_configured_source_directory_is_used(client: TestClient, tmp_path: Path) -> None:
    create_source_archive(tmp_path / "sources" / "library.zip", {"one": 2, "two": 2, "three": 2})

    response = client.post("/api/v1/jobs", data={"number_of_folders": "2"})
    body = _wait_for_job(client, response.json()["job_id"])

    assert body["status"] == "completed"
    assert body["selected_folders"] == 2
    assert body["processed_images"] == 4


def test_unknown_job_returns_404(client: TestClient) -> None:
    assert client.get("/api/v1/jobs/missing").status_code == 404
    assert client.get("/api/v1/jobs/missing/download").status_code == 404


def test_download_before_completion_conflicts(client: TestClient) -> None:
    job_id = client.post("/api/v1/jobs", data={"number_of_folders": "1"}).json()["job_id"]
    _wait_for_job(client, job_id)

    assert client.get(f"/api/v1/jobs/{job_id}/download").status_code == 409


def test_config_round_trip(client: TestClient) -> None:
    current = client.get("/api/v1/config").json()
    assert current["brightnessMin"] == -30
    assert current["enableRandomMetadata"] is True

    current["brightnessMin"] = -10
    current["enableVignette"] = True
    updated = client.put("/api/v1/config", json=current).json()

    assert updated["brightnessMin"] == -10
    assert client.get("/api/v1/config").json()["enableVignette"] is True


def test_socket_handshake_ping_and_bad_token(client: TestClient) -> None:
    with client.websocket_connect("/api/ws") as socket:
        hello = socket.receive_json()
        assert hello["type"] == "connected"
        assert hello["reconnectToken"]

        socket.send_json({"type": "ping", "timestamp": 1})
        assert socket.receive_json()["type"] == "pong"

        socket.send_json({"type": "reconnect", "token": "not-a-token"})
        assert socket.receive_json() == {"type": "error", "message": "Invalid reconnection token"}


def test_socket_resumes_with_earlier_token(client: TestClient) -> None:
    with client.websocket_connect("/api/ws") as first:
        token = first.receive_json()["reconnectToken"]

    with client.websocket_connect("/api/ws") as second:
        second.receive_json()
        second.send_json({"type": "reconnect", "token": token})
        assert second.receive_json()["type"] == "reconnected"

        second.send_json({"type": "reconnect", "token": token})
        assert second.receive_json()["type"] == "error"


def test_socket_subscribe(client: TestClient, tmp_path: Path) -> None:
    payload = _archive_bytes(tmp_path, {"alpha": 1})
    job_id = client.post(
        "/api/v1/jobs",
        files=[("files", ("batch.zip", payload, "application/zip"))],
        data={"number_of_folders": "1"},
    ).json()["job_id"]
    _wait_for_job(client, job_id)

    with client.websocket_connect("/api/ws") as socket:
        socket.receive_json()
        socket.send_json({"type": "subscribe", "jobId": "missing"})
        assert socket.receive_json() == {"type": "error", "message": "Job not found", "jobId": "missing"}

        socket.send_json({"type": "subscribe", "jobId": job_id})
        assert socket.receive_json() == {"type": "progress", "progress": 100, "jobId": job_id}


def test_socket_ignores_binary_frames(client: TestClient) -> None:
    with client.websocket_connect("/api/ws") as socket:
        socket.receive_json()
        socket.send_bytes(b"\x00\x01")
        socket.send_json({"type": "ping", "timestamp": 1})

        assert socket.receive_json()["type"] == "pong"
