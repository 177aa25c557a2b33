import json
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from api.server import APIServerConfig, _is_loopback_host, create_app
from engine import MediaStoreFacade

API_KEY = "test-key-123"
HEADERS = {"X-API-Key": API_KEY}


def _noise_image(path: Path, seed: int) -> Path:
    pixels = (np.random.default_rng(seed).random((48, 48, 3)) * 255).astype(np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels, "RGB").save(path)
    return path


def _ndjson(response):
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def _client(facade: MediaStoreFacade) -> TestClient:
    config = APIServerConfig(facade=facade, api_key=API_KEY, cors_origins=[], app_version="test")
    return TestClient(create_app(config))


@pytest.fixture()
def facade(tmp_path):
    return MediaStoreFacade(working_dir=tmp_path / "work", settings={})


def test_health_needs_no_key(facade):
    client = _client(facade)

    response = client.get("/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["version"] == "test"
    assert body["library_root"] is None


def test_routes_require_api_key(facade):
    client = _client(facade)

    assert client.get("/v1/library/items").status_code == 401
    assert client.get("/v1/library/items", headers={"X-API-Key": "wrong"}).json() == {
        "error": "Invalid or missing API key."
    }


def test_missing_library_maps_to_503(facade):
    client = _client(facade)

    response = client.get("/v1/library/items", headers=HEADERS)

    assert response.status_code == 503
    assert response.json()["code"] == "storage_unavailable"
    assert response.json()["hint"]


def test_library_flow(facade, tmp_path):
    client = _client(facade)
    source = _noise_image(tmp_path / "incoming" / "cat.png", 1)

    root = client.put("/v1/library/root", json={"path": str(tmp_path / "library")}, headers=HEADERS)
    ingest = client.post("/v1/library/ingest", json={"source_path": str(source)}, headers=HEADERS)
    items = client.get("/v1/library/items", headers=HEADERS)
    usage = client.get("/v1/library/usage", headers=HEADERS)

    assert root.status_code == 200
    assert ingest.status_code == 200
    placed = ingest.json()["path"]
    assert ingest.json()["thumbnail"]["derived"] is True
    assert items.json()["total"] == 1
    assert items.json()["items"][0]["path"] == placed
    assert items.json()["items"][0]["kind"] == "image"
    assert usage.json()["image_count"] == 1

    thumb = client.post("/v1/thumbnails", json={"source_path": placed}, headers=HEADERS)
    assert thumb.json()["path"].endswith("cat_thumb.jpg")

    deleted = client.post("/v1/library/delete", json={"path": placed}, headers=HEADERS)
    assert deleted.json() == {"deleted": True}


def test_ingest_missing_source_is_404(facade, tmp_path):
    client = _client(facade)
    client.put("/v1/library/root", json={"path": str(tmp_path / "library")}, headers=HEADERS)

    response = client.post("/v1/library/ingest", json={"source_path": str(tmp_path / "nope.jpg")}, headers=HEADERS)

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_backup_stream_verify_and_restore(facade, tmp_path):
    client = _client(facade)
    client.put("/v1/library/root", json={"path": str(tmp_path / "library")}, headers=HEADERS)
    client.post("/v1/library/ingest", json={"source_path": str(_noise_image(tmp_path / "a.png", 3))}, headers=HEADERS)
    destination = tmp_path / "backups" / "lib.zip"

    response = client.post(
        "/v1/backup",
        json={"destination": str(destination), "part_count": 3, "metadata_blob": '{"v":1}'},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = _ndjson(response)
    assert events[-1]["type"] == "manifest"
    assert events[-1]["manifest"]["partCount"] == 3
    percents = [event["percent"] for event in events if event["type"] == "progress"]
    assert percents == sorted(percents)
    assert percents[-1] == 100

    verify = client.post("/v1/backup/verify", json={"archive_path": str(destination)}, headers=HEADERS)
    assert verify.json()["has_database"] is True
    assert len(verify.json()["parts"]) == 3

    restore = client.post(
        "/v1/restore",
        json={"archive_path": str(destination) + ".manifest.json", "target_dir": str(tmp_path / "restored")},
        headers=HEADERS,
    )
    assert restore.status_code == 200
    assert restore.json()["metadata_blob"] == '{"v":1}'
    assert restore.json()["restored_files"] == 2


def test_backup_failure_is_streamed_as_error(facade, tmp_path):
    client = _client(facade)
    client.put("/v1/library/root", json={"path": str(tmp_path / "library")}, headers=HEADERS)
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")

    response = client.post("/v1/backup", json={"destination": str(blocker / "lib.zip")}, headers=HEADERS)

    events = _ndjson(response)
    assert events[-1]["type"] == "error"
    assert events[-1]["code"] == "storage_unavailable"


def test_backup_without_library_is_503_before_streaming(facade, tmp_path):
    client = _client(facade)

    response = client.post("/v1/backup", json={"destination": str(tmp_path / "lib.zip")}, headers=HEADERS)

    assert response.status_code == 503
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["code"] == "storage_unavailable"


def test_backup_rejects_bad_part_count(facade, tmp_path):
    client = _client(facade)

    response = client.post("/v1/backup", json={"destination": str(tmp_path / "x.zip"), "part_count": 0}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid parameters"


def test_restore_of_missing_archive_is_422(facade, tmp_path):
    client = _client(facade)

    response = client.post(
        "/v1/restore",
        json={"archive_path": str(tmp_path / "gone.zip"), "target_dir": str(tmp_path / "out")},
        headers=HEADERS,
    )

    assert response.status_code == 422
    assert response.json()["code"] == "archive_corrupt"


def test_restore_requires_a_source(facade):
    client = _client(facade)

    response = client.post("/v1/restore", json={}, headers=HEADERS)

    assert response.status_code == 400


def test_duplicate_stream(facade, tmp_path):
    client = _client(facade)
    first = _noise_image(tmp_path / "a.png", 4)
    second = tmp_path / "b.png"
    second.write_bytes(first.read_bytes())
    third = _noise_image(tmp_path / "c.png", 5)

    response = client.post(
        "/v1/duplicates",
        json={"paths": [str(first), str(second), str(third)], "threshold": 95},
        headers=HEADERS,
    )

    events = _ndjson(response)
    assert events[-1]["type"] == "result"
    assert events[-1]["pairs"] == [{"first_id": str(first), "second_id": str(second), "similarity": 100}]


def test_duplicate_threshold_out_of_range(facade):
    client = _client(facade)

    response = client.post("/v1/duplicates", json={"paths": [], "threshold": 101}, headers=HEADERS)

    assert response.status_code == 400


def test_loopback_detection():
    assert _is_loopback_host("127.0.0.5")
    assert _is_loopback_host("::ffff:127.0.0.1")
    assert _is_loopback_host("[::1]")
    assert not _is_loopback_host("192.168.1.20")
