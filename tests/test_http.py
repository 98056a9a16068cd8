import pytest
from fastapi.testclient import TestClient

from localizer.errors import LocalizerError
from localizer.http_server import LocalizerHttpServer, status_code_for
from localizer.models import JobStatus


@pytest.fixture
def client(coordinator):
    return TestClient(LocalizerHttpServer(coordinator).app)


def submit(client, uploaded_video, **overrides):
    body = {
        "name": "promo",
        "video": uploaded_video,
        "texts": [{"text": "Summer sale", "start": 0.0, "end": 1.5}],
        "languages": ["HR", "IT"],
    }
    body.update(overrides)
    return client.post("/jobs", json=body)


def finished(client, coordinator, uploaded_video, **overrides):
    response = submit(client, uploaded_video, **overrides)
    assert response.status_code == 200
    job_id = response.json()["job_id"]
    assert coordinator.wait(job_id, timeout=10)
    return job_id


def test_health(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_health_reports_unreachable_store(client, store, monkeypatch):
    monkeypatch.setattr(store, "ping", lambda: False)
    assert client.get("/healthz").status_code == 503


def test_submit_and_poll(client, coordinator, uploaded_video):
    response = submit(client, uploaded_video)
    assert response.json()["status"] == "queued"
    job_id = response.json()["job_id"]
    assert coordinator.wait(job_id, timeout=10)

    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == JobStatus.DONE.value
    assert sorted(job["outputs"]) == ["HR", "IT"]
    assert job["progress"] == {"completed": 2, "total": 2, "current_language": ""}

    listing = client.get("/jobs").json()["jobs"]
    assert [j["id"] for j in listing] == [job_id]


def test_validation_errors_are_400(client, uploaded_video):
    response = submit(client, uploaded_video, texts=[])
    assert response.status_code == 400
    assert response.json()["detail"] == "Missing texts"


def test_malformed_body_is_422(client):
    assert client.post("/jobs", json={"video": "clip.mp4"}).status_code == 422


def test_unknown_job_is_404(client):
    assert client.get("/jobs/nope").status_code == 404
    assert client.post("/jobs/nope/cancel").status_code == 404


def test_download_video_and_archive(client, coordinator, uploaded_video):
    job_id = finished(client, coordinator, uploaded_video)

    video = client.get(f"/jobs/{job_id}/video/HR")
    assert video.status_code == 200
    assert video.headers["content-type"] == "video/mp4"
    assert video.content == b"fake video"
    assert client.get(f"/jobs/{job_id}/video/PL").status_code == 404

    archive = client.get(f"/jobs/{job_id}/zip")
    assert archive.status_code == 200
    assert archive.headers["content-type"] == "application/zip"


def test_cancel_finished_job_is_400(client, coordinator, uploaded_video):
    job_id = finished(client, coordinator, uploaded_video)
    assert client.post(f"/jobs/{job_id}/cancel").status_code == 400


def test_delete_by_other_author_is_403(client, coordinator, uploaded_video):
    job_id = finished(client, coordinator, uploaded_video, naming={"author": "ana"})

    assert client.request("DELETE", f"/jobs/{job_id}", json={"author": "marko"}).status_code == 403
    assert client.request("DELETE", f"/jobs/{job_id}", json={"author": "Ana"}).json() == {"ok": True}
    assert client.get(f"/jobs/{job_id}").status_code == 404


def test_delete_without_body(client, coordinator, uploaded_video):
    job_id = finished(client, coordinator, uploaded_video)
    assert client.delete(f"/jobs/{job_id}").status_code == 200


def test_analysis_endpoints(client, uploaded_video):
    segments = client.post("/analyze/text", json={"video": uploaded_video}).json()["segments"]
    assert segments[0]["text"] == "Detected"
    assert client.post("/analyze/scenes", json={"video": uploaded_video}).json() == {"scenes": []}
    assert client.post("/analyze/text", json={"video": "missing.mp4"}).status_code == 400


def test_translate_endpoint(client):
    response = client.post("/translate", json={"texts": ["Akcija"], "language": "German"})
    assert response.json() == {"translations": ["Akcija (German)"]}


def test_preview_endpoint(client, uploaded_video):
    response = client.post("/preview", json={
        "video": uploaded_video,
        "texts": [{"text": "Summer sale", "start": 0.0, "end": 1.0}],
    })
    assert response.status_code == 200
    assert response.json()["video"].endswith("preview-preview.mp4")


def test_unmapped_errors_are_500():
    assert status_code_for(LocalizerError("boom")) == 500
