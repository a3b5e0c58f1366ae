"""Tests for the FastAPI video API (clipwise/server/app.py).

WHY: The API is how hosts drive the pipeline. Status codes matter as
much as bodies: a poller that gets 200 instead of 409 on a busy video
will start a second run over the same work directory.

HOW: FastAPI TestClient in a ``with`` block (so the lifespan runs).
_run_video is patched so no pipeline runs; tests set video and clip
state directly through the store when they need a later state.

RULES:
- The model API and ffmpeg are never called
- Each test starts with an empty store whose work dirs live in tmp_path
- Storage is a LocalStorage under tmp_path
"""

from __future__ import annotations

import asyncio
import io
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

import clipwise.server.app as server
from clipwise import __version__
from clipwise.core.ir import HighlightCandidate
from clipwise.storage import LocalStorage
from clipwise.store import ClipStatus, VideoStatus

from conftest import caption_group, captions_answer


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_state(tmp_path, monkeypatch):
    server.video_store._videos.clear()
    monkeypatch.setattr(server.video_store, "_base_dir", tmp_path / "work")
    monkeypatch.setattr(server, "storage", LocalStorage(root=tmp_path / "store", public_base_url=""))
    yield
    server.video_store._videos.clear()


@pytest.fixture
def run_video():
    with patch("clipwise.server.app._run_video", new=AsyncMock()) as mock:
        yield mock


@pytest.fixture
def client(run_video):
    with TestClient(server.app) as test_client:
        yield test_client


def _upload(client, name="talk.mp4", **form):
    return client.post(
        "/videos",
        files={"file": (name, io.BytesIO(b"video bytes"), "video/mp4")},
        data=form,
    )


def _video_with_clip(captions=None, status=ClipStatus.READY):
    video = server.video_store.create_video("talk", source="/tmp/talk.mp4")
    clip = server.video_store.create_clip(video.id, HighlightCandidate(
        title="Hook", description="d", start_s=5.0, end_s=20.0,
        hook_text="el hook", score=90, tags=[],
    ))
    server.video_store.update_clip(video.id, clip.id, status=status, captions=captions)
    server.video_store.update_video(video.id, status=VideoStatus.READY)
    return video, clip


# ---------------------------------------------------------------------------
# POST /videos
# ---------------------------------------------------------------------------


class TestCreateVideo:

    def test_upload(self, client, run_video):
        resp = _upload(client, title="Mi charla", max_highlights="3")
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "uploaded"
        assert body["title"] == "Mi charla"
        assert body["processing"] is False

        video = server.video_store.get_video(body["id"])
        assert video.status == VideoStatus.UPLOADED
        assert video.config["max_highlights"] == 3
        assert (video.work_dir / "talk.mp4").read_bytes() == b"video bytes"
        run_video.assert_not_called()

    def test_auto_process_schedules_run(self, client, run_video):
        resp = _upload(client, auto_process="true")
        assert resp.status_code == 201
        video_id = resp.json()["id"]
        run_video.assert_called_once_with(video_id, "process")
        assert server.video_store.get_video(video_id).status == VideoStatus.TRANSCRIBING

    def test_source_url(self, client):
        resp = client.post("/videos", data={"source_url": "https://media.test/talk.mov?sig=1"})
        assert resp.status_code == 201
        assert resp.json()["title"] == "talk"
        video = server.video_store.get_video(resp.json()["id"])
        assert video.source == "https://media.test/talk.mov?sig=1"

    def test_unsupported_extension(self, client):
        resp = _upload(client, name="notes.txt")
        assert resp.status_code == 400
        assert "Unsupported file type" in resp.json()["detail"]

    def test_missing_input(self, client):
        assert client.post("/videos", data={"title": "x"}).status_code == 400

    def test_file_and_url(self, client):
        resp = _upload(client, source_url="https://media.test/a.mp4")
        assert resp.status_code == 400

    def test_non_http_url(self, client):
        resp = client.post("/videos", data={"source_url": "file:///etc/passwd"})
        assert resp.status_code == 400

    def test_invalid_options(self, client):
        resp = _upload(client, words_per_caption="7")
        assert resp.status_code == 400
        assert "max_words_per_segment" in resp.json()["detail"]

        resp = _upload(client, min_duration="90")
        assert resp.status_code == 400

    def test_store_full(self, client, monkeypatch):
        monkeypatch.setattr(server.video_store, "max_videos", 0)
        assert _upload(client).status_code == 429


# ---------------------------------------------------------------------------
# GET / DELETE /videos
# ---------------------------------------------------------------------------


class TestReadAndDelete:

    def test_get_video(self, client):
        video, clip = _video_with_clip()
        resp = client.get("/videos/{}".format(video.id))
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ready"
        assert body["has_transcript"] is False
        assert body["clips"][0]["id"] == clip.id
        assert body["clips"][0]["duration"] == 15.0
        assert body["clips"][0]["has_captions"] is False

    def test_get_unknown(self, client):
        assert client.get("/videos/nope").status_code == 404

    def test_list(self, client):
        _upload(client)
        _upload(client)
        assert len(client.get("/videos").json()) == 2

    def test_delete(self, client):
        video, _ = _video_with_clip()
        assert client.delete("/videos/{}".format(video.id)).status_code == 204
        assert client.get("/videos/{}".format(video.id)).status_code == 404
        assert not video.work_dir.exists()

    def test_delete_busy(self, client):
        video, _ = _video_with_clip()
        server.video_store.update_video(video.id, status=VideoStatus.PROCESSING)
        assert client.delete("/videos/{}".format(video.id)).status_code == 409


# ---------------------------------------------------------------------------
# Processing actions
# ---------------------------------------------------------------------------


class TestActions:

    def test_process(self, client, run_video):
        video_id = _upload(client).json()["id"]
        resp = client.post("/videos/{}/process".format(video_id))
        assert resp.status_code == 202
        assert resp.json()["action"] == "process"
        run_video.assert_called_once_with(video_id, "process")

    def test_process_twice_conflicts(self, client):
        video_id = _upload(client).json()["id"]
        client.post("/videos/{}/process".format(video_id))
        resp = client.post("/videos/{}/process".format(video_id))
        assert resp.status_code == 409
        assert "busy" in resp.json()["detail"]

    def test_process_finished_video_conflicts(self, client):
        video, _ = _video_with_clip()
        resp = client.post("/videos/{}/process".format(video.id))
        assert resp.status_code == 409
        assert "retry or regenerate" in resp.json()["detail"]

    def test_retry(self, client, run_video):
        video, _ = _video_with_clip()
        resp = client.post("/videos/{}/retry".format(video.id))
        assert resp.status_code == 202
        run_video.assert_called_once_with(video.id, "retry")
        assert video.status == VideoStatus.TRANSCRIBING

    def test_regenerate(self, client, run_video, sample_transcript):
        video, _ = _video_with_clip()
        video.transcript = sample_transcript
        resp = client.post("/videos/{}/regenerate".format(video.id))
        assert resp.status_code == 202
        run_video.assert_called_once_with(video.id, "regenerate")
        assert video.status == VideoStatus.PROCESSING

    def test_regenerate_without_transcript(self, client):
        video, _ = _video_with_clip()
        assert client.post("/videos/{}/regenerate".format(video.id)).status_code == 409

    def test_unknown_video(self, client):
        assert client.post("/videos/nope/retry").status_code == 404


# ---------------------------------------------------------------------------
# Clip downloads
# ---------------------------------------------------------------------------


class TestClipDownloads:

    def test_captions_track(self, client):
        payload = captions_answer([
            caption_group(("Hola", 0.0, 0.4), ("esto", 0.4, 0.8)),
            caption_group(("es", 0.8, 1.0), ("importante", 1.0, 1.7)),
        ])
        video, clip = _video_with_clip(captions=payload)
        resp = client.get("/videos/{}/clips/{}/captions.ass".format(video.id, clip.id))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/x-ssa")
        assert "{}-captions.ass".format(clip.id) in resp.headers["content-disposition"]
        assert resp.text.count("Dialogue:") == 4

    def test_captions_missing(self, client):
        video, clip = _video_with_clip()
        resp = client.get("/videos/{}/clips/{}/captions.ass".format(video.id, clip.id))
        assert resp.status_code == 409

    def test_clip_file(self, client, tmp_path):
        video, clip = _video_with_clip()
        rendered = tmp_path / "render.mp4"
        rendered.write_bytes(b"mp4 bytes")
        asyncio.run(server.storage.upload_clip(rendered, video.id, clip.id))

        resp = client.get("/videos/{}/clips/{}/file".format(video.id, clip.id))
        assert resp.status_code == 200
        assert resp.content == b"mp4 bytes"
        assert resp.headers["content-type"] == "video/mp4"

    def test_clip_file_not_ready(self, client):
        video, clip = _video_with_clip(status=ClipStatus.FAILED)
        assert client.get("/videos/{}/clips/{}/file".format(video.id, clip.id)).status_code == 409

    def test_clip_file_missing_from_storage(self, client):
        video, clip = _video_with_clip()
        assert client.get("/videos/{}/clips/{}/file".format(video.id, clip.id)).status_code == 404

    def test_unknown_clip(self, client):
        video, _ = _video_with_clip()
        assert client.get("/videos/{}/clips/nope/file".format(video.id)).status_code == 404


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": __version__}


def test_background_run_marks_setup_failure(monkeypatch):
    video = server.video_store.create_video("talk", source="/tmp/talk.mp4")

    async def no_key():
        raise ValueError("OPENAI_API_KEY is not set")

    monkeypatch.setattr(server, "shared_client", no_key)
    asyncio.run(server._run_video(video.id, "process"))

    assert video.status == VideoStatus.FAILED
    assert video.error == "OPENAI_API_KEY is not set"
