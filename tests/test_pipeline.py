"""Tests for the end-to-end pipeline (clipwise/pipeline.py).

WHY: The pipeline decides which failures are fatal to the whole video
and which only cost one clip. Getting that wrong either loses every clip
because of one bad render or reports success for a run that produced
nothing.

HOW: FakeModelClient answers highlight and caption calls; FakeEngine
writes each stage's output file and can fail or hang for clips starting
at chosen source times. Storage is a LocalStorage under tmp_path.
"""

from __future__ import annotations

import asyncio

import pytest

from clipwise.core.captions import CaptionOptions
from clipwise.core.highlights import HighlightConstraints
from clipwise.errors import HighlightDetectionFailed, SourceUnavailable
from clipwise.media.render import RenderOptions
from clipwise.pipeline import ClipPipeline, PipelineSettings
from clipwise.storage import LocalStorage
from clipwise.store import ClipStatus, VideoStatus, VideoStore

from conftest import FakeEngine, FakeModelClient, caption_group, captions_answer, highlight_item


def _highlights_answer(*items):
    return {"highlights": list(items), "summary": "Una charla", "main_topics": ["hooks"]}


@pytest.fixture
def setup(tmp_path, sample_transcript):
    source = tmp_path / "talk.mp4"
    source.write_bytes(b"source")
    store = VideoStore(base_dir=tmp_path / "work")
    storage = LocalStorage(root=tmp_path / "store", public_base_url="https://cdn.test")
    client = FakeModelClient(transcript=sample_transcript)
    video = store.create_video("talk", source=str(source))
    return store, storage, client, video


def _pipeline(setup, tmp_path, engine, **overrides):
    store, storage, client, _ = setup
    settings = PipelineSettings(
        render=overrides.pop("render", RenderOptions(burn_captions=False)),
        temp_dir=str(tmp_path / "scratch"),
        **overrides,
    )
    return ClipPipeline(client, storage, store, engine=engine, settings=settings)


class TestProcess:

    def test_transcribes_then_renders(self, setup, tmp_path):
        store, storage, client, video = setup
        client.queue("highlights", _highlights_answer(
            highlight_item(5.0, 20.0, "A"), highlight_item(0.0, 16.0, "B"),
        ))
        engine = FakeEngine()
        statuses = []

        result = asyncio.run(_pipeline(setup, tmp_path, engine).process(video.id, statuses.append))

        assert client.transcribe_calls == 1
        assert video.status == VideoStatus.READY
        assert video.transcript is not None
        assert video.summary == "Una charla"
        assert [o.title for o in result.succeeded] == ["A", "B"]
        assert "Detecting highlights..." in statuses
        assert any(s.startswith("Processing clip 1/2") for s in statuses)

        for clip in video.clips:
            assert clip.status == ClipStatus.READY
            assert clip.storage_url == "https://cdn.test/videos/{}/clips/{}.mp4".format(video.id, clip.id)
            assert clip.thumbnail_url.endswith("/thumbnails/{}.jpg".format(clip.id))
            assert storage.clip_path(video.id, clip.id).read_bytes() == b"cropped"
        assert list((video.work_dir / "clips").iterdir()) == []
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_existing_transcript_skips_transcription(self, setup, tmp_path, sample_transcript):
        store, _, client, video = setup
        store.set_transcript(video.id, sample_transcript)
        client.queue("highlights", _highlights_answer(highlight_item(5.0, 20.0)))
        asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process(video.id))
        assert client.transcribe_calls == 0
        assert video.status == VideoStatus.READY

    def test_one_failed_clip_does_not_stop_siblings(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", _highlights_answer(
            highlight_item(5.0, 20.0, "good"), highlight_item(0.0, 16.0, "bad"),
        ))
        result = asyncio.run(_pipeline(setup, tmp_path, FakeEngine(fail_at={0.0})).process(video.id))

        assert video.status == VideoStatus.READY
        assert [o.title for o in result.succeeded] == ["good"]
        assert [o.title for o in result.failed] == ["bad"]
        bad = next(c for c in video.clips if c.title == "bad")
        assert bad.status == ClipStatus.FAILED
        assert bad.error == "FFmpeg extract stage failed: exit code 1"
        assert bad.storage_url is None

    def test_unexpected_clip_error_does_not_stop_siblings(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", _highlights_answer(
            highlight_item(5.0, 20.0, "broken"), highlight_item(0.0, 16.0, "fine"),
        ))

        class BrokenEngine(FakeEngine):
            async def crop_and_scale(self, source, dest, *args):
                if self.extracts[-1] == (5.0, 20.0):
                    raise RuntimeError("decoder crashed")
                await super().crop_and_scale(source, dest, *args)

        result = asyncio.run(_pipeline(setup, tmp_path, BrokenEngine(), concurrency=1).process(video.id))

        assert video.status == VideoStatus.READY
        assert [o.title for o in result.succeeded] == ["fine"]
        assert result.failed[0].error == "RuntimeError: decoder crashed"
        assert [c.status for c in video.clips] == [ClipStatus.FAILED, ClipStatus.READY]
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_clip_timeout(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", _highlights_answer(
            highlight_item(5.0, 20.0, "slow"), highlight_item(0.0, 16.0, "fast"),
        ))
        pipeline = _pipeline(setup, tmp_path, FakeEngine(hang_at={5.0}), clip_timeout_s=0.1)
        result = asyncio.run(pipeline.process(video.id))

        assert [o.title for o in result.succeeded] == ["fast"]
        assert "timed out" in result.failed[0].error
        assert list((tmp_path / "scratch").iterdir()) == []

    def test_concurrency_one_runs_in_order(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", _highlights_answer(
            highlight_item(5.0, 20.0), highlight_item(0.0, 16.0),
        ))
        engine = FakeEngine()
        asyncio.run(_pipeline(setup, tmp_path, engine, concurrency=1).process(video.id))
        assert engine.extracts == [(5.0, 20.0), (0.0, 16.0)]

    def test_transcription_failure_fails_video(self, setup, tmp_path):
        _, _, client, video = setup
        client.transcribe_error = RuntimeError("audio too long")
        with pytest.raises(RuntimeError):
            asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process(video.id))
        assert video.status == VideoStatus.FAILED
        assert video.error == "Transcription failed: audio too long"

    def test_highlight_failure_fails_video(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", RuntimeError("rate limited"))
        with pytest.raises(HighlightDetectionFailed):
            asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process(video.id))
        assert video.status == VideoStatus.FAILED
        assert "rate limited" in video.error
        assert video.clips == []

    def test_no_accepted_highlights_is_ready(self, setup, tmp_path):
        _, _, client, video = setup
        client.queue("highlights", _highlights_answer(highlight_item(0.0, 1.5)))
        result = asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process(video.id))
        assert result.outcomes == []
        assert video.status == VideoStatus.READY

    def test_missing_source_fails_video(self, setup, tmp_path):
        store, _, _, _ = setup
        video = store.create_video("gone", source=str(tmp_path / "missing.mp4"))
        with pytest.raises(SourceUnavailable, match="not found"):
            asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process(video.id))
        assert video.status == VideoStatus.FAILED

    def test_unknown_video(self, setup, tmp_path):
        with pytest.raises(KeyError):
            asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).process("nope"))


class TestCaptionedClip:

    def test_captions_burned_and_stored(self, setup, tmp_path, sample_transcript):
        store, _, client, video = setup
        store.set_transcript(video.id, sample_transcript)
        client.queue("highlights", _highlights_answer(highlight_item(5.0, 20.0)))
        client.queue("captions", captions_answer([
            caption_group(("hoy", 0, 1), ("hablamos", 0, 1), ("de", 0, 1)),
            caption_group(("virales", 0, 1), ("el", 0, 1), ("hook", 0, 1)),
            caption_group(("es", 0, 1), ("lo", 0, 1), ("mas", 0, 1)),
            caption_group(("importante", 0, 1), ("de", 0, 1), ("todo", 0, 1)),
        ]))
        engine = FakeEngine()
        pipeline = _pipeline(
            setup, tmp_path, engine,
            render=RenderOptions(),
            captions=CaptionOptions(max_words_per_segment=3),
        )

        result = asyncio.run(pipeline.process(video.id))

        outcome = result.succeeded[0]
        first = outcome.captions.segments[0]
        assert [w.text for w in first.words] == ["hoy", "hablamos", "de"]
        assert (first.start_s, first.end_s) == pytest.approx((0.2, 1.3))
        assert len(engine.subtitles) == 1
        assert engine.subtitles[0].count("Dialogue:") == 12

        clip = video.clips[0]
        assert clip.captions["captions"][0]["words"][0]["word"] == "hoy"
        assert client.calls[1]["schema_name"] == "captions"
        assert "[0.20s - 0.50s] hoy" in client.calls[1]["prompt"]

    def test_caption_failure_only_fails_clip(self, setup, tmp_path, sample_transcript):
        store, _, client, video = setup
        store.set_transcript(video.id, sample_transcript)
        client.queue("highlights", _highlights_answer(highlight_item(5.0, 20.0)))
        client.queue("captions", captions_answer([
            caption_group(("Bienvenidos", 0, 1), ("al", 1, 2)),
        ]))
        result = asyncio.run(_pipeline(setup, tmp_path, FakeEngine(), render=RenderOptions()).process(video.id))

        assert video.status == VideoStatus.READY
        assert "hallucinated" in result.failed[0].error
        assert video.clips[0].status == ClipStatus.FAILED


class TestRetryAndRegenerate:

    def test_retry_transcribes_again(self, setup, tmp_path, sample_transcript):
        store, _, client, video = setup
        store.set_transcript(video.id, sample_transcript)
        store.update_video(video.id, status=VideoStatus.FAILED, error="boom")
        client.queue("highlights", _highlights_answer(highlight_item(5.0, 20.0)))

        asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).retry(video.id))

        assert client.transcribe_calls == 1
        assert video.status == VideoStatus.READY
        assert video.error is None

    def test_regenerate_keeps_transcript(self, setup, tmp_path, sample_transcript):
        store, _, client, video = setup
        store.set_transcript(video.id, sample_transcript)
        client.queue(
            "highlights",
            _highlights_answer(highlight_item(5.0, 20.0, "first")),
            _highlights_answer(highlight_item(0.0, 16.0, "second")),
        )
        pipeline = _pipeline(setup, tmp_path, FakeEngine())
        asyncio.run(pipeline.process(video.id))
        asyncio.run(pipeline.regenerate(video.id))

        assert client.transcribe_calls == 0
        assert [c.title for c in video.clips] == ["second"]
        assert video.transcript is sample_transcript

    def test_regenerate_without_transcript(self, setup, tmp_path):
        _, _, _, video = setup
        with pytest.raises(ValueError):
            asyncio.run(_pipeline(setup, tmp_path, FakeEngine()).regenerate(video.id))


def test_settings_reject_zero_concurrency():
    with pytest.raises(ValueError, match="concurrency"):
        PipelineSettings(concurrency=0)


def test_constraints_flow_into_prompt(setup, tmp_path):
    _, _, client, video = setup
    client.queue("highlights", _highlights_answer())
    pipeline = _pipeline(
        setup, tmp_path, FakeEngine(),
        highlights=HighlightConstraints(max_highlights=2, min_duration_s=10, max_duration_s=30),
    )
    asyncio.run(pipeline.process(video.id))
    assert "10-30 seconds" in client.calls[0]["prompt"]
