"""End-to-end video pipeline: transcript → highlights → captioned clips.

WHY: The stages are independent, but a host needs one operation that
drives a stored video through all of them, records progress and errors
on the store, and keeps one bad clip from taking down its siblings.

HOW: ClipPipeline holds the collaborators (model client, storage, media
engine, store) and three entry points:
  process(video_id)   : transcribe if needed, then highlights and clips
  retry(video_id)     : reset everything, then process
  regenerate(video_id): keep the transcript, redo highlights and clips
Clips run through a bounded pool (asyncio.Semaphore, width
settings.concurrency). Each clip's own work is strictly ordered:
window words → captions → render → upload.

RULES:
- Transcription or highlight failure marks the video FAILED with the
  error message and re-raises
- Per-clip failures become a ClipOutcome.failure and a FAILED clip
  record; siblings continue and the video still ends READY
- A caller-level timeout (settings.clip_timeout_s) bounds each clip;
  cancellation kills the media engine and reaps temp files
- The source is fetched once per run and discarded afterwards if it
  was downloaded
- Nothing is retried automatically
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import jsonschema

from clipwise.config import MAX_CONCURRENT_RENDERS, RENDER_TIMEOUT_S
from clipwise.core.captions import CaptionOptions, generate_captions
from clipwise.core.highlights import HighlightConstraints, detect_highlights
from clipwise.core.ir import CaptionsResult, Transcript
from clipwise.core.transcript import rebase_words, words_in_window
from clipwise.errors import CaptionValidationError, ClipwiseError, HighlightDetectionFailed
from clipwise.formatters.captions_json import captions_payload
from clipwise.media.ffmpeg import FFmpegEngine
from clipwise.media.render import RenderOptions, render_clip
from clipwise.media.source import fetch_source
from clipwise.storage import StorageBackend
from clipwise.store import ClipRecord, ClipStatus, Video, VideoStatus, VideoStore

if TYPE_CHECKING:
    from clipwise.api.client import OpenAIClient

logger = logging.getLogger(__name__)

THUMBNAIL_AT_S = 1.0


@dataclass
class PipelineSettings:
    """Everything a run can be tuned with.

    RULES:
    - concurrency >= 1 (1 means clips render one after another)
    - clip_timeout_s None disables the per-clip timeout
    - temp_dir None uses TEMP_DIR from config
    """

    highlights: HighlightConstraints = field(default_factory=HighlightConstraints)
    captions: CaptionOptions = field(default_factory=CaptionOptions)
    render: RenderOptions = field(default_factory=RenderOptions)
    concurrency: int = MAX_CONCURRENT_RENDERS
    clip_timeout_s: float | None = RENDER_TIMEOUT_S
    generate_thumbnails: bool = True
    temp_dir: str | None = None
    source_token: str | None = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")


@dataclass
class ClipOutcome:
    """Result of one clip's work: success with its URL, or the error."""

    clip_id: str
    title: str
    ok: bool
    storage_url: str | None = None
    thumbnail_url: str | None = None
    captions: CaptionsResult | None = None
    error: str | None = None

    @classmethod
    def success(
        cls,
        clip: ClipRecord,
        storage_url: str,
        captions: CaptionsResult | None,
        thumbnail_url: str | None = None,
    ) -> ClipOutcome:
        return cls(
            clip_id=clip.id,
            title=clip.title,
            ok=True,
            storage_url=storage_url,
            thumbnail_url=thumbnail_url,
            captions=captions,
        )

    @classmethod
    def failure(cls, clip: ClipRecord, error: str) -> ClipOutcome:
        return cls(clip_id=clip.id, title=clip.title, ok=False, error=error)


@dataclass
class PipelineResult:
    """Aggregate of one run; partial success is a valid result."""

    video_id: str
    outcomes: list[ClipOutcome] = field(default_factory=list)
    summary: str = ""
    main_topics: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ClipOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[ClipOutcome]:
        return [o for o in self.outcomes if not o.ok]


class ClipPipeline:
    """Drives stored videos through transcription, highlights and clips."""

    def __init__(
        self,
        client: OpenAIClient,
        storage: StorageBackend,
        store: VideoStore,
        engine: FFmpegEngine | None = None,
        settings: PipelineSettings | None = None,
    ) -> None:
        self.client = client
        self.storage = storage
        self.store = store
        self.engine = engine or FFmpegEngine()
        self.settings = settings or PipelineSettings()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process(
        self,
        video_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> PipelineResult:
        """Run the pipeline for a stored video.

        A video that already has a transcript skips transcription.

        Raises:
            KeyError: unknown video.
            ClipwiseError (or collaborator error): whole-run failure; the
                video is marked FAILED first.
        """
        video = self._require(video_id)
        try:
            source = await fetch_source(
                video.source, video.work_dir, bearer_token=self.settings.source_token
            )
        except ClipwiseError as exc:
            self._fail_video(video_id, str(exc))
            raise

        try:
            transcript = video.transcript
            if transcript is None:
                transcript = await self._transcribe(video, source.path, on_status)
            return await self._clips_from_transcript(video, transcript, source.path, on_status)
        except Exception as exc:
            if video.status != VideoStatus.FAILED:
                self._fail_video(video_id, str(exc) or type(exc).__name__)
            raise
        finally:
            source.discard()

    async def retry(
        self,
        video_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> PipelineResult:
        """Reset the video completely and run it again."""
        if self.store.reset_for_retry(video_id) is None:
            raise KeyError(video_id)
        return await self.process(video_id, on_status)

    async def regenerate(
        self,
        video_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> PipelineResult:
        """Drop the clips and redo highlights and clips from the stored transcript.

        Raises ValueError when the video has no transcript.
        """
        if self.store.reset_for_regenerate(video_id) is None:
            raise KeyError(video_id)
        return await self.process(video_id, on_status)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _require(self, video_id: str) -> Video:
        video = self.store.get_video(video_id)
        if video is None:
            raise KeyError(video_id)
        return video

    def _fail_video(self, video_id: str, message: str) -> None:
        logger.error("Video %s failed: %s", video_id, message)
        self.store.update_video(video_id, status=VideoStatus.FAILED, error=message)

    async def _transcribe(
        self,
        video: Video,
        source_path: Path,
        on_status: Callable[[str], None] | None,
    ) -> Transcript:
        self.store.update_video(video.id, status=VideoStatus.TRANSCRIBING)
        try:
            transcript = await self.client.transcribe(
                source_path, language=video.language, on_status=on_status
            )
        except Exception as exc:
            self._fail_video(video.id, "Transcription failed: {}".format(exc))
            raise
        self.store.set_transcript(video.id, transcript)
        return transcript

    async def _clips_from_transcript(
        self,
        video: Video,
        transcript: Transcript,
        source_path: Path,
        on_status: Callable[[str], None] | None,
    ) -> PipelineResult:
        self.store.update_video(video.id, status=VideoStatus.PROCESSING)
        try:
            highlights = await detect_highlights(
                transcript, self.client, self.settings.highlights, on_status=on_status
            )
        except HighlightDetectionFailed as exc:
            self._fail_video(video.id, str(exc))
            raise
        self.store.update_video(
            video.id, summary=highlights.summary, main_topics=highlights.main_topics
        )

        clips = [self.store.create_clip(video.id, h) for h in highlights.highlights]
        pool = asyncio.Semaphore(self.settings.concurrency)
        outcomes = await asyncio.gather(
            *(
                self._run_clip(video, transcript, clip, source_path, pool, idx, len(clips), on_status)
                for idx, clip in enumerate(clips, 1)
            )
        )

        self.store.update_video(video.id, status=VideoStatus.READY)
        result = PipelineResult(
            video_id=video.id,
            outcomes=list(outcomes),
            summary=highlights.summary,
            main_topics=highlights.main_topics,
        )
        logger.info(
            "Video %s ready: %d clip(s) ok, %d failed",
            video.id,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    async def _run_clip(
        self,
        video: Video,
        transcript: Transcript,
        clip: ClipRecord,
        source_path: Path,
        pool: asyncio.Semaphore,
        index: int,
        total: int,
        on_status: Callable[[str], None] | None,
    ) -> ClipOutcome:
        """One clip inside the pool; every clip error becomes an outcome."""
        async with pool:
            if on_status:
                on_status("Processing clip {}/{}: {}".format(index, total, clip.title))
            self.store.update_clip(video.id, clip.id, status=ClipStatus.GENERATING)
            try:
                outcome = await asyncio.wait_for(
                    self._produce_clip(video, transcript, clip, source_path),
                    timeout=self.settings.clip_timeout_s,
                )
            except asyncio.TimeoutError:
                message = "Clip processing timed out after {:g}s".format(
                    self.settings.clip_timeout_s
                )
                outcome = ClipOutcome.failure(clip, message)
            except (ClipwiseError, OSError, ValueError) as exc:
                outcome = ClipOutcome.failure(clip, str(exc))
            except Exception as exc:
                logger.exception("Unexpected error in clip %s (%s)", clip.id, clip.title)
                outcome = ClipOutcome.failure(clip, "{}: {}".format(type(exc).__name__, exc))

        if outcome.ok:
            self.store.update_clip(
                video.id,
                clip.id,
                status=ClipStatus.READY,
                storage_url=outcome.storage_url,
                thumbnail_url=outcome.thumbnail_url,
            )
            logger.info("Clip %s (%s) ready: %s", clip.id, clip.title, outcome.storage_url)
        else:
            self.store.update_clip(
                video.id, clip.id, status=ClipStatus.FAILED, error=outcome.error
            )
            logger.error("Clip %s (%s) failed: %s", clip.id, clip.title, outcome.error)
        return outcome

    async def _produce_clip(
        self,
        video: Video,
        transcript: Transcript,
        clip: ClipRecord,
        source_path: Path,
    ) -> ClipOutcome:
        settings = self.settings
        captions: CaptionsResult | None = None

        if settings.render.burn_captions:
            words = rebase_words(
                words_in_window(transcript.words, clip.start_s, clip.end_s), clip.start_s
            )
            options = dataclasses.replace(
                settings.captions,
                language=video.language or transcript.language or settings.captions.language,
            )
            captions = await generate_captions(words, self.client, options)
            if captions.segments:
                try:
                    payload = captions_payload(captions)
                except jsonschema.ValidationError as exc:
                    raise CaptionValidationError(exc.message) from exc
                self.store.update_clip(video.id, clip.id, captions=payload)

        clips_dir = video.work_dir / "clips"
        output = clips_dir / "{}.mp4".format(clip.id)
        await render_clip(
            self.engine,
            source_path,
            clip.start_s,
            clip.end_s,
            captions,
            output,
            settings.render,
            clip_id=clip.id,
            temp_dir=settings.temp_dir,
        )

        try:
            upload = await self.storage.upload_clip(output, video.id, clip.id)
            thumbnail_url = None
            if settings.generate_thumbnails:
                thumbnail_url = await self._thumbnail(video, clip, output)
        finally:
            output.unlink(missing_ok=True)

        return ClipOutcome.success(clip, upload.url, captions, thumbnail_url)

    async def _thumbnail(self, video: Video, clip: ClipRecord, clip_path: Path) -> str | None:
        """Grab and upload a thumbnail; a failure only costs the thumbnail."""
        thumb = clip_path.with_suffix(".jpg")
        try:
            await self.engine.thumbnail(
                clip_path,
                thumb,
                at_s=min(THUMBNAIL_AT_S, clip.duration_s / 2),
                width=self.settings.render.width,
                height=self.settings.render.height,
            )
            upload = await self.storage.upload_thumbnail(thumb, video.id, clip.id)
            return upload.url
        except ClipwiseError as exc:
            logger.warning("Thumbnail for clip %s failed: %s", clip.id, exc)
            return None
        finally:
            thumb.unlink(missing_ok=True)
