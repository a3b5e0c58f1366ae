"""In-memory video/clip store with TTL cleanup.

WHY: The pipeline and the HTTP API both track a video through its
lifecycle (uploaded → transcribing → transcribed → processing → ready |
failed) together with its transcript and the clips cut from it. Runs
are long (minutes), so the API answers immediately and reads state from
here while the work continues in the background. An in-memory store is
sufficient for a single-host deployment with no persistence requirement.

HOW: Four components work together:
  VideoStatus / ClipStatus: enums of valid states
  ClipRecord              : one accepted highlight and its render outcome
  Video                   : the aggregate: source, transcript, clips
  VideoStore              : thread-safe dict-based store with
                             create/update/get/list/delete, retry and
                             regenerate resets, and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock
- Each video gets a dedicated work directory, removed with the video
- A video owns its transcript (1:1) and clips (1:many); deleting the
  video drops both
- Failed videos and clips keep their error message
- A READY video may hold FAILED clips (partial success)
- Video and clip IDs are UUID4 hex strings generated at creation time
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from clipwise.config import TEMP_DIR
from clipwise.core.ir import HighlightCandidate, Transcript

logger = logging.getLogger(__name__)

# Default time-to-live for ready/failed videos (seconds)
DEFAULT_TTL_SECONDS = 24 * 3600


class VideoStatus(str, enum.Enum):
    """Valid states for a video.

    RULES:
    - uploading: source file being received
    - uploaded: source available, nothing processed
    - transcribing: speech-to-text running
    - transcribed: transcript stored, no clips yet
    - processing: highlights detected, clips rendering
    - ready: run finished (some clips may have failed)
    - failed: transcription or highlight detection failed
    """

    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


TERMINAL_VIDEO_STATUSES = (VideoStatus.READY, VideoStatus.FAILED)
BUSY_VIDEO_STATUSES = (VideoStatus.UPLOADING, VideoStatus.TRANSCRIBING, VideoStatus.PROCESSING)


class ClipStatus(str, enum.Enum):
    """Valid states for a clip: pending → generating → ready | failed."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ClipRecord:
    """One accepted highlight and what became of it.

    RULES:
    - start_s/end_s are source-video seconds
    - captions holds the validated caption payload (captions JSON shape)
    - storage_url is set only when status is READY
    """

    id: str
    video_id: str
    title: str
    description: str
    start_s: float
    end_s: float
    score: float
    hook_text: str = ""
    tags: list[str] = field(default_factory=list)
    status: ClipStatus = ClipStatus.PENDING
    captions: dict[str, Any] | None = None
    storage_url: str | None = None
    thumbnail_url: str | None = None
    error: str | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s


@dataclass
class Video:
    """A source video, its transcript, and its clips.

    RULES:
    - source is a local path or an http(s) URL
    - work_dir holds scratch files and rendered clips for this video
    - completed_at is set when status becomes READY or FAILED
    """

    id: str
    title: str
    source: str
    work_dir: Path
    status: VideoStatus
    created_at: float
    updated_at: float
    language: str | None = None
    duration_s: float | None = None
    completed_at: float | None = None
    error: str | None = None
    transcript: Transcript | None = None
    summary: str = ""
    main_topics: list[str] = field(default_factory=list)
    clips: list[ClipRecord] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def busy(self) -> bool:
        return self.status in BUSY_VIDEO_STATUSES

    def get_clip(self, clip_id: str) -> ClipRecord | None:
        return next((c for c in self.clips if c.id == clip_id), None)


class VideoStore:
    """Thread-safe in-memory store for videos and their clips.

    RULES:
    - All public methods that mutate state acquire self._lock
    - get_* return None for unknown IDs (no exceptions)
    - Returned objects are the live instances (not copies)
    - delete_video() and cleanup_expired() remove work directories
      outside the lock
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_videos: int = 100,
        base_dir: str | Path | None = None,
    ) -> None:
        self._videos: dict[str, Video] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_videos = max_videos
        self._base_dir = Path(base_dir or TEMP_DIR)

    # ------------------------------------------------------------------
    # Videos
    # ------------------------------------------------------------------

    def create_video(
        self,
        title: str,
        source: str = "",
        status: VideoStatus = VideoStatus.UPLOADED,
        language: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> Video:
        """Create a video with a dedicated work directory.

        Raises ValueError when max_videos is reached.
        """
        with self._lock:
            if len(self._videos) >= self.max_videos:
                raise ValueError(
                    "Maximum number of videos ({}) reached".format(self.max_videos)
                )
            video_id = uuid.uuid4().hex
            now = time.time()
            self._base_dir.mkdir(parents=True, exist_ok=True)
            work_dir = Path(tempfile.mkdtemp(prefix="clipwise_video_", dir=self._base_dir))
            video = Video(
                id=video_id,
                title=title,
                source=source,
                work_dir=work_dir,
                status=status,
                created_at=now,
                updated_at=now,
                language=language,
                config=config or {},
            )
            self._videos[video_id] = video

        logger.info("Created video %s (%s)", video_id, title)
        return video

    def get_video(self, video_id: str) -> Video | None:
        with self._lock:
            return self._videos.get(video_id)

    def list_videos(self) -> list[Video]:
        """All videos, oldest first."""
        with self._lock:
            return sorted(self._videos.values(), key=lambda v: v.created_at)

    def update_video(
        self,
        video_id: str,
        status: VideoStatus | None = None,
        error: str | None = None,
        source: str | None = None,
        duration_s: float | None = None,
        summary: str | None = None,
        main_topics: list[str] | None = None,
    ) -> Video | None:
        """Apply the non-None fields; returns None for unknown IDs."""
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            now = time.time()
            if status is not None:
                video.status = status
            if error is not None:
                video.error = error
            if source is not None:
                video.source = source
            if duration_s is not None:
                video.duration_s = duration_s
            if summary is not None:
                video.summary = summary
            if main_topics is not None:
                video.main_topics = list(main_topics)
            video.updated_at = now
            if video.status in TERMINAL_VIDEO_STATUSES:
                video.completed_at = now
            return video

    def set_transcript(self, video_id: str, transcript: Transcript) -> Video | None:
        """Attach the transcript and move the video to TRANSCRIBED."""
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            video.transcript = transcript
            video.status = VideoStatus.TRANSCRIBED
            if not video.duration_s:
                video.duration_s = transcript.duration_s
            video.updated_at = time.time()
            return video

    def reset_for_retry(self, video_id: str) -> Video | None:
        """Drop transcript, clips and error so the whole run can restart."""
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            video.transcript = None
            video.clips = []
            video.summary = ""
            video.main_topics = []
            video.error = None
            video.completed_at = None
            video.status = VideoStatus.UPLOADED
            video.updated_at = time.time()
        logger.info("Reset video %s for retry", video_id)
        return video

    def reset_for_regenerate(self, video_id: str) -> Video | None:
        """Drop clips but keep the transcript, back to TRANSCRIBED.

        Raises ValueError when the video has no transcript.
        """
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            if video.transcript is None:
                raise ValueError("Video {} has no transcript to regenerate from".format(video_id))
            video.clips = []
            video.summary = ""
            video.main_topics = []
            video.error = None
            video.completed_at = None
            video.status = VideoStatus.TRANSCRIBED
            video.updated_at = time.time()
        logger.info("Reset video %s for clip regeneration", video_id)
        return video

    def delete_video(self, video_id: str) -> bool:
        """Delete a video with its clips and work directory."""
        with self._lock:
            video = self._videos.pop(video_id, None)
        if video is None:
            return False
        self._cleanup_work_dir(video.work_dir)
        logger.info("Deleted video %s", video_id)
        return True

    def cleanup_expired(self) -> int:
        """Remove READY/FAILED videos older than the TTL; returns the count."""
        now = time.time()
        expired: list[Video] = []
        with self._lock:
            for video_id, video in list(self._videos.items()):
                if video.status not in TERMINAL_VIDEO_STATUSES or video.completed_at is None:
                    continue
                if now - video.completed_at > self._ttl_seconds:
                    expired.append(self._videos.pop(video_id))

        for video in expired:
            self._cleanup_work_dir(video.work_dir)
            logger.info("Expired video %s (finished %.0fs ago)", video.id, now - video.completed_at)
        return len(expired)

    # ------------------------------------------------------------------
    # Clips
    # ------------------------------------------------------------------

    def create_clip(self, video_id: str, candidate: HighlightCandidate) -> ClipRecord | None:
        """Record an accepted highlight as a PENDING clip."""
        with self._lock:
            video = self._videos.get(video_id)
            if video is None:
                return None
            clip = ClipRecord(
                id=uuid.uuid4().hex,
                video_id=video_id,
                title=candidate.title,
                description=candidate.description,
                start_s=candidate.start_s,
                end_s=candidate.end_s,
                score=candidate.score,
                hook_text=candidate.hook_text,
                tags=list(candidate.tags),
            )
            video.clips.append(clip)
            video.updated_at = time.time()
            return clip

    def get_clip(self, video_id: str, clip_id: str) -> ClipRecord | None:
        with self._lock:
            video = self._videos.get(video_id)
            return video.get_clip(clip_id) if video else None

    def update_clip(
        self,
        video_id: str,
        clip_id: str,
        status: ClipStatus | None = None,
        error: str | None = None,
        captions: dict[str, Any] | None = None,
        storage_url: str | None = None,
        thumbnail_url: str | None = None,
    ) -> ClipRecord | None:
        """Apply the non-None fields; returns None for unknown IDs."""
        with self._lock:
            video = self._videos.get(video_id)
            clip = video.get_clip(clip_id) if video else None
            if clip is None:
                return None
            if status is not None:
                clip.status = status
            if error is not None:
                clip.error = error
            if captions is not None:
                clip.captions = captions
            if storage_url is not None:
                clip.storage_url = storage_url
            if thumbnail_url is not None:
                clip.thumbnail_url = thumbnail_url
            clip.updated_at = time.time()
            return clip

    @staticmethod
    def _cleanup_work_dir(work_dir: Path) -> None:
        """Best-effort removal of a video's work directory."""
        if work_dir.exists():
            try:
                shutil.rmtree(work_dir)
            except OSError:
                logger.warning("Failed to clean up work dir: %s", work_dir)
