"""FastAPI application with video/clip routes and OpenAPI docs.

WHY: Hosts (web front end, automation tools, curl) need an HTTP API to
register a video, start processing, poll progress, and fetch the
finished clips and their subtitle tracks. FastAPI provides automatic
OpenAPI documentation, request validation, and background task support.

HOW: The POST /videos endpoint accepts a multipart upload (or a source
URL) with processing options as form fields, registers the video in the
store and optionally schedules processing. Processing runs as an async
background task on the app's event loop, sharing one OpenAIClient.
Other endpoints provide polling, retry/regenerate, file download and
health.

RULES:
- All endpoints have OpenAPI descriptions on every parameter and response
- Error responses use a consistent ErrorResponse schema
- Background processing uses FastAPI BackgroundTasks
- The video store and storage backend are singletons created at import
- A busy video (uploading, transcribing, processing) rejects new work
  with 409
- File validation checks extension against SUPPORTED_VIDEO_FORMATS
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse, Response

from clipwise import __version__
from clipwise.api.client import close_shared_client, shared_client
from clipwise.config import SUPPORTED_VIDEO_FORMATS
from clipwise.core.captions import CaptionOptions
from clipwise.core.highlights import HighlightConstraints
from clipwise.core.ir import CaptionsResult
from clipwise.errors import CaptionValidationError
from clipwise.formatters.ass_karaoke import ASSKaraokeFormatter
from clipwise.media.render import RenderOptions
from clipwise.media.source import is_remote
from clipwise.pipeline import ClipPipeline, PipelineSettings
from clipwise.server.models import (
    ActionAcceptedResponse,
    ClipResponse,
    ErrorResponse,
    HealthResponse,
    VideoCreatedResponse,
    VideoResponse,
)
from clipwise.storage import LocalStorage
from clipwise.store import ClipRecord, ClipStatus, Video, VideoStatus, VideoStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

video_store = VideoStore()
storage = LocalStorage()

CLEANUP_INTERVAL_S = 300


async def _periodic_cleanup() -> None:
    """Run video cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_S)
        video_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup; cancel it and close the client on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    await close_shared_client()


app = FastAPI(
    lifespan=lifespan,
    title="Clipwise API",
    description=(
        "REST API for turning long videos into short vertical clips with "
        "word-highlighted captions. Register a video, start processing, "
        "poll for status, and download clips and subtitle tracks."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clip_to_response(clip: ClipRecord) -> ClipResponse:
    return ClipResponse(
        id=clip.id,
        title=clip.title,
        description=clip.description,
        start=clip.start_s,
        end=clip.end_s,
        duration=clip.duration_s,
        score=clip.score,
        hook_text=clip.hook_text,
        tags=clip.tags,
        status=clip.status.value,
        storage_url=clip.storage_url,
        thumbnail_url=clip.thumbnail_url,
        has_captions=bool(clip.captions and clip.captions.get("captions")),
        error=clip.error,
    )


def _video_to_response(video: Video) -> VideoResponse:
    """Convert an internal Video dataclass to a VideoResponse Pydantic model."""
    return VideoResponse(
        id=video.id,
        title=video.title,
        status=video.status.value,
        created_at=video.created_at,
        updated_at=video.updated_at,
        completed_at=video.completed_at,
        language=video.language,
        duration=video.duration_s,
        has_transcript=video.transcript is not None,
        summary=video.summary,
        main_topics=video.main_topics,
        config=video.config,
        error=video.error,
        clips=[_clip_to_response(c) for c in video.clips],
    )


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_VIDEO_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_VIDEO_FORMATS))
            ),
        )


def _settings_from_config(config: dict[str, Any]) -> PipelineSettings:
    """Build PipelineSettings from a video's stored options (ValueError on bad values)."""
    return PipelineSettings(
        highlights=HighlightConstraints(
            max_highlights=config.get("max_highlights", 5),
            min_duration_s=config.get("min_duration", 15.0),
            max_duration_s=config.get("max_duration", 60.0),
            audience_hint=config.get("audience") or "",
            content_type_hint=config.get("content_type") or "",
        ),
        captions=CaptionOptions(
            max_words_per_segment=config.get("words_per_caption", 3),
            emphasize_keywords=config.get("emphasis", True),
            include_hook=config.get("hook", True),
            language=config.get("language") or "en",
        ),
        render=RenderOptions(
            crop_to_vertical=config.get("crop", True),
            burn_captions=config.get("captions", True),
            position=config.get("position", "center"),
        ),
    )


def _require_video(video_id: str) -> Video:
    video = video_store.get_video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found: {}".format(video_id))
    return video


def _require_clip(video_id: str, clip_id: str) -> ClipRecord:
    video = _require_video(video_id)
    clip = video.get_clip(clip_id)
    if clip is None:
        raise HTTPException(status_code=404, detail="Clip not found: {}".format(clip_id))
    return clip


def _reject_if_busy(video: Video) -> None:
    if video.busy:
        raise HTTPException(
            status_code=409,
            detail="Video is busy (current status: {}).".format(video.status.value),
        )


async def _run_video(video_id: str, action: str) -> None:
    """Run process/retry/regenerate for a video in the background.

    RULES:
    - The pipeline marks the video FAILED on whole-run errors
    - Errors raised before the pipeline starts (settings, API key) mark
      the video FAILED here
    - Exceptions are logged, never propagated to the server
    """
    video = video_store.get_video(video_id)
    if video is None:
        return
    try:
        settings = _settings_from_config(video.config)
        client = await shared_client()
        pipeline = ClipPipeline(
            client=client, storage=storage, store=video_store, settings=settings
        )
        result = await getattr(pipeline, action)(video_id)
        logger.info(
            "Video %s %s finished: %d ready, %d failed",
            video_id, action, len(result.succeeded), len(result.failed),
        )
    except Exception as exc:
        logger.exception("Video pipeline (%s) failed for video %s", action, video_id)
        current = video_store.get_video(video_id)
        if current is not None and current.status != VideoStatus.FAILED:
            video_store.update_video(
                video_id, status=VideoStatus.FAILED, error=str(exc) or type(exc).__name__
            )


def _schedule(background_tasks: BackgroundTasks, video: Video, action: str) -> None:
    """Mark the video busy right away so a second request gets 409."""
    busy_status = VideoStatus.TRANSCRIBING
    if action == "regenerate" or (action == "process" and video.transcript is not None):
        busy_status = VideoStatus.PROCESSING
    video_store.update_video(video.id, status=busy_status)
    background_tasks.add_task(_run_video, video.id, action)


# ---------------------------------------------------------------------------
# Endpoints: Videos
# ---------------------------------------------------------------------------


@app.post(
    "/videos",
    response_model=VideoCreatedResponse,
    status_code=201,
    tags=["videos"],
    summary="Register a video",
    description=(
        "Upload a video file (or give a source URL) with processing options. "
        "Returns a video ID immediately. With auto_process, processing starts "
        "in the background; poll GET /videos/{id} for status updates."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or options"},
        429: {"model": ErrorResponse, "description": "Too many videos stored"},
    },
)
async def create_video(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile | None,
        File(description="Video file to process."),
    ] = None,
    source_url: Annotated[
        str | None,
        Form(description="http(s) URL of the video, instead of uploading a file."),
    ] = None,
    title: Annotated[
        str | None,
        Form(description="Video title. Defaults to the file name."),
    ] = None,
    language: Annotated[
        str | None,
        Form(description="ISO 639-1 language code (e.g. 'en', 'es'). Detected when omitted."),
    ] = None,
    max_highlights: Annotated[
        int, Form(description="Maximum number of clips.")
    ] = 5,
    min_duration: Annotated[
        float, Form(description="Minimum clip length in seconds.")
    ] = 15.0,
    max_duration: Annotated[
        float, Form(description="Maximum clip length in seconds.")
    ] = 60.0,
    audience: Annotated[
        str | None, Form(description="Target audience hint for highlight scoring.")
    ] = None,
    content_type: Annotated[
        str | None, Form(description="Content type hint, e.g. 'podcast'.")
    ] = None,
    words_per_caption: Annotated[
        int, Form(description="Maximum words per caption line (2-4).")
    ] = 3,
    captions: Annotated[
        bool, Form(description="Generate and burn in captions.")
    ] = True,
    crop: Annotated[
        bool, Form(description="Crop to 9:16 and scale to 1080x1920.")
    ] = True,
    position: Annotated[
        str, Form(description="Crop anchor for tall sources: top, center or bottom.")
    ] = "center",
    auto_process: Annotated[
        bool, Form(description="Start processing immediately.")
    ] = False,
) -> VideoCreatedResponse:
    if file is None and not source_url:
        raise HTTPException(status_code=400, detail="Provide a file or a source_url")
    if file is not None and source_url:
        raise HTTPException(status_code=400, detail="Provide either a file or a source_url, not both")

    if file is not None:
        # Sanitize filename to prevent path traversal
        filename = Path(file.filename or "upload.mp4").name
        _validate_file_extension(filename)
        default_title = Path(filename).stem
    else:
        if not is_remote(source_url):
            raise HTTPException(status_code=400, detail="source_url must be an http(s) URL")
        filename = ""
        default_title = Path(source_url.split("?", 1)[0]).stem or "video"

    config = {
        "language": language,
        "max_highlights": max_highlights,
        "min_duration": min_duration,
        "max_duration": max_duration,
        "audience": audience,
        "content_type": content_type,
        "words_per_caption": words_per_caption,
        "captions": captions,
        "crop": crop,
        "position": position,
    }
    try:
        _settings_from_config(config)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    initial_status = VideoStatus.UPLOADING if file is not None else VideoStatus.UPLOADED
    try:
        video = video_store.create_video(
            title=title or default_title,
            source=source_url or "",
            status=initial_status,
            language=language,
            config=config,
        )
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    if file is not None:
        input_path = video.work_dir / filename
        content = await file.read()
        input_path.write_bytes(content)
        video_store.update_video(video.id, status=VideoStatus.UPLOADED, source=str(input_path))

    if auto_process:
        _schedule(background_tasks, video, "process")

    return VideoCreatedResponse(
        id=video.id,
        status=VideoStatus.UPLOADED.value,
        title=video.title,
        processing=auto_process,
    )


@app.get(
    "/videos",
    response_model=list[VideoResponse],
    tags=["videos"],
    summary="List videos",
    description="Returns all stored videos, oldest first.",
)
async def list_videos() -> list[VideoResponse]:
    return [_video_to_response(v) for v in video_store.list_videos()]


@app.get(
    "/videos/{video_id}",
    response_model=VideoResponse,
    tags=["videos"],
    summary="Get video status",
    description=(
        "Poll this endpoint to track processing. Returns the current status, "
        "summary, and clips with their individual states."
    ),
    responses={404: {"model": ErrorResponse, "description": "Video not found"}},
)
async def get_video(video_id: str) -> VideoResponse:
    return _video_to_response(_require_video(video_id))


@app.delete(
    "/videos/{video_id}",
    status_code=204,
    tags=["videos"],
    summary="Delete a video",
    description="Delete a video, its clips, and all stored files.",
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Video is being processed"},
    },
)
async def delete_video(video_id: str) -> Response:
    _reject_if_busy(_require_video(video_id))
    video_store.delete_video(video_id)
    await storage.delete_video(video_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Processing
# ---------------------------------------------------------------------------


@app.post(
    "/videos/{video_id}/process",
    response_model=ActionAcceptedResponse,
    status_code=202,
    tags=["processing"],
    summary="Start processing a video",
    description=(
        "Transcribe (unless a transcript is stored), select highlights and "
        "render captioned clips in the background."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Video is busy or already processed"},
    },
)
async def process_video(video_id: str, background_tasks: BackgroundTasks) -> ActionAcceptedResponse:
    video = _require_video(video_id)
    _reject_if_busy(video)
    if video.status not in (VideoStatus.UPLOADED, VideoStatus.TRANSCRIBED):
        raise HTTPException(
            status_code=409,
            detail="Video already processed (status: {}); use retry or regenerate.".format(
                video.status.value
            ),
        )
    _schedule(background_tasks, video, "process")
    return ActionAcceptedResponse(id=video.id, action="process", status=video.status.value)


@app.post(
    "/videos/{video_id}/retry",
    response_model=ActionAcceptedResponse,
    status_code=202,
    tags=["processing"],
    summary="Retry a video from scratch",
    description="Drop transcript and clips, then run the whole pipeline again.",
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Video is busy"},
    },
)
async def retry_video(video_id: str, background_tasks: BackgroundTasks) -> ActionAcceptedResponse:
    video = _require_video(video_id)
    _reject_if_busy(video)
    _schedule(background_tasks, video, "retry")
    return ActionAcceptedResponse(id=video.id, action="retry", status=video.status.value)


@app.post(
    "/videos/{video_id}/regenerate",
    response_model=ActionAcceptedResponse,
    status_code=202,
    tags=["processing"],
    summary="Regenerate clips",
    description="Keep the stored transcript; redo highlight selection and clips.",
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Video is busy or has no transcript"},
    },
)
async def regenerate_clips(video_id: str, background_tasks: BackgroundTasks) -> ActionAcceptedResponse:
    video = _require_video(video_id)
    _reject_if_busy(video)
    if video.transcript is None:
        raise HTTPException(status_code=409, detail="Video has no transcript; use process or retry.")
    _schedule(background_tasks, video, "regenerate")
    return ActionAcceptedResponse(id=video.id, action="regenerate", status=video.status.value)


# ---------------------------------------------------------------------------
# Endpoints: Clips
# ---------------------------------------------------------------------------


@app.get(
    "/videos/{video_id}/clips/{clip_id}/captions.ass",
    tags=["clips"],
    summary="Download a clip's subtitle track",
    description="ASS subtitle track with per-word highlighting, built from the stored captions.",
    responses={
        404: {"model": ErrorResponse, "description": "Video or clip not found"},
        409: {"model": ErrorResponse, "description": "Clip has no captions"},
    },
)
async def download_clip_captions(video_id: str, clip_id: str) -> Response:
    clip = _require_clip(video_id, clip_id)
    if not clip.captions or not clip.captions.get("captions"):
        raise HTTPException(status_code=409, detail="Clip has no captions.")

    try:
        outputs = ASSKaraokeFormatter().format(CaptionsResult.from_dict(clip.captions))
    except (CaptionValidationError, ValueError) as exc:
        raise HTTPException(status_code=409, detail="Stored captions are invalid: {}".format(exc))

    output = outputs[0]
    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={
            "Content-Disposition": 'attachment; filename="{}{}"'.format(clip_id, output.suffix)
        },
    )


@app.get(
    "/videos/{video_id}/clips/{clip_id}/file",
    tags=["clips"],
    summary="Download a rendered clip",
    description="The rendered MP4 for a clip whose status is 'ready'.",
    responses={
        404: {"model": ErrorResponse, "description": "Video, clip or file not found"},
        409: {"model": ErrorResponse, "description": "Clip not ready"},
    },
)
async def download_clip_file(video_id: str, clip_id: str) -> FileResponse:
    clip = _require_clip(video_id, clip_id)
    if clip.status != ClipStatus.READY:
        raise HTTPException(
            status_code=409,
            detail="Clip is not ready (current status: {}).".format(clip.status.value),
        )
    path = storage.clip_path(video_id, clip_id)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Clip file not found in storage.")
    return FileResponse(path, media_type="video/mp4", filename="{}.mp4".format(clip_id))


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for the clipwise-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
