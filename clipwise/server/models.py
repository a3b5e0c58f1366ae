"""Pydantic response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for response serialization
and automatic OpenAPI documentation. Pydantic models enforce field types
at runtime and generate JSON Schema that appears in the /docs UI.

HOW: One model per resource (video, clip) plus small envelopes for
creation, accepted actions, errors and health. All models include Field
descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Status values are the store enums' string values
- Response models never expose work directories or local paths
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ClipResponse(BaseModel):
    """One clip cut from a video."""

    id: str = Field(description="Unique clip identifier (UUID hex).")
    title: str = Field(description="Short title proposed for the clip.")
    description: str = Field(description="Why this moment was selected.")
    start: float = Field(description="Clip start in source-video seconds.")
    end: float = Field(description="Clip end in source-video seconds.")
    duration: float = Field(description="Clip length in seconds.")
    score: float = Field(description="Virality score, 0-100.")
    hook_text: str = Field(default="", description="Opening hook text for the clip.")
    tags: list[str] = Field(default_factory=list, description="Topic tags.")
    status: str = Field(description="Clip status: pending, generating, ready or failed.")
    storage_url: str | None = Field(
        default=None,
        description="URL of the rendered clip, only present when status is 'ready'.",
    )
    thumbnail_url: str | None = Field(default=None, description="URL of the clip thumbnail.")
    has_captions: bool = Field(description="Whether caption data is stored for the clip.")
    error: str | None = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )


class VideoResponse(BaseModel):
    """A video with its processing state and clips.

    RULES:
    - error is only set when status is 'failed'
    - clips may mix ready and failed entries when status is 'ready'
    """

    id: str = Field(description="Unique video identifier (UUID hex).")
    title: str = Field(description="Video title.")
    status: str = Field(description="Current video status.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    updated_at: float = Field(description="Last update timestamp (Unix epoch seconds).")
    completed_at: float | None = Field(
        default=None, description="When the video reached 'ready' or 'failed'."
    )
    language: str | None = Field(default=None, description="Language of the video.")
    duration: float | None = Field(default=None, description="Video duration in seconds.")
    has_transcript: bool = Field(description="Whether a transcript is stored.")
    summary: str = Field(default="", description="Summary of the whole video.")
    main_topics: list[str] = Field(default_factory=list, description="Main topics of the video.")
    config: dict[str, Any] = Field(description="Processing options for this video.")
    error: str | None = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    clips: list[ClipResponse] = Field(default_factory=list, description="Clips cut from the video.")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "title": "episode-12",
                "status": "processing",
                "created_at": 1739959200.0,
                "updated_at": 1739959260.0,
                "completed_at": None,
                "language": "en",
                "duration": 1843.2,
                "has_transcript": True,
                "summary": "",
                "main_topics": [],
                "config": {"max_highlights": 5, "words_per_caption": 3},
                "error": None,
                "clips": [],
            }
        ]
    }}


class VideoCreatedResponse(BaseModel):
    """Response returned when a video is registered."""

    id: str = Field(description="Unique video identifier (UUID hex) for polling status.")
    status: str = Field(description="Initial video status (always 'uploaded').")
    title: str = Field(description="Video title.")
    processing: bool = Field(description="Whether processing was scheduled right away.")


class ActionAcceptedResponse(BaseModel):
    """Response returned when process/retry/regenerate is scheduled."""

    id: str = Field(description="The video ID.")
    action: str = Field(description="Scheduled action: process, retry or regenerate.")
    status: str = Field(description="Video status after scheduling.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
