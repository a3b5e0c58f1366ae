"""Error taxonomy for the clip pipeline.

WHY: The pipeline must decide, per failure, whether to fail the whole
video or only one clip. Typed exceptions make that decision explicit and
keep the human-readable message that is stored on the failed record.

HOW: Every pipeline error derives from ClipwiseError. Whole-run errors
(HighlightDetectionFailed) and per-clip errors (captions, media, storage)
are distinct classes; the orchestrator catches them at the right level.

RULES:
- str(error) is always a message fit for display to the user
- Wrapped causes are chained with ``raise ... from cause`` and also kept
  on the ``cause`` attribute
- CaptionHallucinationError is a CaptionGenerationFailed so callers that
  only care about "captions failed" can catch the parent
"""

from __future__ import annotations

from collections.abc import Sequence


class ClipwiseError(Exception):
    """Base class for all pipeline errors."""


class HighlightDetectionFailed(ClipwiseError):
    """The highlight scoring call failed or returned a malformed structure."""

    def __init__(self, cause: object) -> None:
        self.cause = cause
        super().__init__("Failed to detect highlights: {}".format(cause))


class CaptionGenerationFailed(ClipwiseError):
    """The caption grouping call failed or its result could not be used."""

    def __init__(self, cause: object) -> None:
        self.cause = cause
        super().__init__("Failed to generate captions: {}".format(cause))


class CaptionHallucinationError(CaptionGenerationFailed):
    """The caption model returned words that are not in the transcript.

    WHY: Burning fabricated or translated text into a video is worse than
    shipping no captions at all, so this is a hard failure.

    RULES:
    - offending_words keeps the normalized words in output order, deduplicated
    """

    def __init__(self, offending_words: Sequence[str]) -> None:
        self.offending_words = list(offending_words)
        super().__init__(
            "AI hallucinated words not in transcription: {}".format(
                ", ".join(self.offending_words)
            )
        )


class CaptionValidationError(ClipwiseError, ValueError):
    """A CaptionsResult is malformed and cannot be encoded."""


class MediaProbeFailed(ClipwiseError):
    """The media engine could not read source dimensions or duration."""


class MediaEncodeFailed(ClipwiseError):
    """A media engine invocation failed.

    RULES:
    - stage is one of "extract", "crop", "burn", "thumbnail"
    - stderr keeps only the tail of the engine output
    """

    def __init__(
        self,
        stage: str,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr
        super().__init__("FFmpeg {} stage failed: {}".format(stage, message))


class StorageUploadFailed(ClipwiseError):
    """The storage collaborator rejected or failed an upload."""


class SourceUnavailable(ClipwiseError):
    """The source video could not be fetched or read."""
