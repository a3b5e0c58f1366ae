"""Highlight selection: one scoring request, then local filtering.

WHY: The language model is good at judging which moments of a long
video would work as standalone clips, but it does not reliably respect
length limits. The model ranks; this module enforces the policy.

HOW: detect_highlights() formats the transcript segments as a
time-stamped block, sends one structured request (schema
"highlights"), parses the answer into HighlightCandidate records, and
passes them through apply_constraints(). select_highlights() is the
list-only form of the same operation.

RULES:
- Duration filter is inclusive on both ends: min <= end - start <= max
- Truncation to max_highlights keeps the model's order (no re-sort)
- Any collaborator failure or malformed answer raises
  HighlightDetectionFailed; there is no internal retry
- Zero survivors is an empty list, not an error
- Sentence alignment is checked and logged; candidates are dropped for
  it only when require_sentence_alignment is set
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clipwise.config import OPENAI_HIGHLIGHT_MODEL
from clipwise.core.ir import HighlightCandidate, HighlightsResult, Transcript, TranscriptSegment
from clipwise.core.prompts import (
    DEFAULT_AUDIENCE,
    DEFAULT_CONTENT_TYPE,
    build_highlight_system_prompt,
    build_highlight_user_prompt,
)
from clipwise.core.transcript import format_segments_block, sentence_alignment
from clipwise.errors import HighlightDetectionFailed
from clipwise.schemas import load_schema

if TYPE_CHECKING:
    from clipwise.api.client import OpenAIClient

logger = logging.getLogger(__name__)

HIGHLIGHT_TEMPERATURE = 0.7


@dataclass
class HighlightConstraints:
    """Caller policy for which candidates are acceptable.

    RULES:
    - max_highlights >= 1
    - 0 < min_duration_s <= max_duration_s
    """

    max_highlights: int = 5
    min_duration_s: float = 15.0
    max_duration_s: float = 60.0
    audience_hint: str = DEFAULT_AUDIENCE
    content_type_hint: str = DEFAULT_CONTENT_TYPE
    require_sentence_alignment: bool = False
    alignment_tolerance_s: float = 0.5

    def __post_init__(self) -> None:
        if self.max_highlights < 1:
            raise ValueError("max_highlights must be at least 1")
        if self.min_duration_s <= 0:
            raise ValueError("min_duration_s must be positive")
        if self.min_duration_s > self.max_duration_s:
            raise ValueError(
                "min_duration_s ({}) exceeds max_duration_s ({})".format(
                    self.min_duration_s, self.max_duration_s
                )
            )


def apply_constraints(
    candidates: Sequence[HighlightCandidate],
    constraints: HighlightConstraints,
    segments: Sequence[TranscriptSegment] = (),
) -> list[HighlightCandidate]:
    """Drop policy violations, then truncate in the given order.

    WHY: Separated from the request so the filtering contract can be
    exercised on its own.

    RULES:
    - Candidates outside [min_duration_s, max_duration_s] are dropped
    - When segments are given, alignment is logged per candidate
    - The survivors keep their relative order
    """
    accepted: list[HighlightCandidate] = []
    for candidate in candidates:
        duration = candidate.duration_s
        if not constraints.min_duration_s <= duration <= constraints.max_duration_s:
            logger.info(
                "Filtered out highlight %r (duration %.1fs, required %g-%gs)",
                candidate.title,
                duration,
                constraints.min_duration_s,
                constraints.max_duration_s,
            )
            continue
        if segments:
            alignment = sentence_alignment(
                candidate, segments, tolerance_s=constraints.alignment_tolerance_s
            )
            if not alignment.aligned:
                logger.info(
                    "Highlight %r is not sentence-aligned (%.2f-%.2f, nearest edges %.2f-%.2f)",
                    candidate.title,
                    candidate.start_s,
                    candidate.end_s,
                    alignment.nearest_start_s,
                    alignment.nearest_end_s,
                )
                if constraints.require_sentence_alignment:
                    continue
        accepted.append(candidate)
    return accepted[: constraints.max_highlights]


def parse_highlights_response(data: dict) -> HighlightsResult:
    """Turn the validated model answer into IR records.

    Raises ValueError on any malformed candidate.
    """
    raw = data.get("highlights")
    if not isinstance(raw, list):
        raise ValueError("Response is missing the 'highlights' list")
    topics = [t for t in data.get("main_topics") or [] if isinstance(t, str)]
    return HighlightsResult(
        highlights=[HighlightCandidate.from_dict(item) for item in raw],
        summary=data.get("summary") or "",
        main_topics=topics,
    )


async def detect_highlights(
    transcript: Transcript,
    client: OpenAIClient,
    constraints: HighlightConstraints | None = None,
    model: str | None = None,
    on_status: Callable[[str], None] | None = None,
) -> HighlightsResult:
    """Score the transcript and return the accepted highlights.

    Args:
        transcript: Transcript with at least one segment.
        client: Collaborator exposing ``generate_object``.
        constraints: Duration and count policy; defaults apply when None.
        model: Model name override.
        on_status: Optional callback for status updates.

    Returns:
        HighlightsResult with filtered highlights plus summary and topics.

    Raises:
        HighlightDetectionFailed: empty transcript, collaborator failure,
            or malformed answer.
    """
    constraints = constraints or HighlightConstraints()
    if not transcript.segments:
        raise HighlightDetectionFailed("transcript has no segments")

    logger.debug(
        "Sample transcription: %s",
        "; ".join(
            "[{:.1f}s - {:.1f}s] {}".format(s.start_s, s.end_s, s.text)
            for s in transcript.segments[:3]
        ),
    )
    if on_status:
        on_status("Detecting highlights...")

    system = build_highlight_system_prompt(
        constraints.audience_hint,
        constraints.content_type_hint,
        constraints.min_duration_s,
        constraints.max_duration_s,
    )
    prompt = build_highlight_user_prompt(
        format_segments_block(transcript.segments),
        constraints.max_highlights,
        constraints.min_duration_s,
        constraints.max_duration_s,
    )

    try:
        data = await client.generate_object(
            system=system,
            prompt=prompt,
            schema_name="highlights",
            schema=load_schema("highlights"),
            model=model or OPENAI_HIGHLIGHT_MODEL,
            temperature=HIGHLIGHT_TEMPERATURE,
        )
        result = parse_highlights_response(data)
    except HighlightDetectionFailed:
        raise
    except Exception as exc:
        logger.error("Error detecting highlights: %s", exc)
        raise HighlightDetectionFailed(exc) from exc

    logger.info("Model returned %d highlights before validation", len(result.highlights))
    for idx, h in enumerate(result.highlights, 1):
        logger.debug(
            "  %d. %r %.1fs-%.1fs (%.1fs, score %g)",
            idx, h.title, h.start_s, h.end_s, h.duration_s, h.score,
        )

    accepted = apply_constraints(result.highlights, constraints, transcript.segments)
    logger.info("%d highlights passed validation", len(accepted))
    if on_status:
        on_status("{} highlight(s) selected.".format(len(accepted)))

    return HighlightsResult(
        highlights=accepted,
        summary=result.summary,
        main_topics=result.main_topics,
    )


async def select_highlights(
    transcript: Transcript,
    client: OpenAIClient,
    constraints: HighlightConstraints | None = None,
    model: str | None = None,
) -> list[HighlightCandidate]:
    """List-only form of detect_highlights()."""
    result = await detect_highlights(transcript, client, constraints, model=model)
    return result.highlights


def filter_highlights_by_score(
    highlights: Sequence[HighlightCandidate],
    min_score: float,
) -> list[HighlightCandidate]:
    """Keep highlights scoring at least ``min_score``, order preserved."""
    return [h for h in highlights if h.score >= min_score]


def best_highlight(highlights: Sequence[HighlightCandidate]) -> HighlightCandidate | None:
    """Highest-scoring highlight; the earliest one wins a tie."""
    best: HighlightCandidate | None = None
    for h in highlights:
        if best is None or h.score > best.score:
            best = h
    return best
