"""Intermediate representation dataclasses for transcripts, highlights, and captions.

WHY: Speech-to-text output, model responses, and persisted payloads all
arrive as loose JSON. Component logic must never work on untyped maps,
so every structure that crosses a stage boundary has a typed record
here, validated once when it is deserialized.

HOW: Plain dataclasses form two families:
  Transcript family: TranscriptWord, TranscriptSegment, Transcript
  Clip family      : HighlightCandidate, HighlightsResult, CaptionWord,
                      CaptionSegment, CaptionStyle, CaptionsResult
Each record has from_dict()/to_dict(). from_dict() raises ValueError on
a bad shape so callers can wrap it in their own error type.

RULES:
- All times are float seconds
- TranscriptWord/TranscriptSegment are frozen: a transcript is read-only
- TranscriptWord requires start_s < end_s
- Persisted word dicts use Whisper keys ("word", "start", "end")
- Caption payload keys match clipwise/schemas/captions.schema.json
- Colors are normalized to upper-case "#RRGGBB"
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Any

_HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")

DEFAULT_FONT_SIZE_PX = 36
DEFAULT_TEXT_COLOR = "#FFFFFF"
DEFAULT_HIGHLIGHT_COLOR = "#FFD700"


def _number(data: dict[str, Any], *keys: str) -> float:
    """Read the first present key as a float, raising ValueError otherwise."""
    for key in keys:
        if key in data and data[key] is not None:
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError("Field '{}' must be a number, got {!r}".format(key, value))
            return float(value)
    raise ValueError("Missing numeric field: {}".format(" or ".join(keys)))


def _text(data: dict[str, Any], *keys: str) -> str:
    """Read the first present key as a string, raising ValueError otherwise."""
    for key in keys:
        if key in data and data[key] is not None:
            value = data[key]
            if not isinstance(value, str):
                raise ValueError("Field '{}' must be a string, got {!r}".format(key, value))
            return value
    raise ValueError("Missing text field: {}".format(" or ".join(keys)))


def normalize_hex_color(value: str, default: str | None = None) -> str:
    """Normalize "#rrggbb" / "rrggbb" to "#RRGGBB".

    Returns ``default`` for anything else when given, raises ValueError
    otherwise.
    """
    match = _HEX_COLOR_RE.match((value or "").strip())
    if match:
        return "#" + match.group(1).upper()
    if default is not None:
        return default
    raise ValueError("Invalid hex color: {!r}".format(value))


def normalize_word(text: str) -> str:
    """Lowercase-trimmed form used for caption/transcript word comparison."""
    return text.strip().lower()


# ---------------------------------------------------------------------------
# Transcript family
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TranscriptWord:
    """A single spoken word with its timestamp.

    RULES:
    - text is trimmed, never empty
    - start_s < end_s
    """

    text: str
    start_s: float
    end_s: float

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("TranscriptWord text must not be empty")
        if not self.start_s < self.end_s:
            raise ValueError(
                "TranscriptWord '{}' must start before it ends ({} >= {})".format(
                    self.text, self.start_s, self.end_s
                )
            )

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptWord:
        return cls(
            text=_text(data, "word", "text").strip(),
            start_s=_number(data, "start", "start_s"),
            end_s=_number(data, "end", "end_s"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.text, "start": self.start_s, "end": self.end_s}


@dataclass(frozen=True)
class TranscriptSegment:
    """A phrase/sentence-granularity span as produced by the transcription engine."""

    text: str
    start_s: float
    end_s: float

    def __post_init__(self) -> None:
        if self.end_s < self.start_s:
            raise ValueError(
                "TranscriptSegment ends before it starts ({} < {})".format(
                    self.end_s, self.start_s
                )
            )

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TranscriptSegment:
        return cls(
            text=_text(data, "text").strip(),
            start_s=_number(data, "start", "start_s"),
            end_s=_number(data, "end", "end_s"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "start": self.start_s, "end": self.end_s}


@dataclass
class Transcript:
    """The complete transcription of one source video.

    WHY: Highlight selection reasons over segments; caption grouping and
    burn-in work on words. Both come from one transcription run and are
    kept together with the detected language.

    RULES:
    - segments and words are ordered by start time
    - words never overlap (enforced by from_dict)
    - language is an ISO 639-1 code or the engine's language name
    - duration_s is the media duration reported by the engine, or the end
      of the last word/segment when the engine reports none
    """

    full_text: str
    language: str
    segments: list[TranscriptSegment] = field(default_factory=list)
    words: list[TranscriptWord] = field(default_factory=list)
    duration_s: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transcript:
        """Build a Transcript from the persisted (Whisper-shaped) dict.

        RULES:
        - Raises ValueError if words overlap or go backwards in time
        """
        segments = [TranscriptSegment.from_dict(s) for s in data.get("segments") or []]
        words = [TranscriptWord.from_dict(w) for w in data.get("words") or []]
        for prev, cur in zip(words, words[1:]):
            if cur.start_s < prev.end_s:
                raise ValueError(
                    "Transcript words overlap: '{}' ends at {} but '{}' starts at {}".format(
                        prev.text, prev.end_s, cur.text, cur.start_s
                    )
                )
        duration = data.get("duration") or 0.0
        if not duration:
            ends = [w.end_s for w in words] + [s.end_s for s in segments]
            duration = max(ends) if ends else 0.0
        return cls(
            full_text=(data.get("text") or "").strip(),
            language=data.get("language") or "",
            segments=segments,
            words=words,
            duration_s=float(duration),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.full_text,
            "language": self.language,
            "segments": [s.to_dict() for s in self.segments],
            "words": [w.to_dict() for w in self.words],
            "duration": self.duration_s,
        }


# ---------------------------------------------------------------------------
# Highlights
# ---------------------------------------------------------------------------


@dataclass
class HighlightCandidate:
    """A candidate sub-window of the source video judged worth clipping.

    RULES:
    - score is within [0, 100]
    - tags are unique, in the order the model returned them
    - sentence alignment of start_s/end_s is best effort, not guaranteed
    """

    title: str
    description: str
    start_s: float
    end_s: float
    hook_text: str
    score: float
    tags: list[str] = field(default_factory=list)

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HighlightCandidate:
        score = _number(data, "score")
        if not 0 <= score <= 100:
            raise ValueError("Highlight score must be within 0-100, got {}".format(score))
        tags: list[str] = []
        for tag in data.get("tags") or []:
            if isinstance(tag, str) and tag not in tags:
                tags.append(tag)
        return cls(
            title=_text(data, "title"),
            description=_text(data, "description"),
            start_s=_number(data, "start", "start_s"),
            end_s=_number(data, "end", "end_s"),
            hook_text=_text(data, "hook_text"),
            score=score,
            tags=tags,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "start": self.start_s,
            "end": self.end_s,
            "hook_text": self.hook_text,
            "score": self.score,
            "tags": list(self.tags),
        }


@dataclass
class HighlightsResult:
    """Highlights accepted for one run plus the model's overview of the video."""

    highlights: list[HighlightCandidate]
    summary: str = ""
    main_topics: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Captions
# ---------------------------------------------------------------------------


class ScreenPosition(str, enum.Enum):
    """Vertical placement of a caption line.

    Only BOTTOM is produced today; TOP and CENTER exist so stored payloads
    that name them still deserialize.
    """

    TOP = "top"
    CENTER = "center"
    BOTTOM = "bottom"


@dataclass
class CaptionWord:
    """One displayed word with its exact transcript timing."""

    text: str
    start_s: float
    end_s: float
    emphasize: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptionWord:
        return cls(
            text=_text(data, "word", "text"),
            start_s=_number(data, "start", "start_s"),
            end_s=_number(data, "end", "end_s"),
            emphasize=bool(data.get("emphasis", data.get("emphasize", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "word": self.text,
            "start": self.start_s,
            "end": self.end_s,
            "emphasis": self.emphasize,
        }


@dataclass
class CaptionSegment:
    """A group of words displayed together as one caption line.

    RULES:
    - words are ordered by start_s
    - start_s/end_s equal the min/max of the contained word spans
      (see from_words)
    """

    start_s: float
    end_s: float
    words: list[CaptionWord] = field(default_factory=list)
    position: ScreenPosition = ScreenPosition.BOTTOM

    @classmethod
    def from_words(
        cls,
        words: list[CaptionWord],
        position: ScreenPosition = ScreenPosition.BOTTOM,
    ) -> CaptionSegment:
        """Build a segment whose span is derived from its words."""
        if not words:
            raise ValueError("CaptionSegment needs at least one word")
        return cls(
            start_s=min(w.start_s for w in words),
            end_s=max(w.end_s for w in words),
            words=list(words),
            position=position,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptionSegment:
        raw_position = data.get("position") or ScreenPosition.BOTTOM.value
        try:
            position = ScreenPosition(raw_position)
        except ValueError:
            raise ValueError("Unknown caption position: {!r}".format(raw_position))
        return cls(
            start_s=_number(data, "start", "start_s"),
            end_s=_number(data, "end", "end_s"),
            words=[CaptionWord.from_dict(w) for w in data.get("words") or []],
            position=position,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start_s,
            "end": self.end_s,
            "words": [w.to_dict() for w in self.words],
            "position": self.position.value,
        }


@dataclass
class CaptionStyle:
    """Font size and colors shared by every caption line of a clip."""

    font_size_px: int = DEFAULT_FONT_SIZE_PX
    text_color: str = DEFAULT_TEXT_COLOR
    highlight_color: str = DEFAULT_HIGHLIGHT_COLOR

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptionStyle:
        """Parse a style, falling back to defaults for unusable values."""
        font_size = data.get("font_size", DEFAULT_FONT_SIZE_PX)
        if isinstance(font_size, bool) or not isinstance(font_size, (int, float)) or font_size <= 0:
            font_size = DEFAULT_FONT_SIZE_PX
        return cls(
            font_size_px=int(round(font_size)),
            text_color=normalize_hex_color(data.get("color", ""), DEFAULT_TEXT_COLOR),
            highlight_color=normalize_hex_color(
                data.get("highlight_color", ""), DEFAULT_HIGHLIGHT_COLOR
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "font_size": self.font_size_px,
            "color": self.text_color,
            "highlight_color": self.highlight_color,
        }


@dataclass
class CaptionsResult:
    """All caption lines of one clip, their style, and the opening hook.

    RULES:
    - Times are relative to the clip start, not the source video
    - Stored on the clip as its caption payload; recomputable, never a
      source of truth
    """

    segments: list[CaptionSegment]
    style: CaptionStyle = field(default_factory=CaptionStyle)
    hook_text: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaptionsResult:
        return cls(
            segments=[CaptionSegment.from_dict(s) for s in data.get("captions") or []],
            style=CaptionStyle.from_dict(data.get("style") or {}),
            hook_text=data.get("hook") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "captions": [s.to_dict() for s in self.segments],
            "style": self.style.to_dict(),
            "hook": self.hook_text,
        }

    @property
    def word_count(self) -> int:
        return sum(len(s.words) for s in self.segments)
