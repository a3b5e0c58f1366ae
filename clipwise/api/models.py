"""OpenAI API response dataclasses.

WHY: The transcription and chat-completion endpoints return JSON objects
whose shape the rest of the package should never see. Typed dataclasses
make the fields explicit and keep raw dicts at the HTTP boundary.

HOW: Each dataclass maps 1:1 to an API JSON object. Factory methods
(from_dict) parse raw responses; WhisperResponse.to_transcript() turns
the verbose transcription into the core Transcript IR.

RULES:
- WhisperResponse fields match the verbose_json response format
- words is empty when the request did not ask for word granularity
- ChatCompletion keeps only the first choice; refusal is None unless the
  model declined to answer
"""

from __future__ import annotations

from dataclasses import dataclass, field

from clipwise.core.ir import Transcript, TranscriptSegment
from clipwise.core.transcript import normalize_word_timings


@dataclass
class WhisperWord:
    """A word-granularity timestamp as returned by the API (unvalidated)."""

    word: str
    start: float
    end: float

    @classmethod
    def from_dict(cls, data: dict) -> WhisperWord:
        return cls(
            word=data["word"],
            start=float(data["start"]),
            end=float(data["end"]),
        )


@dataclass
class WhisperSegment:
    """A segment-granularity timestamp as returned by the API."""

    id: int
    start: float
    end: float
    text: str

    @classmethod
    def from_dict(cls, data: dict) -> WhisperSegment:
        return cls(
            id=int(data.get("id", 0)),
            start=float(data["start"]),
            end=float(data["end"]),
            text=data["text"],
        )


@dataclass
class WhisperResponse:
    """Full verbose_json response from POST /audio/transcriptions.

    RULES:
    - language is what the engine detected (e.g. "english" or "en")
    - duration is the media duration in seconds, 0.0 when absent
    """

    text: str
    language: str
    duration: float
    segments: list[WhisperSegment] = field(default_factory=list)
    words: list[WhisperWord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> WhisperResponse:
        return cls(
            text=data.get("text") or "",
            language=data.get("language") or "",
            duration=float(data.get("duration") or 0.0),
            segments=[WhisperSegment.from_dict(s) for s in data.get("segments") or []],
            words=[WhisperWord.from_dict(w) for w in data.get("words") or []],
        )

    def to_transcript(self) -> Transcript:
        """Convert to the Transcript IR.

        RULES:
        - Segment text is trimmed; empty segments are dropped
        - Word timing is normalized (see normalize_word_timings)
        """
        segments = [
            TranscriptSegment(text=s.text.strip(), start_s=s.start, end_s=max(s.end, s.start))
            for s in self.segments
            if s.text.strip()
        ]
        words = normalize_word_timings((w.word, w.start, w.end) for w in self.words)
        duration = self.duration
        if not duration:
            ends = [w.end_s for w in words] + [s.end_s for s in segments]
            duration = max(ends) if ends else 0.0
        return Transcript(
            full_text=self.text.strip(),
            language=self.language,
            segments=segments,
            words=words,
            duration_s=duration,
        )


@dataclass
class ChatCompletion:
    """The parts of a chat-completions response the client needs."""

    id: str
    model: str
    content: str | None
    refusal: str | None = None
    finish_reason: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> ChatCompletion:
        """Parse the first choice of a chat-completions response.

        RULES:
        - Raises ValueError when the response has no choices
        """
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("Chat completion response contained no choices")
        message = choices[0].get("message") or {}
        return cls(
            id=data.get("id", ""),
            model=data.get("model", ""),
            content=message.get("content"),
            refusal=message.get("refusal"),
            finish_reason=choices[0].get("finish_reason"),
        )
