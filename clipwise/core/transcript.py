"""Transcript helpers: timing normalization, clip windows, prompt text.

WHY: Several stages need the same small transformations of a
Transcript: the transcription client must repair engine timing quirks
before the invariants are checked, the pipeline must cut a clip's words
out of the full transcript, and the highlight prompt needs a compact
time-stamped text block.

HOW: Pure functions over the IR dataclasses. Nothing here performs I/O.

RULES:
- normalize_word_timings() is the only place word timing is ever altered,
  and only to restore start < end and non-overlap
- words_in_window() keeps words fully inside [start, end]
- rebase_words() shifts times so the clip starts at 0.0
- sentence_alignment() reports; it never filters
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Iterable, Sequence

from clipwise.core.ir import HighlightCandidate, TranscriptSegment, TranscriptWord

# One centisecond: the resolution of the subtitle time format.
MIN_WORD_DURATION_S = 0.01


def normalize_word_timings(
    raw_words: Iterable[tuple[str, float, float]],
) -> list[TranscriptWord]:
    """Turn raw (text, start, end) triples into invariant-respecting words.

    WHY: Speech engines occasionally emit zero-length words or words that
    start a few milliseconds before the previous one ends. The Transcript
    model requires start < end and non-overlapping words.

    HOW: Walk the words in order. Empty texts are dropped. A start that
    precedes the previous word's end is clamped to it; an end that is not
    at least MIN_WORD_DURATION_S after the start is extended.

    RULES:
    - Text is trimmed, never otherwise changed
    - Order is preserved; no word is ever added
    """
    words: list[TranscriptWord] = []
    for text, start, end in raw_words:
        text = text.strip()
        if not text:
            continue
        start = max(float(start), 0.0)
        end = float(end)
        if words and start < words[-1].end_s:
            start = words[-1].end_s
        if end < start + MIN_WORD_DURATION_S:
            end = start + MIN_WORD_DURATION_S
        words.append(TranscriptWord(text=text, start_s=start, end_s=end))
    return words


def words_in_window(
    words: Sequence[TranscriptWord],
    start_s: float,
    end_s: float,
) -> list[TranscriptWord]:
    """Return the words spoken entirely within [start_s, end_s]."""
    return [w for w in words if w.start_s >= start_s and w.end_s <= end_s]


def rebase_words(
    words: Sequence[TranscriptWord],
    offset_s: float,
) -> list[TranscriptWord]:
    """Shift word times so that ``offset_s`` becomes 0.0.

    Used to make word timing relative to a clip's start, which is what the
    burned-in subtitle track expects.
    """
    rebased: list[TranscriptWord] = []
    for w in words:
        start = max(w.start_s - offset_s, 0.0)
        end = w.end_s - offset_s
        if end <= start:
            end = start + MIN_WORD_DURATION_S
        rebased.append(TranscriptWord(text=w.text, start_s=start, end_s=end))
    return rebased


def format_segments_block(segments: Sequence[TranscriptSegment]) -> str:
    """Format segments as one ``[12.50s - 18.00s] text`` line each.

    Seconds (not M:SS) so the model can copy boundaries into its answer
    without converting units.
    """
    return "\n".join(
        "[{:.2f}s - {:.2f}s] {}".format(seg.start_s, seg.end_s, seg.text)
        for seg in segments
    )


def format_words_block(words: Sequence[TranscriptWord]) -> str:
    """Format words as one ``[0.50s - 0.80s] word`` line each."""
    return "\n".join(
        "[{:.2f}s - {:.2f}s] {}".format(w.start_s, w.end_s, w.text) for w in words
    )


def transcript_text(segments: Sequence[TranscriptSegment]) -> str:
    """Plain text of all segments, space-joined."""
    return " ".join(seg.text for seg in segments)


def format_timestamp(seconds: float) -> str:
    """Format seconds as M:SS, or H:MM:SS past the first hour."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return "{}:{:02d}:{:02d}".format(hours, minutes, secs)
    return "{}:{:02d}".format(minutes, secs)


def format_transcript_with_timestamps(segments: Sequence[TranscriptSegment]) -> str:
    """Human-readable transcript, one ``[0:05 -> 0:10] text`` line per segment."""
    return "\n".join(
        "[{} -> {}] {}".format(
            format_timestamp(seg.start_s), format_timestamp(seg.end_s), seg.text
        )
        for seg in segments
    )


@dataclass
class SentenceAlignment:
    """Whether a highlight window starts and ends on segment edges."""

    start_aligned: bool
    end_aligned: bool
    nearest_start_s: float | None
    nearest_end_s: float | None

    @property
    def aligned(self) -> bool:
        return self.start_aligned and self.end_aligned


def sentence_alignment(
    candidate: HighlightCandidate,
    segments: Sequence[TranscriptSegment],
    tolerance_s: float = 0.5,
) -> SentenceAlignment:
    """Check a candidate's boundaries against transcript segment edges.

    RULES:
    - start is aligned when some segment starts within tolerance_s of it
    - end is aligned when some segment ends within tolerance_s of it
    - nearest_* are None only when there are no segments
    """
    if not segments:
        return SentenceAlignment(False, False, None, None)
    nearest_start = min((s.start_s for s in segments), key=lambda t: abs(t - candidate.start_s))
    nearest_end = min((s.end_s for s in segments), key=lambda t: abs(t - candidate.end_s))
    return SentenceAlignment(
        start_aligned=abs(nearest_start - candidate.start_s) <= tolerance_s,
        end_aligned=abs(nearest_end - candidate.end_s) <= tolerance_s,
        nearest_start_s=nearest_start,
        nearest_end_s=nearest_end,
    )
