"""Tests for transcript helpers (clipwise/core/transcript.py)."""

import pytest

from clipwise.core.ir import HighlightCandidate, TranscriptWord
from clipwise.core.transcript import (
    MIN_WORD_DURATION_S,
    format_segments_block,
    format_timestamp,
    format_transcript_with_timestamps,
    format_words_block,
    normalize_word_timings,
    rebase_words,
    sentence_alignment,
    transcript_text,
    words_in_window,
)


def _candidate(start, end):
    return HighlightCandidate("T", "D", start, end, "H", 50.0)


class TestNormalizeWordTimings:

    def test_clean_words_unchanged(self):
        words = normalize_word_timings([("a", 0.0, 0.5), ("b", 0.5, 1.0)])
        assert [(w.text, w.start_s, w.end_s) for w in words] == [("a", 0.0, 0.5), ("b", 0.5, 1.0)]

    def test_zero_length_word_extended(self):
        words = normalize_word_timings([("a", 1.0, 1.0)])
        assert words[0].end_s == pytest.approx(1.0 + MIN_WORD_DURATION_S)

    def test_overlap_clamped_to_previous_end(self):
        words = normalize_word_timings([("a", 0.0, 0.6), ("b", 0.5, 1.0)])
        assert words[1].start_s == 0.6
        assert words[0].end_s <= words[1].start_s

    def test_empty_text_dropped(self):
        words = normalize_word_timings([(" ", 0.0, 0.5), (" b ", 0.5, 1.0)])
        assert [w.text for w in words] == ["b"]


class TestWindows:

    def test_words_in_window(self, sample_transcript):
        words = words_in_window(sample_transcript.words, 5.0, 10.0)
        assert [w.text for w in words] == ["hoy", "hablamos", "de", "virales"]

    def test_word_crossing_boundary_excluded(self, sample_transcript):
        words = words_in_window(sample_transcript.words, 0.0, 1.0)
        assert [w.text for w in words] == ["Hola"]

    def test_rebase(self):
        rebased = rebase_words([TranscriptWord("a", 5.2, 5.5), TranscriptWord("b", 5.5, 6.1)], 5.0)
        assert rebased[0].start_s == pytest.approx(0.2)
        assert rebased[1].end_s == pytest.approx(1.1)

    def test_rebase_clamps_negative_start(self):
        rebased = rebase_words([TranscriptWord("a", 4.9, 5.3)], 5.0)
        assert rebased[0].start_s == 0.0
        assert rebased[0].end_s == pytest.approx(0.3)


class TestFormatting:

    def test_segments_block(self, sample_transcript):
        block = format_segments_block(sample_transcript.segments)
        assert block.splitlines()[0] == "[0.00s - 5.00s] Hola a todos"
        assert len(block.splitlines()) == 3

    def test_words_block(self):
        block = format_words_block([TranscriptWord("Hola", 0.5, 0.8)])
        assert block == "[0.50s - 0.80s] Hola"

    def test_transcript_text(self, sample_transcript):
        assert transcript_text(sample_transcript.segments).startswith("Hola a todos hoy")

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0:00"),
        (65.9, "1:05"),
        (3725, "1:02:05"),
    ])
    def test_format_timestamp(self, seconds, expected):
        assert format_timestamp(seconds) == expected

    def test_transcript_with_timestamps(self, sample_transcript):
        lines = format_transcript_with_timestamps(sample_transcript.segments).splitlines()
        assert lines[2] == "[0:10 -> 0:20] el hook es lo mas importante de todo"


class TestSentenceAlignment:

    def test_aligned_window(self, sample_transcript):
        result = sentence_alignment(_candidate(5.0, 20.0), sample_transcript.segments)
        assert result.aligned

    def test_within_tolerance(self, sample_transcript):
        result = sentence_alignment(_candidate(5.3, 19.6), sample_transcript.segments)
        assert result.aligned

    def test_misaligned_end(self, sample_transcript):
        result = sentence_alignment(_candidate(5.0, 16.0), sample_transcript.segments)
        assert result.start_aligned
        assert not result.end_aligned
        assert result.nearest_end_s == 20.0

    def test_no_segments(self):
        result = sentence_alignment(_candidate(0.0, 1.0), [])
        assert not result.aligned
        assert result.nearest_start_s is None
