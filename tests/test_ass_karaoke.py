"""Tests for the ASS karaoke encoder (clipwise/formatters/ass_karaoke.py).

WHY: The subtitle renderer is unforgiving: a wrong color byte order, a
mis-scaled margin or a malformed time shows up burned into every clip.
These tests pin the exact text the encoder produces.
"""

import pytest

from clipwise.core.ir import CaptionSegment, CaptionsResult, CaptionStyle, CaptionWord
from clipwise.errors import CaptionValidationError
from clipwise.formatters.ass_karaoke import (
    ASSKaraokeFormatter,
    ass_color_to_hex,
    bottom_margin,
    build_header,
    encode,
    escape_ass_text,
    format_ass_time,
    hex_to_ass_color,
    karaoke_events,
    validate_captions,
)


def _segment(*words):
    return CaptionSegment.from_words([CaptionWord(t, s, e) for t, s, e in words])


def _seq_segment(n, start):
    return _segment(*[("w{}".format(i), start + i * 0.5, start + i * 0.5 + 0.5) for i in range(n)])


def _dialogue_lines(text):
    return [line for line in text.splitlines() if line.startswith("Dialogue:")]


class TestColors:

    def test_gold_opaque(self):
        assert hex_to_ass_color("#FFD700") == "&H0000D7FF"

    def test_gold_with_alpha(self):
        assert hex_to_ass_color("#FFD700", 0.8) == "&H3300D7FF"

    def test_transparent(self):
        assert hex_to_ass_color("#000000", 0.0) == "&HFF000000"

    def test_round_trip(self):
        hex_color, opacity = ass_color_to_hex(hex_to_ass_color("#FFD700"))
        assert hex_color == "#FFD700"
        assert opacity == 1.0

    def test_short_token_is_opaque(self):
        assert ass_color_to_hex("&H0000FF") == ("#FF0000", 1.0)

    def test_invalid(self):
        with pytest.raises(ValueError):
            hex_to_ass_color("gold")
        with pytest.raises(ValueError):
            hex_to_ass_color("#FFD700", 1.5)
        with pytest.raises(ValueError):
            ass_color_to_hex("H00FFFFFF")


class TestTimeAndMargin:

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0:00:00.00"),
        (0.5, "0:00:00.50"),
        (61.234, "0:01:01.23"),
        (1.005 + 1e-9, "0:00:01.00"),
        (0.29, "0:00:00.29"),
        (3723.999, "1:02:03.99"),
    ])
    def test_format_time(self, seconds, expected):
        assert format_ass_time(seconds) == expected

    def test_negative_time_rejected(self):
        with pytest.raises(ValueError):
            format_ass_time(-0.01)

    def test_margin_1920(self):
        assert bottom_margin(1920) == 480

    def test_margin_1080(self):
        assert bottom_margin(1080) == 270

    def test_escape(self):
        assert escape_ass_text("{\\b1}hi\nthere") == "(/b1)hi there"


class TestHeader:

    def test_header_lines(self):
        header = build_header(CaptionStyle(), 1920)
        lines = header.splitlines()
        assert lines[0] == "[Script Info]"
        assert "ScriptType: v4.00+" in lines
        assert "PlayResY: 1920" in lines
        assert (
            "Style: Default,Arial,36,&H00FFFFFF,&H00FFFFFF,&H00000000,&H80000000,"
            "1,0,0,0,100,100,0,0,1,2,1,2,10,10,480,1"
        ) in lines
        assert (
            "Style: Highlight,Arial,36,&H0000D7FF,&H0000D7FF,&H00000000,&H3300D7FF,"
            "1,0,0,0,100,100,0,0,1,2,1,2,10,10,480,1"
        ) in lines
        assert lines[-1].startswith("Format: Layer, Start, End, Style")

    def test_header_scales_with_height(self):
        header = build_header(CaptionStyle(font_size_px=48), 1080)
        assert "PlayResY: 1080" in header
        assert ",48,&H00FFFFFF," in header
        assert ",10,10,270,1" in header


class TestEvents:

    def test_worked_example(self):
        segment = _segment(("Hola", 0.5, 0.8), ("a", 0.8, 1.2))
        events = karaoke_events(segment, CaptionStyle())
        assert events == [
            "Dialogue: 0,0:00:00.50,0:00:00.80,Default,,0,0,0,,"
            "{\\1c&H0000D7FF\\3c&H00000000\\bord3}Hola {\\1c&H00FFFFFF\\3c&H00000000\\bord2}a",
            "Dialogue: 0,0:00:00.80,0:00:01.20,Default,,0,0,0,,"
            "{\\1c&H00FFFFFF\\3c&H00000000\\bord2}Hola {\\1c&H0000D7FF\\3c&H00000000\\bord3}a",
        ]

    def test_repeated_word_highlighted_by_position(self):
        segment = _segment(("de", 0.0, 0.2), ("de", 0.2, 0.4))
        events = karaoke_events(segment, CaptionStyle())
        active = "{\\1c&H0000D7FF"
        assert events[0].index(active) < events[0].index("bord2")
        assert events[1].index(active) > events[1].index("bord2")

    def test_cue_count(self):
        captions = CaptionsResult(segments=[_seq_segment(3, 0.0), _seq_segment(2, 2.0), _seq_segment(4, 4.0)])
        assert len(_dialogue_lines(encode(captions))) == 9

    def test_encode_ends_with_newline(self):
        text = encode(CaptionsResult(segments=[_seq_segment(2, 0.0)]))
        assert text.endswith("\n")
        assert "[Events]" in text

    def test_custom_colors(self):
        style = CaptionStyle(text_color="#00FF00", highlight_color="#FF0000")
        events = karaoke_events(_segment(("a", 0, 1), ("b", 1, 2)), style)
        assert "{\\1c&H000000FF\\3c&H00000000\\bord3}a" in events[0]
        assert "{\\1c&H0000FF00\\3c&H00000000\\bord2}b" in events[0]


class TestValidation:

    def test_no_segments(self):
        with pytest.raises(CaptionValidationError):
            encode(CaptionsResult(segments=[]))

    def test_empty_segment(self):
        with pytest.raises(CaptionValidationError, match="no words"):
            validate_captions(CaptionsResult(segments=[CaptionSegment(0, 1, [])]))

    def test_bad_word_timing(self):
        segment = CaptionSegment(0, 2, [CaptionWord("a", 1.0, 1.0)])
        with pytest.raises(CaptionValidationError, match="invalid timing"):
            validate_captions(CaptionsResult(segments=[segment]))

    def test_overlap(self):
        segment = CaptionSegment(0, 2, [CaptionWord("a", 0.0, 1.0), CaptionWord("b", 0.5, 1.5)])
        with pytest.raises(CaptionValidationError, match="previous word"):
            validate_captions(CaptionsResult(segments=[segment]))

    def test_word_outside_span(self):
        segment = CaptionSegment(0, 1, [CaptionWord("a", 0.0, 0.5), CaptionWord("b", 0.5, 1.5)])
        with pytest.raises(CaptionValidationError, match="outside"):
            validate_captions(CaptionsResult(segments=[segment]))

    def test_validation_error_is_value_error(self):
        assert issubclass(CaptionValidationError, ValueError)


class TestFormatter:

    def test_output(self):
        outputs = ASSKaraokeFormatter(reference_height=1080).format(
            CaptionsResult(segments=[_seq_segment(2, 0.0)])
        )
        assert len(outputs) == 1
        assert outputs[0].suffix == "-captions.ass"
        assert outputs[0].media_type == "text/x-ssa"
        assert "PlayResY: 1080" in outputs[0].content
