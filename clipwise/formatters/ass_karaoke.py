"""ASS karaoke subtitle encoder: one cue per spoken word.

WHY: Short-form captions highlight the word being spoken while the rest
of the line stays visible. The media engine's ``ass`` filter renders
Advanced SubStation Alpha tracks, so the caption segments are encoded
as an ASS script whose cues recolor one word at a time.

HOW: encode() writes a fixed header (script info, Default and Highlight
styles, events format) and then, for every segment of N words, N
Dialogue lines. Dialogue i spans word i's [start, end) and renders the
whole segment, with word i wrapped in the highlight override and every
other word in the text-color override.

Worked example, segment ["Hola" 0.50-0.80, "a" 0.80-1.20], highlight
#FFD700 (a token of &H0000D7FF):

    Dialogue: 0,0:00:00.50,0:00:00.80,Default,,0,0,0,,{\\1c&H0000D7FF\\3c&H00000000\\bord3}Hola {\\1c&H00FFFFFF\\3c&H00000000\\bord2}a
    Dialogue: 0,0:00:00.80,0:00:01.20,Default,,0,0,0,,{\\1c&H00FFFFFF\\3c&H00000000\\bord2}Hola {\\1c&H0000D7FF\\3c&H00000000\\bord3}a

RULES:
- PlayResY equals the reference (output) height; MarginV of both styles
  is round(reference_height * 0.25): 480 for 1920, 270 for 1080
- Alignment 2 (bottom-center)
- Times are H:MM:SS.cc, truncated to the centisecond so a cue never
  starts before its word
- Colors are &HAABBGGRR with inverted alpha: 00 is opaque, FF transparent
- The active word is identified by position, so repeated words in one
  segment highlight one at a time
- Braces and line breaks in word text are neutralized so they cannot
  open override blocks
- Malformed input raises CaptionValidationError; nothing is emitted
"""

from __future__ import annotations

import math
import re

from clipwise.config import TARGET_HEIGHT
from clipwise.core.ir import CaptionSegment, CaptionsResult, CaptionStyle, normalize_hex_color
from clipwise.errors import CaptionValidationError
from clipwise.formatters.base import BaseFormatter, FormatterOutput

# Captions sit three-quarters of the way down the frame.
CAPTION_VERTICAL_FRACTION = 0.75

FONT_NAME = "Arial"
OUTLINE_COLOR = "&H00000000"
SHADOW_COLOR = "&H80000000"
HIGHLIGHT_BACK_ALPHA = 0.8
ACTIVE_BORDER = 3
INACTIVE_BORDER = 2

# Tolerance for float noise when checking words against their segment span.
_SPAN_EPSILON_S = 1e-6

_ASS_COLOR_RE = re.compile(r"^&H([0-9A-Fa-f]{2})?([0-9A-Fa-f]{6})&?$")

STYLE_FORMAT = (
    "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, "
    "OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, "
    "ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, "
    "MarginL, MarginR, MarginV, Encoding"
)
EVENT_FORMAT = "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text"


# ---------------------------------------------------------------------------
# Field encoders
# ---------------------------------------------------------------------------


def hex_to_ass_color(hex_color: str, alpha: float = 1.0) -> str:
    """Convert "#RRGGBB" plus opacity to an ASS "&HAABBGGRR" token.

    ``alpha`` is opacity in [0, 1] (1 = opaque); ASS stores its inverse.

    >>> hex_to_ass_color("#FFD700")
    '&H0000D7FF'
    >>> hex_to_ass_color("#FFD700", 0.8)
    '&H3300D7FF'
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError("alpha must be within 0-1, got {}".format(alpha))
    clean = normalize_hex_color(hex_color)[1:]
    r, g, b = int(clean[0:2], 16), int(clean[2:4], 16), int(clean[4:6], 16)
    a = int(round((1.0 - alpha) * 255))
    return "&H{:02X}{:02X}{:02X}{:02X}".format(a, b, g, r)


def ass_color_to_hex(token: str) -> tuple[str, float]:
    """Inverse of hex_to_ass_color(): returns ("#RRGGBB", opacity).

    Accepts "&HAABBGGRR" and the short "&HBBGGRR" form (opaque).
    """
    match = _ASS_COLOR_RE.match(token.strip())
    if not match:
        raise ValueError("Invalid ASS color token: {!r}".format(token))
    a = int(match.group(1) or "00", 16)
    bgr = match.group(2)
    b, g, r = bgr[0:2], bgr[2:4], bgr[4:6]
    return "#{}{}{}".format(r, g, b).upper(), 1.0 - a / 255.0


def format_ass_time(seconds: float) -> str:
    """Format seconds as H:MM:SS.cc, truncated to the centisecond."""
    if seconds < 0:
        raise ValueError("ASS time must be non-negative, got {}".format(seconds))
    # The epsilon absorbs float error such as 0.29 * 100 == 28.999999999999996.
    total_cs = math.floor(seconds * 100 + 1e-6)
    hours, rest = divmod(total_cs, 360_000)
    minutes, rest = divmod(rest, 6_000)
    secs, cs = divmod(rest, 100)
    return "{}:{:02d}:{:02d}.{:02d}".format(hours, minutes, secs, cs)


def bottom_margin(
    reference_height: int,
    vertical_fraction: float = CAPTION_VERTICAL_FRACTION,
) -> int:
    """MarginV placing the caption baseline ``vertical_fraction`` down the frame."""
    if reference_height <= 0:
        raise ValueError("reference_height must be positive")
    return int(round(reference_height * (1.0 - vertical_fraction)))


def escape_ass_text(text: str) -> str:
    """Make word text safe inside a Dialogue text field."""
    return (
        text.replace("{", "(")
        .replace("}", ")")
        .replace("\\", "/")
        .replace("\r", " ")
        .replace("\n", " ")
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_captions(captions: CaptionsResult) -> None:
    """Fail fast on input that would produce a corrupt track.

    RULES:
    - At least one segment; every segment has at least one word
    - Word times are non-negative with start < end
    - Words are ordered and do not overlap within a segment
    - Every word lies inside its segment's [start, end]
    """
    if not captions.segments:
        raise CaptionValidationError("CaptionsResult has no segments")
    for idx, segment in enumerate(captions.segments):
        if not segment.words:
            raise CaptionValidationError("Segment {} has no words".format(idx))
        prev_end = None
        for word in segment.words:
            if word.start_s < 0 or not word.start_s < word.end_s:
                raise CaptionValidationError(
                    "Word {!r} in segment {} has invalid timing {}-{}".format(
                        word.text, idx, word.start_s, word.end_s
                    )
                )
            if prev_end is not None and word.start_s < prev_end - _SPAN_EPSILON_S:
                raise CaptionValidationError(
                    "Word {!r} in segment {} starts before the previous word ends".format(
                        word.text, idx
                    )
                )
            if (
                word.start_s < segment.start_s - _SPAN_EPSILON_S
                or word.end_s > segment.end_s + _SPAN_EPSILON_S
            ):
                raise CaptionValidationError(
                    "Word {!r} ({}-{}) lies outside segment {} span {}-{}".format(
                        word.text, word.start_s, word.end_s, idx,
                        segment.start_s, segment.end_s,
                    )
                )
            prev_end = word.end_s


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------


def build_header(style: CaptionStyle, reference_height: int = TARGET_HEIGHT) -> str:
    """Script info, both styles and the events format line."""
    margin_v = bottom_margin(reference_height)
    text = hex_to_ass_color(style.text_color)
    highlight = hex_to_ass_color(style.highlight_color)
    highlight_back = hex_to_ass_color(style.highlight_color, HIGHLIGHT_BACK_ALPHA)

    def style_line(name: str, primary: str, secondary: str, back: str) -> str:
        return (
            "Style: {name},{font},{size},{primary},{secondary},{outline},{back},"
            "1,0,0,0,100,100,0,0,1,2,1,2,10,10,{margin_v},1"
        ).format(
            name=name,
            font=FONT_NAME,
            size=style.font_size_px,
            primary=primary,
            secondary=secondary,
            outline=OUTLINE_COLOR,
            back=back,
            margin_v=margin_v,
        )

    lines = [
        "[Script Info]",
        "Title: Clipwise Captions",
        "ScriptType: v4.00+",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        "YCbCr Matrix: None",
        "PlayResY: {}".format(reference_height),
        "",
        "[V4+ Styles]",
        STYLE_FORMAT,
        style_line("Default", text, text, SHADOW_COLOR),
        style_line("Highlight", highlight, highlight, highlight_back),
        "",
        "[Events]",
        EVENT_FORMAT,
    ]
    return "\n".join(lines) + "\n"


def karaoke_events(segment: CaptionSegment, style: CaptionStyle) -> list[str]:
    """One Dialogue line per word of ``segment``."""
    active = "{{\\1c{}\\3c{}\\bord{}}}".format(
        hex_to_ass_color(style.highlight_color), OUTLINE_COLOR, ACTIVE_BORDER
    )
    inactive = "{{\\1c{}\\3c{}\\bord{}}}".format(
        hex_to_ass_color(style.text_color), OUTLINE_COLOR, INACTIVE_BORDER
    )
    texts = [escape_ass_text(w.text) for w in segment.words]

    events = []
    for i, word in enumerate(segment.words):
        line = " ".join(
            (active if j == i else inactive) + text for j, text in enumerate(texts)
        )
        events.append(
            "Dialogue: 0,{},{},Default,,0,0,0,,{}".format(
                format_ass_time(word.start_s), format_ass_time(word.end_s), line
            )
        )
    return events


def encode(captions: CaptionsResult, reference_height: int = TARGET_HEIGHT) -> str:
    """Encode a CaptionsResult as a complete ASS karaoke script.

    Raises:
        CaptionValidationError: if ``captions`` is malformed.
    """
    validate_captions(captions)
    events: list[str] = []
    for segment in captions.segments:
        events.extend(karaoke_events(segment, captions.style))
    return build_header(captions.style, reference_height) + "".join(e + "\n" for e in events)


class ASSKaraokeFormatter(BaseFormatter):
    """Formatter producing the burn-in subtitle track.

    RULES:
    - Returns a 1-element list with suffix "-captions.ass"
    - reference_height must match the rendered video height
    """

    def __init__(self, reference_height: int = TARGET_HEIGHT) -> None:
        self.reference_height = reference_height

    @property
    def name(self) -> str:
        return "ASS Karaoke Subtitles"

    def format(self, captions: CaptionsResult) -> list[FormatterOutput]:
        return [
            FormatterOutput(
                suffix="-captions.ass",
                content=encode(captions, self.reference_height),
                media_type="text/x-ssa",
            )
        ]
