"""Caption grouping with mandatory anti-hallucination validation.

WHY: Burned-in captions must show exactly what was said. The language
model is only trusted to decide WHERE to break lines and which words to
emphasize; every word text and every timestamp must come from the
transcript. A caption track with a fabricated or translated word is
worse than no captions at all.

HOW: generate_captions() sends the clip's words as a time-stamped block
in one deterministic request (temperature 0, schema "captions"). The
answer then goes through four local steps:
  1. check_hallucinations(): every output word must be an input word
  2. restore_timing()      : output words are aligned forward-only onto
                              the input words and take their text/timing
  3. rebalance_groups()    : groups are re-partitioned to 2..max words
  4. hook + style          : hook checked against the input words,
                              colors normalized with defaults as fallback

RULES:
- CaptionHallucinationError (hard fail) when any output word is not an
  input word (lowercase-trimmed comparison)
- Any other collaborator failure or unusable answer raises
  CaptionGenerationFailed
- Fewer than two input words → empty CaptionsResult, no request
- Position is always the options' position (bottom by default)
"""

from __future__ import annotations

import logging
import math
import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from clipwise.config import OPENAI_CAPTION_MODEL
from clipwise.core.ir import (
    CaptionSegment,
    CaptionsResult,
    CaptionStyle,
    CaptionWord,
    ScreenPosition,
    TranscriptWord,
    normalize_word,
)
from clipwise.core.prompts import build_caption_system_prompt, build_caption_user_prompt
from clipwise.core.transcript import format_words_block
from clipwise.errors import CaptionGenerationFailed, CaptionHallucinationError
from clipwise.schemas import load_schema

if TYPE_CHECKING:
    from clipwise.api.client import OpenAIClient

logger = logging.getLogger(__name__)

CAPTION_TEMPERATURE = 0.0
MIN_WORDS_PER_SEGMENT = 2
MAX_WORDS_PER_SEGMENT = 4
HOOK_WINDOW_S = 3.0


@dataclass
class CaptionOptions:
    """Options for one caption generation call.

    RULES:
    - max_words_per_segment within 2..4
    """

    max_words_per_segment: int = 3
    emphasize_keywords: bool = True
    include_hook: bool = True
    language: str = "en"
    position: ScreenPosition = ScreenPosition.BOTTOM

    def __post_init__(self) -> None:
        if not MIN_WORDS_PER_SEGMENT <= self.max_words_per_segment <= MAX_WORDS_PER_SEGMENT:
            raise ValueError(
                "max_words_per_segment must be within {}-{}, got {}".format(
                    MIN_WORDS_PER_SEGMENT, MAX_WORDS_PER_SEGMENT, self.max_words_per_segment
                )
            )
        self.position = ScreenPosition(self.position)


# ---------------------------------------------------------------------------
# Validation steps
# ---------------------------------------------------------------------------


def check_hallucinations(
    input_words: Sequence[TranscriptWord],
    output_texts: Sequence[str],
) -> None:
    """Raise CaptionHallucinationError if any output text is not an input word."""
    allowed = {normalize_word(w.text) for w in input_words}
    offending: list[str] = []
    for text in output_texts:
        norm = normalize_word(text)
        if norm not in allowed and norm not in offending:
            offending.append(norm)
    if offending:
        logger.error(
            "Model hallucination detected: %s (input words: %s)",
            offending,
            sorted(allowed),
        )
        raise CaptionHallucinationError(offending)


def restore_timing(
    input_words: Sequence[TranscriptWord],
    groups: Sequence[Sequence[tuple[str, bool]]],
) -> list[list[CaptionWord]]:
    """Map each model word onto the next matching input word.

    WHY: The model is told to copy timing, but copies are not trusted.
    Aligning by text keeps every displayed word tied to one transcript
    word, so text and timing are exactly the transcript's.

    HOW: One cursor walks the input words. Each output word consumes the
    first input word at or after the cursor with the same normalized
    text. Input words the model skipped are counted and logged.

    RULES:
    - Output order must follow input order; a word that cannot be found
      ahead of the cursor raises ValueError
    - Each input word is used at most once
    """
    cursor = 0
    skipped = 0
    restored: list[list[CaptionWord]] = []
    for group in groups:
        out_group: list[CaptionWord] = []
        for text, emphasize in group:
            target = normalize_word(text)
            match = cursor
            while match < len(input_words) and normalize_word(input_words[match].text) != target:
                match += 1
            if match == len(input_words):
                raise ValueError(
                    "caption word {!r} is out of order or repeated".format(text)
                )
            skipped += match - cursor
            source = input_words[match]
            out_group.append(
                CaptionWord(
                    text=source.text,
                    start_s=source.start_s,
                    end_s=source.end_s,
                    emphasize=bool(emphasize),
                )
            )
            cursor = match + 1
        restored.append(out_group)
    skipped += len(input_words) - cursor
    if skipped:
        logger.warning("Caption grouping left out %d transcript word(s)", skipped)
    return restored


def _split_evenly(group: list[CaptionWord], max_words: int) -> list[list[CaptionWord]]:
    """Split into ceil(n / max_words) chunks whose sizes differ by at most one."""
    n = len(group)
    chunks = max(1, math.ceil(n / max_words))
    base, extra = divmod(n, chunks)
    result: list[list[CaptionWord]] = []
    pos = 0
    for i in range(chunks):
        size = base + (1 if i < extra else 0)
        result.append(group[pos:pos + size])
        pos += size
    return result


def rebalance_groups(
    groups: Sequence[Sequence[CaptionWord]],
    max_words: int,
) -> list[list[CaptionWord]]:
    """Re-partition groups so each holds 2..max_words words.

    HOW: Oversize groups are split evenly. A single-word group joins a
    neighbour with room (previous first). When both neighbours are full,
    it is merged with one and the pair is split evenly again; if that
    still leaves a single word, every group from there to the end is
    re-split evenly as one run.

    RULES:
    - Word order is never changed; groups stay contiguous
    - With max_words == 2 and an odd word count no pairing exists: the
      lone word is dropped with a warning, like words restore_timing()
      cannot place
    - Raises ValueError only when the whole clip is a single word
    """
    out: list[list[CaptionWord]] = []
    for group in groups:
        if group:
            out.extend(_split_evenly(list(group), max_words))

    i = 0
    while i < len(out):
        if len(out[i]) >= MIN_WORDS_PER_SEGMENT:
            i += 1
            continue
        if len(out) == 1:
            raise ValueError("a caption segment needs at least two words")
        if i > 0 and len(out[i - 1]) < max_words:
            out[i - 1].extend(out.pop(i))
            continue
        if i + 1 < len(out) and len(out[i + 1]) < max_words:
            out[i + 1][:0] = out.pop(i)
            continue
        lo = i - 1 if i > 0 else i
        resplit = _split_evenly(out[lo] + out[lo + 1], max_words)
        if all(len(chunk) >= MIN_WORDS_PER_SEGMENT for chunk in resplit):
            out[lo:lo + 2] = resplit
            i = lo
            continue
        run = [word for group in out[lo:] for word in group]
        resplit = _split_evenly(run, max_words)
        if all(len(chunk) >= MIN_WORDS_PER_SEGMENT for chunk in resplit):
            out[lo:] = resplit
            i = lo
            continue
        # Groups before lo are full pairs, so the run is odd and so is the clip.
        dropped = out.pop(i)
        logger.warning(
            "Dropped caption word %r: %d words cannot be paired",
            dropped[0].text, sum(len(g) for g in out) + 1,
        )
    return out


def _bare(text: str) -> str:
    return normalize_word(text).strip(string.punctuation + "¿¡…")


def derive_hook(words: Sequence[TranscriptWord], window_s: float = HOOK_WINDOW_S) -> str:
    """The words spoken in the first ``window_s`` seconds, space-joined."""
    if not words:
        return ""
    cutoff = words[0].start_s + window_s
    return " ".join(w.text for w in words if w.start_s < cutoff)


def validate_hook(hook: str, words: Sequence[TranscriptWord]) -> bool:
    """True when every token of ``hook`` is one of ``words``.

    Surrounding punctuation is ignored on both sides.
    """
    allowed = {_bare(w.text) for w in words}
    tokens = [_bare(t) for t in hook.split()]
    return all(t in allowed for t in tokens if t)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _parse_groups(data: dict) -> list[list[tuple[str, bool]]]:
    raw = data.get("captions")
    if not isinstance(raw, list):
        raise ValueError("Response is missing the 'captions' list")
    groups: list[list[tuple[str, bool]]] = []
    for segment in raw:
        # Parsed for shape validation; times are replaced by restore_timing().
        parsed = CaptionSegment.from_dict(segment)
        groups.append([(w.text, w.emphasize) for w in parsed.words])
    return groups


async def generate_captions(
    words: Sequence[TranscriptWord],
    client: OpenAIClient,
    options: CaptionOptions | None = None,
    model: str | None = None,
    on_status: Callable[[str], None] | None = None,
) -> CaptionsResult:
    """Group a clip's words into karaoke caption segments.

    Args:
        words: The clip's transcript words, in order, clip-relative times.
        client: Collaborator exposing ``generate_object``.
        options: Grouping options; defaults apply when None.
        model: Model name override.
        on_status: Optional callback for status updates.

    Returns:
        CaptionsResult whose words are all transcript words with
        transcript timing.

    Raises:
        CaptionHallucinationError: the model returned a word not in ``words``.
        CaptionGenerationFailed: collaborator failure or unusable answer.
    """
    options = options or CaptionOptions()
    words = list(words)
    if len(words) < MIN_WORDS_PER_SEGMENT:
        logger.info("Only %d word(s) in clip window, skipping captions", len(words))
        return CaptionsResult(segments=[], style=CaptionStyle(), hook_text="")

    if on_status:
        on_status("Generating captions...")

    system = build_caption_system_prompt(options.language)
    prompt = build_caption_user_prompt(
        format_words_block(words),
        options.max_words_per_segment,
        options.emphasize_keywords,
        options.include_hook,
        options.language,
    )

    try:
        data = await client.generate_object(
            system=system,
            prompt=prompt,
            schema_name="captions",
            schema=load_schema("captions"),
            model=model or OPENAI_CAPTION_MODEL,
            temperature=CAPTION_TEMPERATURE,
        )
        raw_groups = _parse_groups(data)
    except Exception as exc:
        logger.error("Error generating captions: %s", exc)
        raise CaptionGenerationFailed(exc) from exc

    check_hallucinations(words, [text for group in raw_groups for text, _ in group])

    try:
        groups = rebalance_groups(
            restore_timing(words, raw_groups), options.max_words_per_segment
        )
    except ValueError as exc:
        raise CaptionGenerationFailed(exc) from exc

    if not options.emphasize_keywords:
        for group in groups:
            for w in group:
                w.emphasize = False

    hook = ""
    if options.include_hook:
        hook = (data.get("hook") or "").strip()
        if not hook or not validate_hook(hook, words):
            if hook:
                logger.warning("Discarding hook with words not in the clip: %r", hook)
            hook = derive_hook(words)

    result = CaptionsResult(
        segments=[CaptionSegment.from_words(g, position=options.position) for g in groups],
        style=CaptionStyle.from_dict(data.get("style") or {}),
        hook_text=hook,
    )
    logger.info(
        "Caption validation passed: %d segments, %d words, all from the transcription",
        len(result.segments),
        result.word_count,
    )
    return result
