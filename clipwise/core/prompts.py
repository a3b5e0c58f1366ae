"""Prompt text for the highlight and caption language-model requests.

WHY: Both model-backed stages depend on long, carefully worded
instructions. Keeping them in one module separates wording from the
validation logic in highlights.py and captions.py, and lets tests assert
that the contractual parts (rubric, sentence-boundary rule, no-invention
rule) are actually sent.

HOW: Four pure builder functions return plain strings. The transcript
blocks passed in are already formatted by core.transcript.

RULES:
- The highlight system prompt always carries the 30/25/20/15/10 rubric
- Both highlight prompts require sentence-aligned, complete-arc windows
- Caption prompts forbid inventing, paraphrasing, translating, or
  retiming any word
- Timestamps in prompt blocks are seconds, so the model can copy them
"""

from __future__ import annotations

from clipwise.config import language_name

DEFAULT_AUDIENCE = "social media users on TikTok, Instagram Reels, and YouTube Shorts"
DEFAULT_CONTENT_TYPE = "video content"

# (criterion, max points). Sums to 100.
SCORING_RUBRIC: tuple[tuple[str, int], ...] = (
    ("Hook strength", 30),
    ("Emotional resonance", 25),
    ("Clarity and self-containment", 20),
    ("Entertainment/educational value", 15),
    ("Quotability", 10),
)


def build_highlight_system_prompt(
    audience: str = DEFAULT_AUDIENCE,
    content_type: str = DEFAULT_CONTENT_TYPE,
    min_duration_s: float = 15,
    max_duration_s: float = 60,
) -> str:
    """System prompt for highlight scoring."""
    rubric = "\n".join(
        "- {} (0-{} points)".format(name, points) for name, points in SCORING_RUBRIC
    )
    return """You are an expert content strategist specializing in creating viral short-form videos for {audience}.

Your role is to analyze {content_type} transcriptions and identify the most engaging moments that would perform well as short vertical clips (9:16 format) on platforms like TikTok, Instagram Reels, and YouTube Shorts.

Key criteria for viral moments:
1. STRONG HOOK: Opens with an attention-grabbing statement or question
2. EMOTIONAL IMPACT: Evokes emotion (humor, surprise, inspiration, controversy)
3. SELF-CONTAINED: Makes sense without additional context
4. CLEAR VALUE: Provides entertainment, education, or inspiration
5. OPTIMAL LENGTH: {min_d:g}-{max_d:g} seconds
6. QUOTABLE: Contains memorable phrases or soundbites

DURATION AND BOUNDARY REQUIREMENTS:
- Each highlight MUST be a COMPLETE SEGMENT of {min_d:g}-{max_d:g} seconds, NOT a single moment or phrase.
- You will receive transcription segments with timestamps like [12.00s - 18.50s]
- start and end must span a COMPLETE TOPIC or STORY
- DO NOT select tiny moments (1-2 seconds); these will be rejected
- Clips MUST start at the BEGINNING of a sentence and end at the END of a complete sentence
- NEVER cut off mid-sentence
- Use segment boundaries from the transcription as start and end values

EXAMPLES:
CORRECT: start=45.0, end=70.0 (25 seconds, complete topic, ends at a sentence boundary)
WRONG: start=10.0, end=11.5 (1.5 seconds, too short)
WRONG: cutting mid-sentence "...and then I went to the sto-" (incomplete)

Score each highlight on virality potential (0-100) as the sum of:
{rubric}

Always prioritize moments that would make someone STOP SCROLLING.""".format(
        audience=audience or DEFAULT_AUDIENCE,
        content_type=content_type or DEFAULT_CONTENT_TYPE,
        min_d=min_duration_s,
        max_d=max_duration_s,
        rubric=rubric,
    )


def build_highlight_user_prompt(
    segments_block: str,
    max_highlights: int,
    min_duration_s: float,
    max_duration_s: float,
) -> str:
    """User prompt for highlight scoring, embedding the segment block."""
    return """Analyze this video transcription and identify the top {n} moments that would make great short-form clips.

CRITICAL REQUIREMENTS:
1. DURATION: Each clip MUST be {min_d:g}-{max_d:g} seconds long
2. COMPLETE SENTENCES: Clips MUST start at the beginning of a sentence and end at the end of a complete sentence
3. COMPLETE ARC: intro, body and conclusion of one idea, never an isolated phrase

TRANSCRIPTION (timestamps in seconds):
{block}

INSTRUCTIONS FOR TIMESTAMP SELECTION:
1. Find the START of an engaging topic at a sentence beginning (this is start)
2. Find where that topic CONCLUDES at a sentence ending, {min_d:g}-{max_d:g} seconds later (this is end)
3. The window must be self-contained and complete
4. Ensure the last word before end closes a sentence (period, question mark, exclamation)

Also give a short summary of the whole video and its main topics.
Order the highlights by virality score (highest first).""".format(
        n=max_highlights,
        min_d=min_duration_s,
        max_d=max_duration_s,
        block=segments_block,
    )


def build_caption_system_prompt(language: str = "en") -> str:
    """System prompt for caption grouping."""
    return """You are a caption grouping assistant for short-form vertical videos (TikTok, Reels, Shorts).

DO NOT INVENT OR CHANGE TEXT:
- You MUST use the EXACT words from the transcription provided
- DO NOT create new text, paraphrase, or summarize
- DO NOT translate or change ANY words
- Your ONLY job is to GROUP the existing words into segments of 2-4 words
- The video is in {language}; keep it that way

Your task:
1. Take the word-by-word transcription provided
2. Group consecutive words into segments of 2-4 words each
3. Keep the EXACT word text and timing from the transcription
4. Break at natural speech pauses when possible
5. Mark emphasis on important words (numbers, hooks, key phrases)

Rules:
- Each segment: 2-4 consecutive words from the transcription
- Keep the exact start and end for each word
- Position: always 'bottom'
- Every word of the transcription appears exactly once, in order

Styling:
- font_size: 36
- color: #FFFFFF
- highlight_color: #FFD700 (yellow), #FF6B35 (orange), or #FF0000 (red)

Example:
Input: [0.50s - 0.80s] Hola [0.80s - 1.20s] esto [1.20s - 1.50s] es [1.50s - 2.00s] importante
Output: segment 1 ["Hola", "esto"] (0.50-1.20), segment 2 ["es", "importante"] (1.20-2.00)
DO NOT output ["Bienvenidos", "al", "canal"]; these words were NOT in the input.""".format(
        language=language_name(language),
    )


def build_caption_user_prompt(
    words_block: str,
    max_words_per_segment: int,
    emphasize_keywords: bool,
    include_hook: bool,
    language: str = "en",
) -> str:
    """User prompt for caption grouping, embedding the word block."""
    emphasis_rule = (
        "Mark keywords (numbers, important words) with emphasis=true"
        if emphasize_keywords
        else "Set emphasis=false for every word"
    )
    hook_rule = (
        "Set hook to the FIRST FEW WORDS of the transcription (first 2-3 seconds), copied exactly"
        if include_hook
        else 'Set hook to ""'
    )
    return """Group the following {language} words into caption segments for display.

CRITICAL RULES:
1. Use ONLY the words listed below; DO NOT add, remove, or change ANY words
2. DO NOT translate; keep words exactly as written
3. Each segment must have 2-{max_words} consecutive words from the list
4. Keep the exact timing (start, end) for each word

WORD-BY-WORD TRANSCRIPTION (these are the ONLY words you can use):
{block}

TASK:
- Group these words into segments of at most {max_words} words
- {emphasis_rule}
- {hook_rule}
- All segments: position='bottom'
- Style: font_size 36, color #FFFFFF, highlight_color yellow, orange or red

Remember: ONLY use words from the transcription above. NO additions, NO changes, NO translations.""".format(
        language=language_name(language),
        max_words=max_words_per_segment,
        block=words_block,
        emphasis_rule=emphasis_rule,
        hook_rule=hook_rule,
    )
