"""Clipwise: long-form video to captioned vertical clips.

WHY: Long videos hide a handful of moments that work as standalone short
clips. Finding them, captioning them word by word, and reframing them
for 9:16 screens is repetitive work that this package automates.

HOW: Five-stage pipeline: transcribe (speech-to-text collaborator),
select highlights (language-model collaborator + local filtering),
group captions (language-model collaborator + anti-hallucination
validation), encode karaoke subtitles (pure ASS encoder), render clips
(ffmpeg extract → crop → burn-in). Each stage is independently testable.

RULES:
- The core IR (clipwise.core.ir) is the contract between stages
- No caption word may be fabricated; timing always comes from the transcript
- Per-clip failures never abort sibling clips
"""

__version__ = "0.1.0"
