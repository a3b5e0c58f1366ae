"""Configuration constants, language names, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Model names, binaries, render targets, and
language display names are plain data structures, not buried in
logic, so operators can tune them without touching the pipeline.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level dicts, sets, and strings, each overridable through an
environment variable. load_api_key() provides a clear error when the
key is missing.

RULES:
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
- TARGET_HEIGHT is also the subtitle reference height (PlayResY)
"""

from __future__ import annotations

import os
import tempfile

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Language display names (ISO 639-1 → name used in prompts)
# ---------------------------------------------------------------------------

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish (Español)",
    "fr": "French (Français)",
    "de": "German (Deutsch)",
    "it": "Italian (Italiano)",
    "pt": "Portuguese (Português)",
    "nl": "Dutch (Nederlands)",
    "pl": "Polish (Polski)",
    "ru": "Russian (Русский)",
    "ja": "Japanese (日本語)",
    "zh": "Chinese (中文)",
    "ko": "Korean (한국어)",
    "ar": "Arabic (العربية)",
}


def language_name(iso_code: str) -> str:
    """Return the display name for an ISO 639-1 code.

    Whisper reports some languages by full name ("spanish") rather than
    code; unknown values are passed through unchanged.
    """
    return LANGUAGE_NAMES.get((iso_code or "").lower(), iso_code)


# ---------------------------------------------------------------------------
# Supported source video extensions
# ---------------------------------------------------------------------------

SUPPORTED_VIDEO_FORMATS: set[str] = {
    ".mp4", ".mov", ".m4v", ".mkv", ".webm", ".avi",
}
"""Video file extensions accepted for processing (lowercase, with dot)."""

# ---------------------------------------------------------------------------
# Render targets
# ---------------------------------------------------------------------------

TARGET_WIDTH = 1080
TARGET_HEIGHT = 1920

# ---------------------------------------------------------------------------
# External service defaults
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_TRANSCRIPTION_MODEL = os.getenv("OPENAI_TRANSCRIPTION_MODEL", "whisper-1")
OPENAI_HIGHLIGHT_MODEL = os.getenv("OPENAI_HIGHLIGHT_MODEL", "gpt-4o")
OPENAI_CAPTION_MODEL = os.getenv("OPENAI_CAPTION_MODEL", "gpt-4o")

FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.getenv("FFPROBE_BINARY", "ffprobe")

# ---------------------------------------------------------------------------
# Pipeline defaults
# ---------------------------------------------------------------------------

TEMP_DIR = os.getenv("CLIPWISE_TEMP_DIR", tempfile.gettempdir())
MAX_CONCURRENT_RENDERS = int(os.getenv("CLIPWISE_MAX_CONCURRENT_RENDERS", "1"))
RENDER_TIMEOUT_S = float(os.getenv("CLIPWISE_RENDER_TIMEOUT_S", "900"))
STORAGE_DIR = os.getenv("CLIPWISE_STORAGE_DIR", "clipwise-storage")
PUBLIC_BASE_URL = os.getenv("CLIPWISE_PUBLIC_BASE_URL", "")


def load_api_key() -> str:
    """Load the OpenAI API key from the environment.

    WHY: The key is required for transcription and for both language-model
    calls. Loading it from the environment (via .env) keeps it out of
    source code.

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "OpenAI API key not configured. "
            "Please set OPENAI_API_KEY in your .env file."
        )
    return key
