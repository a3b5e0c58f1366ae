"""Shared test fixtures for the clipwise test suite.

WHY: Most test modules need the same small Spanish transcript (three
sentences over twenty seconds) and a stand-in for the model client.
Centralizing them here keeps timings consistent across tests.

HOW: Pytest fixtures provide the raw Whisper-shaped response, the
Transcript IR built from it, clip-relative words, and a fake client
whose generate_object() answers are queued per schema name, and a fake
media engine that writes placeholder files instead of running ffmpeg.

RULES:
- Word timings are non-overlapping and ordered
- Segment edges are at 0, 5, 10 and 20 seconds
- FakeModelClient never touches the network
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from clipwise.core.ir import Transcript, TranscriptWord
from clipwise.errors import MediaEncodeFailed


# ---------------------------------------------------------------------------
# Sample transcript: three sentences, 0-20s
# ---------------------------------------------------------------------------

SAMPLE_SEGMENTS: list[dict[str, Any]] = [
    {"id": 0, "start": 0.0, "end": 5.0, "text": " Hola a todos"},
    {"id": 1, "start": 5.0, "end": 10.0, "text": " hoy hablamos de virales"},
    {"id": 2, "start": 10.0, "end": 20.0, "text": " el hook es lo mas importante de todo"},
]

SAMPLE_WORDS: list[dict[str, Any]] = [
    {"word": "Hola",        "start": 0.50,  "end": 0.90},
    {"word": "a",           "start": 0.90,  "end": 1.10},
    {"word": "todos",       "start": 1.10,  "end": 1.60},
    {"word": "hoy",         "start": 5.20,  "end": 5.50},
    {"word": "hablamos",    "start": 5.50,  "end": 6.10},
    {"word": "de",          "start": 6.10,  "end": 6.30},
    {"word": "virales",     "start": 6.30,  "end": 7.00},
    {"word": "el",          "start": 10.20, "end": 10.40},
    {"word": "hook",        "start": 10.40, "end": 10.90},
    {"word": "es",          "start": 10.90, "end": 11.10},
    {"word": "lo",          "start": 11.10, "end": 11.30},
    {"word": "mas",         "start": 11.30, "end": 11.60},
    {"word": "importante",  "start": 11.60, "end": 12.40},
    {"word": "de",          "start": 12.40, "end": 12.60},
    {"word": "todo",        "start": 12.60, "end": 13.10},
]


@pytest.fixture
def whisper_response() -> dict[str, Any]:
    """verbose_json transcription response for the sample video."""
    return {
        "task": "transcribe",
        "language": "spanish",
        "duration": 20.0,
        "text": "Hola a todos hoy hablamos de virales el hook es lo mas importante de todo",
        "segments": [dict(s) for s in SAMPLE_SEGMENTS],
        "words": [dict(w) for w in SAMPLE_WORDS],
    }


@pytest.fixture
def sample_transcript() -> Transcript:
    """The sample transcript as IR."""
    return Transcript.from_dict({
        "text": "Hola a todos hoy hablamos de virales el hook es lo mas importante de todo",
        "language": "es",
        "duration": 20.0,
        "segments": [dict(s) for s in SAMPLE_SEGMENTS],
        "words": [dict(w) for w in SAMPLE_WORDS],
    })


@pytest.fixture
def hola_words() -> list[TranscriptWord]:
    """Four clip-relative words: Hola esto es importante."""
    return [
        TranscriptWord("Hola", 0.00, 0.40),
        TranscriptWord("esto", 0.40, 0.80),
        TranscriptWord("es", 0.80, 1.00),
        TranscriptWord("importante", 1.00, 1.70),
    ]


def caption_group(*words: tuple[str, float, float], emphasis: bool = False) -> dict[str, Any]:
    """Build one caption segment dict in the model's answer shape."""
    return {
        "start": words[0][1],
        "end": words[-1][2],
        "position": "bottom",
        "words": [
            {"word": text, "start": start, "end": end, "emphasis": emphasis}
            for text, start, end in words
        ],
    }


def captions_answer(groups: list[dict[str, Any]], hook: str = "", **style: Any) -> dict[str, Any]:
    """A full caption model answer with default style."""
    return {
        "captions": groups,
        "style": {
            "font_size": style.get("font_size", 36),
            "color": style.get("color", "#FFFFFF"),
            "highlight_color": style.get("highlight_color", "#FFD700"),
        },
        "hook": hook,
    }


def highlight_item(start: float, end: float, title: str = "Clip", score: float = 80) -> dict[str, Any]:
    """One highlight in the model's answer shape."""
    return {
        "title": title,
        "description": "Why it works",
        "start": start,
        "end": end,
        "hook_text": "Hook",
        "score": score,
        "tags": ["tag"],
    }


class FakeModelClient:
    """Stands in for OpenAIClient in core and pipeline tests.

    generate_object() pops the next queued answer for the schema name;
    an Exception instance in the queue is raised instead. transcribe()
    returns the configured transcript or raises the configured error.
    """

    def __init__(self, transcript: Transcript | None = None) -> None:
        self.answers: dict[str, list[Any]] = {}
        self.calls: list[dict[str, Any]] = []
        self.transcript = transcript
        self.transcribe_error: Exception | None = None
        self.transcribe_calls = 0

    def queue(self, schema_name: str, *answers: Any) -> FakeModelClient:
        self.answers.setdefault(schema_name, []).extend(answers)
        return self

    async def generate_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(kwargs)
        queue = self.answers.get(kwargs["schema_name"]) or []
        if not queue:
            raise AssertionError("No answer queued for {}".format(kwargs["schema_name"]))
        answer = queue.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def transcribe(self, file_path: Any, language: str | None = None, **kwargs: Any) -> Transcript:
        self.transcribe_calls += 1
        if self.transcribe_error is not None:
            raise self.transcribe_error
        assert self.transcript is not None
        return self.transcript


class FakeEngine:
    """Stands in for FFmpegEngine in pipeline and CLI tests.

    Each stage writes a small file to ``dest`` like ffmpeg would.
    Clips whose source start time is in ``fail_at`` fail extraction;
    those in ``hang_at`` never finish it.
    """

    def __init__(self, fail_at: Any = (), hang_at: Any = ()) -> None:
        self.fail_at = set(fail_at)
        self.hang_at = set(hang_at)
        self.extracts: list[tuple[float, float]] = []
        self.subtitles: list[str] = []

    async def extract(self, source: Any, start_s: float, end_s: float, dest: Any) -> None:
        self.extracts.append((start_s, end_s))
        if start_s in self.hang_at:
            await asyncio.sleep(10)
        if start_s in self.fail_at:
            raise MediaEncodeFailed("extract", "exit code 1", returncode=1)
        Path(dest).write_bytes(b"extracted")

    async def crop_and_scale(self, source: Any, dest: Any, position: str = "center",
                             width: int = 1080, height: int = 1920) -> None:
        Path(dest).write_bytes(b"cropped")

    async def burn_subtitles(self, source: Any, subtitle_path: Any, dest: Any) -> None:
        self.subtitles.append(Path(subtitle_path).read_text(encoding="utf-8"))
        Path(dest).write_bytes(b"captioned")

    async def thumbnail(self, source: Any, dest: Any, at_s: float = 1.0,
                        width: int = 1080, height: int = 1920) -> None:
        Path(dest).write_bytes(b"jpg")


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()
