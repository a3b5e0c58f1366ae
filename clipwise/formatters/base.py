"""Abstract base formatter and output container.

WHY: A clip's CaptionsResult is written out in more than one shape (the
burn-in subtitle track, the stored caption payload). This base class
enforces a consistent interface so the renderer, CLI, and API layers can
work with any formatter generically.

HOW: BaseFormatter is an ABC with two requirements: a ``name`` property
and a ``format()`` method. FormatterOutput is a plain dataclass that
bundles a file suffix with its content and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list: every current formatter returns one item
- ``suffix`` starts with a hyphen, e.g. ``"-captions.ass"``
- The caller is responsible for prepending the clip filename stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from clipwise.core.ir import CaptionsResult


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the clip stem,
                e.g. ``"-captions.ass"`` → ``"clip-3-captions.ass"``.
        content: The file content.
        media_type: MIME type for the content, e.g. ``"application/json"``.
    """

    suffix: str
    content: str | bytes
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all caption formatters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'ASS Karaoke Subtitles'."""

    @abstractmethod
    def format(self, captions: CaptionsResult) -> list[FormatterOutput]:
        """Convert a clip's captions into one or more output files."""
