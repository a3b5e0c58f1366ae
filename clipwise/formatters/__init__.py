"""Caption formatter registry: pluggable format hub.

WHY: The renderer, CLI, and API layers need a single lookup to find the
right formatter by name. A central dict makes it trivial to add new
formats: create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["ass_karaoke"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags, URLs, etc.)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clipwise.formatters.ass_karaoke import ASSKaraokeFormatter
from clipwise.formatters.captions_json import CaptionsJSONFormatter

if TYPE_CHECKING:
    from clipwise.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "ass_karaoke": ASSKaraokeFormatter,
    "captions_json": CaptionsJSONFormatter,
}
