"""Caption payload formatter: the JSON stored on each clip.

WHY: A clip keeps its CaptionsResult so captions can be shown, edited or
re-burned later without another model call. The stored payload uses the
same schema the caption model answered with, so any payload written
here can be loaded back with CaptionsResult.from_dict().

HOW: Serializes CaptionsResult.to_dict(), validates it against
captions.schema.json with jsonschema, and returns pretty-printed JSON.

RULES:
- Output suffix is "-captions.json"
- Schema validation is mandatory: raises on invalid output
- Non-ASCII word text is written as-is (ensure_ascii=False)
"""

from __future__ import annotations

import json

import jsonschema

from clipwise.core.ir import CaptionsResult
from clipwise.formatters.base import BaseFormatter, FormatterOutput
from clipwise.schemas import load_schema


def captions_payload(captions: CaptionsResult) -> dict:
    """The validated dict form of ``captions``.

    Raises:
        jsonschema.ValidationError: if the payload breaks the schema.
    """
    payload = captions.to_dict()
    jsonschema.validate(instance=payload, schema=load_schema("captions"))
    return payload


class CaptionsJSONFormatter(BaseFormatter):
    """Formatter producing the persisted caption payload."""

    @property
    def name(self) -> str:
        return "Captions JSON"

    def format(self, captions: CaptionsResult) -> list[FormatterOutput]:
        content = json.dumps(captions_payload(captions), indent=2, ensure_ascii=False)
        return [
            FormatterOutput(
                suffix="-captions.json",
                content=content,
                media_type="application/json",
            )
        ]
