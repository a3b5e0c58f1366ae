"""JSON Schemas shared by the model requests and the persisted payloads.

WHY: The same schema that constrains a model response also validates
what we store, so a payload that passed generation is always loadable.

HOW: load_schema() reads a ``*.schema.json`` file next to this module
and caches it per name.
"""

from __future__ import annotations

import json
from pathlib import Path

_SCHEMA_DIR = Path(__file__).resolve().parent

_CACHED_SCHEMAS: dict[str, dict] = {}


def load_schema(name: str) -> dict:
    """Load and cache ``{name}.schema.json``."""
    if name not in _CACHED_SCHEMAS:
        with open(_SCHEMA_DIR / "{}.schema.json".format(name), encoding="utf-8") as f:
            _CACHED_SCHEMAS[name] = json.load(f)
    return _CACHED_SCHEMAS[name]
