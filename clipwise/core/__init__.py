"""Core IR, transcript helpers, and the two model-backed stages.

WHY: The core package holds the contract between stages (ir.py) and the
logic that owns validation around the language-model calls: highlight
filtering and caption anti-hallucination checks.

HOW: ir.py defines the data structures, transcript.py transforms them,
prompts.py builds the request text, highlights.py and captions.py issue
one structured request each and validate what comes back.

RULES:
- IR dataclasses are the contract: change with care
- Nothing in core touches the filesystem or the media engine
- Model responses are validated here, never trusted downstream
"""
