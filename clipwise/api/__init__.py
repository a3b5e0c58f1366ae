"""OpenAI API client package: async interface to transcription and generation.

WHY: Transcription and both language-model stages talk to one external
service. This package keeps every HTTP detail behind an async client
class so core logic never builds requests.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. OpenAIClient provides
transcribe() and generate_object(). Response data is parsed into typed
dataclasses defined in models.py.

RULES:
- All HTTP calls to the model provider go through OpenAIClient
- Authentication is via Bearer token from config
"""

from clipwise.api.client import OpenAIAPIError, OpenAIClient, TranscriptionFailed
from clipwise.api.models import ChatCompletion, WhisperResponse

__all__ = [
    "ChatCompletion",
    "OpenAIAPIError",
    "OpenAIClient",
    "TranscriptionFailed",
    "WhisperResponse",
]
