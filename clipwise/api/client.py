"""Async HTTP client for the OpenAI transcription and chat-completion APIs.

WHY: Transcription, highlight scoring and caption grouping are all
requests to one external service. This module keeps every HTTP detail
(auth, multipart encoding, structured-output request shape, response
parsing) behind a single client class, so the core stages only see
Transcript objects and validated dicts.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. OpenAIClient is an
async context manager: enter it to get an authenticated client, exit to
close the connection pool. shared_client() keeps one process-wide
instance for long-running hosts (the HTTP server).

RULES:
- Always use the async context manager, or shared_client()
- timestamp_granularities[] is sent as repeated multipart fields, one
  per granularity, never as a JSON-encoded array (the API silently
  returns no word timestamps for the latter)
- generate_object() validates the parsed answer with jsonschema against
  the full schema before returning it
- transport= is for tests (httpx.MockTransport)
- Status callback (on_status) is optional; when provided, called with status strings
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path

import httpx
import jsonschema

from clipwise.api.models import ChatCompletion, WhisperResponse
from clipwise.config import OPENAI_BASE_URL, OPENAI_TRANSCRIPTION_MODEL, load_api_key
from clipwise.core.ir import Transcript
from clipwise.errors import ClipwiseError

logger = logging.getLogger(__name__)

TIMESTAMP_GRANULARITIES = ["segment", "word"]

# Keywords the strict structured-output mode rejects. They are still
# enforced locally by jsonschema.
_STRICT_UNSUPPORTED = {"$schema", "title", "minimum", "maximum", "minItems"}


class OpenAIAPIError(ClipwiseError):
    """Raised when the API returns an error response.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"OpenAI API error {status_code}: {message}")


class TranscriptionFailed(ClipwiseError):
    """Raised when a transcription request fails or its response is unusable."""


def strict_schema(node: object, in_properties: bool = False) -> object:
    """Copy a JSON Schema without keywords strict mode does not accept.

    Keys directly under ``properties`` are property names, not keywords,
    and are always kept.
    """
    if isinstance(node, dict):
        return {
            key: strict_schema(value, in_properties=(not in_properties and key == "properties"))
            for key, value in node.items()
            if in_properties or key not in _STRICT_UNSUPPORTED
        }
    if isinstance(node, list):
        return [strict_schema(item) for item in node]
    return node


class OpenAIClient:
    """Async client for speech-to-text and structured generation.

    RULES:
    - Use as: async with OpenAIClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url defaults to OPENAI_BASE_URL from config
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transcription_model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self._transcription_model = transcription_model or OPENAI_TRANSCRIPTION_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> OpenAIClient:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.close()

    async def open(self) -> None:
        """Create the connection pool (idempotent)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=httpx.Timeout(300.0, connect=30.0),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not opened."""
        if self._client is None:
            raise RuntimeError(
                "OpenAIClient must be used as an async context manager: "
                "async with OpenAIClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------

    async def transcribe(
        self,
        file_path: str | Path,
        language: str | None = None,
        prompt: str | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> Transcript:
        """Transcribe an audio/video file with segment and word timestamps.

        HOW: Sends a multipart/form-data POST to /audio/transcriptions with
        response_format=verbose_json. The granularities list is passed as
        a list value in ``data``, which httpx encodes as one form field per
        item.

        RULES:
        - file_path must point to an existing file
        - language is an optional ISO 639-1 hint
        - Raises OpenAIAPIError on non-2xx responses
        - Raises TranscriptionFailed on network errors or unparsable bodies
        - Logs a warning when the response holds no word timestamps

        Args:
            file_path: Path to the audio/video file.
            language: Optional ISO 639-1 language hint.
            prompt: Optional vocabulary/context prompt.
            on_status: Optional callback for status updates.

        Returns:
            The normalized Transcript.
        """
        client = self._ensure_client()
        file_path = Path(file_path)
        if on_status:
            on_status("Transcribing {}...".format(file_path.name))

        data: dict = {
            "model": self._transcription_model,
            "response_format": "verbose_json",
            "timestamp_granularities[]": list(TIMESTAMP_GRANULARITIES),
        }
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt

        try:
            with open(file_path, "rb") as f:
                resp = await client.post(
                    "/audio/transcriptions",
                    data=data,
                    files={"file": (file_path.name, f)},
                )
        except httpx.HTTPError as exc:
            raise TranscriptionFailed(f"Transcription request failed: {exc}") from exc

        if resp.status_code != 200:
            raise OpenAIAPIError(resp.status_code, resp.text)

        try:
            transcript = WhisperResponse.from_dict(resp.json()).to_transcript()
        except (ValueError, KeyError, TypeError) as exc:
            raise TranscriptionFailed(f"Unexpected transcription response: {exc}") from exc

        if not transcript.words:
            logger.warning(
                "Transcription of %s returned no word-level timestamps", file_path.name
            )
        logger.info(
            "Transcribed %s: %d segments, %d words, language=%s, %.1fs",
            file_path.name,
            len(transcript.segments),
            len(transcript.words),
            transcript.language,
            transcript.duration_s,
        )
        if on_status:
            on_status("Transcription complete.")
        return transcript

    # ------------------------------------------------------------------
    # Structured generation
    # ------------------------------------------------------------------

    async def generate_object(
        self,
        system: str,
        prompt: str,
        schema_name: str,
        schema: dict,
        model: str,
        temperature: float = 0.0,
    ) -> dict:
        """Request a JSON object that conforms to ``schema``.

        WHY: Both model-backed stages need a structured answer, not prose.
        The strict json_schema response format constrains generation; the
        local jsonschema check guards the bounds strict mode cannot express.

        RULES:
        - Raises OpenAIAPIError on non-2xx responses
        - Raises ValueError on refusals or non-JSON content
        - Raises jsonschema.ValidationError when the answer breaks the schema
        """
        client = self._ensure_client()
        body = {
            "model": model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": strict_schema(schema),
                },
            },
        }

        resp = await client.post("/chat/completions", json=body)
        if resp.status_code != 200:
            raise OpenAIAPIError(resp.status_code, resp.text)

        completion = ChatCompletion.from_dict(resp.json())
        if completion.refusal:
            raise ValueError(f"Model refused the request: {completion.refusal}")
        if not completion.content:
            raise ValueError(
                f"Model returned no content (finish_reason={completion.finish_reason})"
            )

        result = json.loads(completion.content)
        jsonschema.validate(instance=result, schema=schema)
        logger.debug("Structured %s response from %s validated", schema_name, completion.model)
        return result


# ---------------------------------------------------------------------------
# Process-wide handle
# ---------------------------------------------------------------------------

_shared: OpenAIClient | None = None
_shared_lock = asyncio.Lock()


async def shared_client() -> OpenAIClient:
    """Return the process-wide client, creating and opening it once."""
    global _shared
    async with _shared_lock:
        if _shared is None:
            client = OpenAIClient()
            await client.open()
            _shared = client
        return _shared


async def close_shared_client() -> None:
    """Close the process-wide client if it exists (idempotent)."""
    global _shared
    async with _shared_lock:
        if _shared is not None:
            await _shared.close()
            _shared = None
