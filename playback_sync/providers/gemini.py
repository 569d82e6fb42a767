"""Gemini transcription and summarization provider.

Calls the Gemini REST API (generateContent) with httpx. Transcription asks
for a JSON response matching a word/startTime/endTime schema and converts
it to WordTimestamp objects.
"""

import base64
import json
import logging
import time

import httpx

from playback_sync.models import SummaryResult, WordTimestamp
from playback_sync.providers.interface import (
    SummarizationProvider,
    TranscriptionProvider,
)
from playback_sync.utils.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderQuotaError,
    ProviderResponseError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"
PROVIDER = "gemini"

TRANSCRIBE_PROMPT = (
    "Transcribe this audio. For every word give its start and end time in "
    "seconds. Mark inaudible parts with the word `[inaudible]`."
)
SUMMARIZE_PROMPT = (
    "You are an expert at summaries. Read the following audio transcript and "
    "write a concise, easy to read summary. Use bullet points for the main "
    "topics.\n\nTRANSCRIPT:\n---\n{text}\n---\n\nSUMMARY:"
)

TRANSCRIPTION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "transcription": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "word": {"type": "STRING"},
                    "startTime": {"type": "NUMBER"},
                    "endTime": {"type": "NUMBER"},
                },
                "required": ["word", "startTime", "endTime"],
            },
        }
    },
    "required": ["transcription"],
}


class GeminiProvider(TranscriptionProvider, SummarizationProvider):
    """Gemini generateContent client.

    Args:
        api_key: Gemini API key.
        model: Model name (default gemini-2.5-flash).
        timeout: Request timeout in seconds.
        base_url: API base URL.
        client: Optional shared httpx.AsyncClient.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ProviderAuthError("Gemini API key is not configured", provider=PROVIDER)
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _generate(self, body: dict) -> str:
        """POST a generateContent request and return the first candidate's text.

        Raises:
            ProviderAuthError: On a rejected API key.
            ProviderQuotaError: On quota exhaustion or rate limiting.
            ProviderResponseError: If the response carries no text.
            ProviderError: On network or other HTTP failures.
        """
        url = f"{self._base_url}/models/{self._model}:generateContent"
        try:
            response = await self._client.post(
                url,
                headers={"x-goog-api-key": self._api_key},
                json=body,
            )
        except httpx.RequestError as exc:
            raise ProviderError(
                f"Network error calling Gemini: {exc}", provider=PROVIDER
            ) from exc

        if response.status_code != 200:
            self._raise_for_status(response)

        try:
            payload = response.json()
            parts = payload["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderResponseError(
                "Malformed Gemini response", provider=PROVIDER
            ) from exc
        if not text.strip():
            raise ProviderResponseError("Empty Gemini response", provider=PROVIDER)
        return text

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        message = response.text
        status = response.status_code
        if status in (401, 403) or "API key not valid" in message:
            raise ProviderAuthError(
                "The Gemini API key is invalid", provider=PROVIDER
            )
        if status == 429 or "quota" in message.lower():
            raise ProviderQuotaError(
                "Gemini quota exceeded, try again later", provider=PROVIDER
            )
        raise ProviderError(
            f"Gemini request failed with status {status}: {message[:200]}",
            provider=PROVIDER,
        )

    async def transcribe(self, audio: bytes, mime_type: str) -> list[WordTimestamp]:
        """Transcribe audio into word timestamps.

        Raises:
            ProviderError: If the input is not audio or the call fails.
            ProviderResponseError: If the transcription is empty or malformed.
        """
        if not mime_type.startswith("audio/"):
            raise ProviderError(
                f"Invalid file type '{mime_type}', expected audio", provider=PROVIDER
            )
        body = {
            "contents": [
                {
                    "parts": [
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(audio).decode("ascii"),
                            }
                        },
                        {"text": TRANSCRIBE_PROMPT},
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": TRANSCRIPTION_SCHEMA,
            },
        }
        started = time.monotonic()
        text = await self._generate(body)
        try:
            items = json.loads(text.strip())["transcription"]
            words = [WordTimestamp.from_dict(item) for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise ProviderResponseError(
                f"Could not parse transcription: {exc}", provider=PROVIDER
            ) from exc
        if not words:
            raise ProviderResponseError(
                "Gemini returned an empty transcription", provider=PROVIDER
            )
        logger.info(
            "Transcribed %d words",
            len(words),
            extra={
                "component": "gemini",
                "operation": "transcribe",
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return words

    async def summarize(self, text: str) -> SummaryResult:
        """Summarize a transcript. Only authentication errors are raised."""
        if not text or not text.strip():
            return SummaryResult(success=False, error="Input text must not be empty")
        body = {"contents": [{"parts": [{"text": SUMMARIZE_PROMPT.format(text=text)}]}]}
        try:
            summary = await self._generate(body)
        except ProviderAuthError:
            raise
        except ProviderError as exc:
            logger.error(
                "Summarization failed: %s",
                exc,
                extra={"component": "gemini", "operation": "summarize", "error": str(exc)},
            )
            return SummaryResult(success=False, error=str(exc))
        return SummaryResult(success=True, text=summary.strip())
