"""
OpenAI provider - chat completions and audio transcription over REST.

Implements the ModelProvider and Transcriber capabilities.
"""

from typing import Any

import httpx

from chatgate.exceptions import ModelCallError, TranscriptionError
from chatgate.models.domain import ContentKind, ContentPart, ModelRequest
from chatgate.observability.logging import get_logger

logger = get_logger(__name__)


def _part_to_payload(part: ContentPart) -> dict[str, Any]:
    if part.kind == ContentKind.TEXT:
        return {"type": "text", "text": part.text}
    return {"type": "image_url", "image_url": {"url": part.image_url, "detail": part.detail}}


def build_completion_payload(request: ModelRequest) -> dict[str, Any]:
    """Serialize a ModelRequest into the chat completions wire format."""
    return {
        "model": request.model,
        "messages": [
            {
                "role": message.role.value,
                "content": [_part_to_payload(part) for part in message.parts],
            }
            for message in request.messages
        ],
    }


class OpenAIProvider:
    """OpenAI-compatible chat completion and transcription client."""

    COMPLETIONS_PATH = "/chat/completions"
    TRANSCRIPTIONS_PATH = "/audio/transcriptions"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        transcription_model: str = "whisper-1",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transcription_model = transcription_model
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def complete(self, request: ModelRequest) -> str:
        """Run a chat completion and return the first choice's text."""
        if not self.api_key:
            raise ModelCallError("model provider API key is not configured")

        try:
            response = await self.http_client.post(
                f"{self.base_url}{self.COMPLETIONS_PATH}",
                json=build_completion_payload(request),
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "model_call_failed", status=e.response.status_code, text=e.response.text[:500]
            )
            raise ModelCallError(f"provider returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("model_call_error", error=str(e))
            raise ModelCallError(str(e)) from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            logger.error("model_call_empty_choices", model=request.model)
            raise ModelCallError("empty response from model")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not content:
            raise ModelCallError("empty response from model")
        return str(content)

    async def transcribe(self, audio: bytes, filename: str) -> str:
        """Transcribe one audio file with the configured speech model."""
        if not self.api_key:
            raise TranscriptionError("model provider API key is not configured")

        try:
            response = await self.http_client.post(
                f"{self.base_url}{self.TRANSCRIPTIONS_PATH}",
                data={"model": self.transcription_model},
                files={"file": (filename, audio)},
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "transcription_failed", status=e.response.status_code, text=e.response.text[:500]
            )
            raise TranscriptionError(f"provider returned {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("transcription_error", error=str(e))
            raise TranscriptionError(str(e)) from e

        if not isinstance(data, dict):
            logger.error("transcription_unexpected_body", filename=filename)
            raise TranscriptionError("unexpected response body")
        return str(data.get("text") or "")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
