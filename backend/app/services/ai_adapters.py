"""
AI Adapters — provider-agnostic interface for streamed LLM completions.
Supports Anthropic Claude and OpenAI-compatible APIs.
Text deltas are yielded as they arrive; nothing is buffered.
"""
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

import httpx

logger = logging.getLogger(__name__)


class AIProviderError(Exception):
    """Upstream provider rejected the request or the connection failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _sse_data(line: str) -> str | None:
    """Payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[len("data:"):].strip()


async def _raise_for_upstream(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    body = await response.aread()
    message = "Failed to get response from AI service."
    try:
        data = json.loads(body)
        message = (data.get("error") or {}).get("message") or message
    except (ValueError, AttributeError):
        pass
    logger.error("AI provider error %s: %s", response.status_code, body[:500])
    raise AIProviderError(message, response.status_code)


class AIAdapter(ABC):
    """Base adapter for any AI provider."""

    @abstractmethod
    def stream_completion(self, system: str, user_message: str,
                          max_tokens: int, timeout: int = 120) -> AsyncIterator[str]:
        """Yield text chunks of the completion as they arrive."""


class AnthropicAdapter(AIAdapter):
    """Adapter for Anthropic Claude API (/v1/messages, stream=true)."""

    def __init__(self, endpoint: str, api_key: str, model: str):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.model = model

    async def stream_completion(self, system, user_message, max_tokens, timeout=120):
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                async with client.stream(
                    "POST",
                    f"{self.endpoint}/v1/messages",
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": "2023-06-01",
                        "content-type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "system": system,
                        "messages": [{"role": "user", "content": user_message}],
                        "stream": True,
                    },
                ) as response:
                    await _raise_for_upstream(response)
                    async for line in response.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        try:
                            event = json.loads(data)
                        except ValueError:
                            continue
                        if event.get("type") == "message_stop":
                            break
                        if event.get("type") == "content_block_delta":
                            text = (event.get("delta") or {}).get("text")
                            if text:
                                yield text
        except httpx.HTTPError as e:
            raise AIProviderError(f"AI service request failed: {e}") from e


class OpenAICompatibleAdapter(AIAdapter):
    """Adapter for OpenAI-compatible API (OpenAI, vLLM, Ollama, LocalAI)."""

    def __init__(self, endpoint: str, api_key: str, model: str):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.model = model

    async def stream_completion(self, system, user_message, max_tokens, timeout=120):
        headers = {"content-type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                async with client.stream(
                    "POST",
                    f"{self.endpoint}/v1/chat/completions",
                    headers=headers,
                    json={
                        "model": self.model,
                        "max_tokens": max_tokens,
                        "messages": [
                            {"role": "system", "content": system},
                            {"role": "user", "content": user_message},
                        ],
                        "stream": True,
                    },
                ) as response:
                    await _raise_for_upstream(response)
                    async for line in response.aiter_lines():
                        data = _sse_data(line)
                        if not data:
                            continue
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except ValueError:
                            continue
                        choices = chunk.get("choices") or []
                        if not choices:
                            continue
                        text = (choices[0].get("delta") or {}).get("content")
                        if text:
                            yield text
        except httpx.HTTPError as e:
            raise AIProviderError(f"AI service request failed: {e}") from e


def get_ai_adapter(settings) -> AIAdapter | None:
    """Factory: return adapter based on settings, or None if AI not configured."""
    provider = (settings.AI_PROVIDER or "none").lower()
    if provider == "anthropic" and settings.AI_API_KEY:
        return AnthropicAdapter(settings.AI_ENDPOINT, settings.AI_API_KEY, settings.AI_MODEL)
    if provider == "openai_compatible":
        return OpenAICompatibleAdapter(settings.AI_ENDPOINT, settings.AI_API_KEY, settings.AI_MODEL)
    return None
