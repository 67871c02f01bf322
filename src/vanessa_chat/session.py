from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from .contracts import ProviderAnswer
from .errors import (
    EmptyResponseError,
    MissingCredentialError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamProtocolError,
    UpstreamStatusError,
)

log = structlog.get_logger()

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"
GROQ_API_BASE = "https://api.groq.com/openai/v1"

_ERROR_BODY_CHARS = 200


class ChatCompletionsSession:
    """
    Single-shot client for an OpenAI-compatible `/chat/completions` endpoint.

    Each call is exactly one HTTP round trip bounded by the given timeout.
    Failures surface as typed `ProviderError`s; retrying or moving on to
    another model is the caller's decision.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        env_var: str,
        client: httpx.AsyncClient | None = None,
        base_url: str = OPENROUTER_API_BASE,
        extra_headers: dict[str, str] | None = None,
    ):
        self.api_key = api_key
        self.env_var = env_var
        self._client = client or httpx.AsyncClient()
        self._base_url = base_url.rstrip("/")
        self._extra_headers = dict(extra_headers or {})

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        headers.update(self._extra_headers)
        return headers

    async def create_chat_completion(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        timeout_seconds: float,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
    ) -> ProviderAnswer:
        if not self.api_key:
            raise MissingCredentialError(self.env_var)

        payload: dict[str, Any] = {"model": model, "messages": messages}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature
        if top_p is not None:
            payload["top_p"] = top_p

        # httpx timeouts bound each phase; wait_for bounds the whole round trip
        try:
            resp = await asyncio.wait_for(
                self._client.post(
                    f"{self._base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                    timeout=timeout_seconds,
                ),
                timeout=timeout_seconds,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise RequestTimeoutError(f"Upstream request timed out after {timeout_seconds}s.") from e
        except httpx.HTTPError as e:
            raise UpstreamProtocolError(f"Upstream request failed: {e.__class__.__name__}.") from e

        log.debug("chat_completion_status", model=model, status_code=resp.status_code)

        if resp.status_code == 429:
            retry_after = resp.headers.get("retry-after")
            retry_seconds = int(retry_after) if retry_after and retry_after.isdigit() else None
            raise RateLimitError(retry_after_seconds=retry_seconds, message=f"Rate limit on model: {model}")

        if resp.status_code >= 400:
            raise UpstreamStatusError(resp.status_code, resp.text[:_ERROR_BODY_CHARS])

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamProtocolError("Failed to decode upstream JSON.") from e
        if not isinstance(data, dict):
            raise UpstreamProtocolError("Upstream response is not a JSON object.")

        text = _first_choice_text(data)
        if not text:
            raise EmptyResponseError(f"Empty answer from model: {model}")

        usage = data.get("usage")
        tokens_used = usage.get("total_tokens") if isinstance(usage, dict) else None
        if not isinstance(tokens_used, int):
            tokens_used = None

        return ProviderAnswer(text=text, model=model, tokens_used=tokens_used)


def _first_choice_text(data: dict[str, Any]) -> str | None:
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        return None
    return content
