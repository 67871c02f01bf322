from __future__ import annotations

import time

import structlog

from .config import ChatConfig
from .contracts import ProviderAnswer
from .metrics import provider_request_latency_seconds
from .prompts import secondary_system_instruction, system_instruction
from .session import ChatCompletionsSession

log = structlog.get_logger()


class ChatProvider:
    """One upstream text-generation service behind `complete(model, prompt)`."""

    def __init__(
        self,
        name: str,
        session: ChatCompletionsSession,
        *,
        system_instruction: str,
        timeout_seconds: float,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
    ):
        self.name = name
        self.session = session
        self.system_instruction = system_instruction
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p

    @property
    def configured(self) -> bool:
        return bool(self.session.api_key)

    async def complete(
        self, model: str, prompt: str, *, timeout_seconds: float | None = None
    ) -> ProviderAnswer:
        start = time.monotonic()
        try:
            return await self.session.create_chat_completion(
                model=model,
                messages=[
                    {"role": "system", "content": self.system_instruction},
                    {"role": "user", "content": prompt},
                ],
                timeout_seconds=timeout_seconds if timeout_seconds is not None else self.timeout_seconds,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                top_p=self.top_p,
            )
        finally:
            provider_request_latency_seconds.labels(provider=self.name).observe(
                max(0.0, time.monotonic() - start)
            )

    async def close(self) -> None:
        await self.session.close()


def build_primary_provider(cfg: ChatConfig, *, session: ChatCompletionsSession | None = None) -> ChatProvider:
    session = session or ChatCompletionsSession(
        cfg.openrouter_api_key,
        env_var="OPENROUTER_API_KEY",
        base_url=cfg.openrouter_base_url,
        extra_headers={"HTTP-Referer": cfg.app_referer, "X-Title": cfg.app_title},
    )
    return ChatProvider(
        "openrouter",
        session,
        system_instruction=system_instruction(cfg.response_language),
        timeout_seconds=cfg.primary_timeout_seconds,
        max_tokens=cfg.max_tokens,
        temperature=cfg.temperature,
        top_p=cfg.top_p,
    )


def build_secondary_provider(
    cfg: ChatConfig, *, session: ChatCompletionsSession | None = None
) -> ChatProvider | None:
    if session is None:
        if not cfg.groq_api_key:
            log.info("secondary_provider_disabled", reason="GROQ_API_KEY not set")
            return None
        session = ChatCompletionsSession(cfg.groq_api_key, env_var="GROQ_API_KEY", base_url=cfg.groq_base_url)
    return ChatProvider(
        "groq",
        session,
        system_instruction=secondary_system_instruction(cfg.response_language),
        timeout_seconds=cfg.secondary_timeout_seconds,
        max_tokens=cfg.max_tokens,
        temperature=cfg.temperature,
    )
