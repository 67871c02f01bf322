from __future__ import annotations

import os

from pydantic import BaseModel, Field

from .contracts import ModelCandidate
from .errors import MissingCredentialError

DEFAULT_OPENROUTER_MODELS = (
    "mistralai/mistral-7b-instruct:free",
    "huggingfaceh4/zephyr-7b-beta:free",
    "meta-llama/llama-3.2-3b-instruct:free",
    "google/gemma-7b-it:free",
    "gryphe/mythomax-l2-13b:free",
)


def _parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class ChatConfig(BaseModel):
    # Provider credentials
    openrouter_api_key: str | None = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    groq_api_key: str | None = Field(default_factory=lambda: os.getenv("GROQ_API_KEY"))

    # Primary provider (OpenRouter)
    openrouter_base_url: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    )
    openrouter_models: list[str] = Field(
        default_factory=lambda: _parse_csv(os.getenv("OPENROUTER_MODELS")) or list(DEFAULT_OPENROUTER_MODELS)
    )
    primary_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PRIMARY_TIMEOUT_SECONDS", "30"))
    )
    app_referer: str = Field(default_factory=lambda: os.getenv("APP_REFERER", "http://localhost:3000"))
    app_title: str = Field(default_factory=lambda: os.getenv("APP_TITLE", "AI Chat Assistant"))

    # Secondary provider (Groq)
    groq_base_url: str = Field(
        default_factory=lambda: os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
    )
    groq_model: str = Field(default_factory=lambda: os.getenv("GROQ_MODEL", "llama3-8b-8192"))
    secondary_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SECONDARY_TIMEOUT_SECONDS", "15"))
    )

    # Generation
    max_tokens: int = Field(default_factory=lambda: int(os.getenv("CHAT_MAX_TOKENS", "600")))
    temperature: float = Field(default_factory=lambda: float(os.getenv("CHAT_TEMPERATURE", "0.7")))
    top_p: float = Field(default_factory=lambda: float(os.getenv("CHAT_TOP_P", "0.9")))
    response_language: str = Field(default_factory=lambda: os.getenv("CHAT_RESPONSE_LANGUAGE", "Persian"))

    # Fallback chain pacing
    empty_response_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("EMPTY_RESPONSE_DELAY_SECONDS", "0.5"))
    )
    # 0 disables the overall deadline
    total_deadline_seconds: float = Field(
        default_factory=lambda: float(os.getenv("CHAT_TOTAL_DEADLINE_SECONDS", "0"))
    )

    # Conversation history
    conversation_path: str = Field(
        default_factory=lambda: os.getenv("CONVERSATION_FILE", os.path.join("public", "conversations.txt"))
    )

    # Observability
    enable_metrics: bool = Field(default_factory=lambda: _env_bool("ENABLE_METRICS"))
    metrics_bind: str = Field(default_factory=lambda: os.getenv("METRICS_BIND", "127.0.0.1"))
    metrics_port: int = Field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9109")))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))

    # Server hardening
    admin_auth_token: str | None = Field(default_factory=lambda: os.getenv("ADMIN_AUTH_TOKEN"))
    enable_api_docs: bool = Field(default_factory=lambda: _env_bool("ENABLE_API_DOCS"))
    allowed_hosts: list[str] = Field(default_factory=lambda: _parse_csv(os.getenv("ALLOWED_HOSTS")))
    cors_allow_origins: list[str] = Field(default_factory=lambda: _parse_csv(os.getenv("CORS_ALLOW_ORIGINS")))
    cors_allow_credentials: bool = Field(default_factory=lambda: _env_bool("CORS_ALLOW_CREDENTIALS"))
    max_request_body_bytes: int = Field(
        default_factory=lambda: int(os.getenv("MAX_REQUEST_BODY_BYTES", str(64 * 1024)))
    )
    max_inflight_requests: int = Field(default_factory=lambda: int(os.getenv("MAX_INFLIGHT_REQUESTS", "32")))

    def primary_candidates(self) -> list[ModelCandidate]:
        return [ModelCandidate(identifier=m) for m in self.openrouter_models]

    def require_openrouter_key(self) -> str:
        if not self.openrouter_api_key:
            raise MissingCredentialError(
                "OPENROUTER_API_KEY",
                "Please set OPENROUTER_API_KEY in the environment (.env.local).",
            )
        return self.openrouter_api_key

    def secrets(self) -> list[str]:
        return [s for s in (self.openrouter_api_key, self.groq_api_key, self.admin_auth_token) if s]
