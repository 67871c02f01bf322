from __future__ import annotations


class ChatServiceError(Exception):
    """Base error for chat service failures."""


class ConfigurationError(ChatServiceError):
    pass


class MissingCredentialError(ConfigurationError):
    def __init__(self, env_var: str, message: str | None = None):
        super().__init__(message or f"{env_var} is not configured.")
        self.env_var = env_var


class InvalidQuestionError(ChatServiceError):
    """Question missing or blank after trimming."""


class ProviderError(ChatServiceError):
    """Base error for a single upstream provider call."""


class RateLimitError(ProviderError):
    def __init__(self, retry_after_seconds: int | None = None, message: str = "Rate limited"):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class UpstreamStatusError(ProviderError):
    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP {status_code}: {body[:100]}")
        self.status_code = status_code
        self.body = body


class UpstreamProtocolError(ProviderError):
    """Unexpected upstream response shape or transport failure."""


class RequestTimeoutError(ProviderError):
    """Upstream call exceeded its timeout."""


class EmptyResponseError(ProviderError):
    """Upstream answered 2xx but carried no answer text."""
