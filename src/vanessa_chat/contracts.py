from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SourceProvider(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    NONE = "none"


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class CompletionRequest:
    question: str
    prior_conversation: str | None = None


@dataclass(frozen=True)
class ModelCandidate:
    identifier: str
    provider: str = SourceProvider.PRIMARY.value


@dataclass(frozen=True)
class ProviderAnswer:
    text: str
    model: str
    tokens_used: int | None = None


@dataclass(frozen=True)
class ProviderFailure:
    model_identifier: str
    kind: FailureKind
    message: str
    status_code: int | None = None
    exception_class: str | None = None
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class CompletionResult:
    answer_text: str
    source_provider: SourceProvider
    model_identifier: str | None = None
    tokens_used: int | None = None
    failures: tuple[ProviderFailure, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        return self.source_provider is SourceProvider.NONE
