from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence

import structlog

from .config import ChatConfig
from .contracts import (
    CompletionRequest,
    CompletionResult,
    FailureKind,
    ModelCandidate,
    ProviderAnswer,
    ProviderFailure,
    SourceProvider,
)
from .errors import (
    EmptyResponseError,
    MissingCredentialError,
    ProviderError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamStatusError,
)
from .metrics import fallback_results_total, provider_requests_total
from .prompts import build_prompt, degraded_answer
from .provider import ChatProvider, build_primary_provider, build_secondary_provider

log = structlog.get_logger()

# Outcomes followed by a short pause before the next candidate.
_PAUSE_AFTER = frozenset({FailureKind.EMPTY_RESPONSE, FailureKind.TRANSPORT_ERROR})


def classify_failure(model: str, exc: Exception) -> ProviderFailure:
    exception_class = exc.__class__.__name__
    if isinstance(exc, RateLimitError):
        return ProviderFailure(model, FailureKind.RATE_LIMITED, str(exc), status_code=429,
                               exception_class=exception_class, retry_after_seconds=exc.retry_after_seconds)
    if isinstance(exc, UpstreamStatusError):
        return ProviderFailure(model, FailureKind.PROVIDER_ERROR, str(exc), status_code=exc.status_code,
                               exception_class=exception_class)
    if isinstance(exc, (RequestTimeoutError, TimeoutError)):
        return ProviderFailure(model, FailureKind.TIMEOUT, str(exc) or "timed out",
                               exception_class=exception_class)
    if isinstance(exc, EmptyResponseError):
        return ProviderFailure(model, FailureKind.EMPTY_RESPONSE, str(exc), exception_class=exception_class)
    return ProviderFailure(model, FailureKind.TRANSPORT_ERROR, str(exc) or exception_class,
                           exception_class=exception_class)


class ChatCompletionFallbackInvoker:
    """
    Answers a question through an ordered fallback chain.

    Primary candidates are tried strictly one at a time in declared order,
    each at most once. If none produces answer text the secondary provider
    (when configured) is called once, and failing that a static degraded
    message is returned. Provider failures never propagate: every call of
    `get_answer` yields exactly one `CompletionResult`.

    The only error raised is `MissingCredentialError` when the primary
    provider has no API key, which is checked before any network I/O.
    """

    def __init__(
        self,
        cfg: ChatConfig,
        primary: ChatProvider,
        secondary: ChatProvider | None = None,
        *,
        candidates: Sequence[ModelCandidate] | None = None,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.cfg = cfg
        self.primary = primary
        self.secondary = secondary
        self.candidates: tuple[ModelCandidate, ...] = tuple(
            candidates if candidates is not None else cfg.primary_candidates()
        )
        self._sleep: Callable[[float], Awaitable[None]] = sleeper or asyncio.sleep
        self._clock: Callable[[], float] = clock or time.monotonic

    async def close(self) -> None:
        await self.primary.close()
        if self.secondary is not None:
            await self.secondary.close()

    async def get_answer(self, question: str, prior_conversation: str | None = None) -> CompletionResult:
        return await self.invoke(CompletionRequest(question=question, prior_conversation=prior_conversation))

    async def invoke(self, request: CompletionRequest) -> CompletionResult:
        if not self.primary.configured:
            raise MissingCredentialError(
                "OPENROUTER_API_KEY",
                "Please set OPENROUTER_API_KEY in the environment (.env.local).",
            )

        prompt = build_prompt(request.question, request.prior_conversation)
        deadline = self._deadline()
        failures: list[ProviderFailure] = []

        log.info(
            "fallback_chain_started",
            candidates=[c.identifier for c in self.candidates],
            prompt_chars=len(prompt),
            prior_conversation=request.prior_conversation is not None,
        )

        for candidate in self.candidates:
            timeout = self._call_timeout(self.primary.timeout_seconds, deadline)
            if timeout is None:
                log.warning("fallback_deadline_exhausted", skipped_from=candidate.identifier)
                break

            log.info("primary_candidate_attempt", provider=self.primary.name, model=candidate.identifier)
            outcome = await self._attempt(self.primary, candidate.identifier, prompt, timeout)
            if isinstance(outcome, ProviderAnswer):
                log.info("primary_candidate_succeeded", model=candidate.identifier, tokens_used=outcome.tokens_used)
                return self._finish(
                    CompletionResult(
                        answer_text=outcome.text,
                        source_provider=SourceProvider.PRIMARY,
                        model_identifier=candidate.identifier,
                        tokens_used=outcome.tokens_used,
                        failures=tuple(failures),
                    )
                )

            failures.append(outcome)
            if outcome.kind in _PAUSE_AFTER:
                pause = self._pause_seconds(deadline)
                if pause > 0:
                    await self._sleep(pause)

        log.error("primary_candidates_exhausted", attempts=len(failures))

        secondary = self.secondary
        if secondary is not None and secondary.configured:
            timeout = self._call_timeout(secondary.timeout_seconds, deadline)
            if timeout is None:
                log.warning("fallback_deadline_exhausted", skipped_from=self.cfg.groq_model)
            else:
                log.info("secondary_provider_attempt", provider=secondary.name, model=self.cfg.groq_model)
                outcome = await self._attempt(secondary, self.cfg.groq_model, prompt, timeout)
                if isinstance(outcome, ProviderAnswer):
                    log.info("secondary_provider_succeeded", model=self.cfg.groq_model)
                    return self._finish(
                        CompletionResult(
                            answer_text=outcome.text,
                            source_provider=SourceProvider.SECONDARY,
                            model_identifier=self.cfg.groq_model,
                            tokens_used=outcome.tokens_used,
                            failures=tuple(failures),
                        )
                    )
                failures.append(outcome)
        else:
            log.info("secondary_provider_skipped", reason="not configured")

        log.error("fallback_chain_exhausted", failures=len(failures))
        return self._finish(
            CompletionResult(
                answer_text=degraded_answer(request.question),
                source_provider=SourceProvider.NONE,
                failures=tuple(failures),
            )
        )

    async def _attempt(
        self, provider: ChatProvider, model: str, prompt: str, timeout: float
    ) -> ProviderAnswer | ProviderFailure:
        try:
            answer = await provider.complete(model, prompt, timeout_seconds=timeout)
        except (ProviderError, TimeoutError) as e:
            failure = classify_failure(model, e)
        except Exception as e:
            log.exception("provider_call_crashed", provider=provider.name, model=model)
            failure = classify_failure(model, e)
        else:
            provider_requests_total.labels(provider=provider.name, model=model, outcome="success").inc()
            return answer

        provider_requests_total.labels(provider=provider.name, model=model, outcome=failure.kind.value).inc()
        log.warning(
            "provider_call_failed",
            provider=provider.name,
            model=model,
            kind=failure.kind.value,
            status_code=failure.status_code,
            error=failure.message,
            retry_after_seconds=failure.retry_after_seconds,
        )
        return failure

    def _deadline(self) -> float | None:
        total = float(self.cfg.total_deadline_seconds or 0)
        if total <= 0:
            return None
        return self._clock() + total

    def _call_timeout(self, configured: float, deadline: float | None) -> float | None:
        if deadline is None:
            return configured
        remaining = deadline - self._clock()
        if remaining <= 0:
            return None
        return min(configured, remaining)

    def _pause_seconds(self, deadline: float | None) -> float:
        delay = max(0.0, float(self.cfg.empty_response_delay_seconds))
        if deadline is None:
            return delay
        return max(0.0, min(delay, deadline - self._clock()))

    @staticmethod
    def _finish(result: CompletionResult) -> CompletionResult:
        fallback_results_total.labels(source=result.source_provider.value).inc()
        return result


def build_invoker(cfg: ChatConfig) -> ChatCompletionFallbackInvoker:
    return ChatCompletionFallbackInvoker(cfg, build_primary_provider(cfg), build_secondary_provider(cfg))
