from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager

import structlog

from .api_models import (
    ApiKeyStatus,
    ChatRequest,
    ConversationFileInfo,
    DegradedResponse,
    ErrorResponse,
    ServiceInfo,
    TrainRequest,
    TrainResponse,
    make_answer_response,
)
from .config import ChatConfig
from .conversation_store import ConversationHistoryStore, make_preview
from .errors import ChatServiceError, InvalidQuestionError, MissingCredentialError
from .fallback import ChatCompletionFallbackInvoker, build_invoker
from .http_security import install_middlewares
from .logging import configure_logging
from .metrics import maybe_start_metrics, server_errors_total, server_request_latency_seconds, server_requests_total
from .prompts import DEGRADED_SUGGESTION

log = structlog.get_logger()

CHAT_PATH = "/api/ai/chat"
TRAIN_PATH = "/api/ai/train"


def create_app(
    cfg: ChatConfig | None = None,
    invoker: ChatCompletionFallbackInvoker | None = None,
    store: ConversationHistoryStore | None = None,
):
    try:
        from fastapi import FastAPI
        from fastapi.exceptions import RequestValidationError
        from fastapi.responses import JSONResponse
    except ImportError as e:  # pragma: no cover
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    cfg = cfg or ChatConfig()
    configure_logging(level=cfg.log_level, fmt=cfg.log_format, secrets=cfg.secrets())
    invoker = invoker or build_invoker(cfg)
    store = store or ConversationHistoryStore(cfg.conversation_path)

    def _observe(path: str, status_code: int, started_at: float) -> None:
        server_requests_total.labels(path=path, status=str(status_code)).inc()
        server_request_latency_seconds.labels(path=path).observe(max(0.0, time.monotonic() - started_at))

    def _error(status_code: int, error: str, message: str | None = None):
        server_errors_total.labels(type=error).inc()
        return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, message=message).model_dump())

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        maybe_start_metrics(enable=cfg.enable_metrics, bind=cfg.metrics_bind, port=cfg.metrics_port)
        try:
            yield
        finally:
            await invoker.close()

    app = FastAPI(
        title="vanessa-chat",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if cfg.enable_api_docs else None,
        redoc_url="/redoc" if cfg.enable_api_docs else None,
        openapi_url="/openapi.json" if cfg.enable_api_docs else None,
    )
    install_middlewares(app, cfg=cfg)

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(_request, exc: RequestValidationError):
        errors = exc.errors()
        message = str(errors[0].get("msg", "Invalid request.")) if errors else "Invalid request."
        return _error(400, "invalid_request", message)

    @app.exception_handler(InvalidQuestionError)
    async def _invalid_question_handler(_request, exc: InvalidQuestionError):
        return _error(400, "question_required", str(exc))

    @app.exception_handler(MissingCredentialError)
    async def _missing_credential_handler(_request, exc: MissingCredentialError):
        log.error("missing_credential", env_var=exc.env_var)
        return _error(500, "api_key_not_configured", str(exc))

    @app.exception_handler(ChatServiceError)
    async def _service_error_handler(_request, exc: ChatServiceError):
        log.error("chat_service_error", error=str(exc), error_type=exc.__class__.__name__)
        return _error(500, "internal_server_error", str(exc))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(CHAT_PATH)
    async def chat(req: ChatRequest):
        started_at = time.monotonic()
        question = req.cleaned_question()
        if question is None:
            raise InvalidQuestionError("A question is required.")

        cfg.require_openrouter_key()

        log.info("chat_question_received", question_chars=len(question))
        conversation = store.read()
        result = await invoker.get_answer(question, conversation)

        if result.degraded:
            _observe(CHAT_PATH, 503, started_at)
            return JSONResponse(
                status_code=503,
                content=DegradedResponse(answer=result.answer_text, suggestion=DEGRADED_SUGGESTION).model_dump(),
            )

        _observe(CHAT_PATH, 200, started_at)
        return make_answer_response(result, conversation=conversation).model_dump(exclude_none=True)

    @app.get(CHAT_PATH, response_model=ServiceInfo)
    async def chat_info():
        content = store.read()
        return ServiceInfo(
            available_models=list(cfg.openrouter_models),
            secondary_model=cfg.groq_model if cfg.groq_api_key else None,
            api_keys=ApiKeyStatus(openrouter=bool(cfg.openrouter_api_key), groq=bool(cfg.groq_api_key)),
            conversation_file=ConversationFileInfo(
                exists=bool(content),
                length=len(content) if content else 0,
                preview=make_preview(content) if content else None,
            ),
        )

    @app.post(TRAIN_PATH, response_model=TrainResponse)
    async def train(req: TrainRequest):
        started_at = time.monotonic()
        try:
            store.append_exchange(req.question, req.answer)
        except OSError as e:
            log.error("conversation_append_failed", error=str(e))
            _observe(TRAIN_PATH, 500, started_at)
            return _error(500, "training_failed", "Could not update the conversation history.")
        _observe(TRAIN_PATH, 200, started_at)
        return TrainResponse()

    return app


def main() -> None:  # pragma: no cover
    try:
        import uvicorn
    except ImportError as e:
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("vanessa_chat.server:create_app", host=host, port=port, factory=True)


if __name__ == "__main__":  # pragma: no cover
    main()
