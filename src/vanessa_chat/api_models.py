from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .contracts import CompletionResult, SourceProvider

SOURCE_LABELS = {
    SourceProvider.PRIMARY: "OpenRouter",
    SourceProvider.SECONDARY: "Groq (fallback)",
}


class ChatRequest(BaseModel):
    question: str | None = None

    def cleaned_question(self) -> str | None:
        if self.question is None:
            return None
        return self.question.strip() or None


class ChatAnswerResponse(BaseModel):
    answer: str
    source: str
    model: str | None = None
    tokens_used: int | None = None
    conversation_loaded: bool
    conversation_length: int
    note: str | None = None


class DegradedResponse(BaseModel):
    answer: str
    error: Literal[True] = True
    suggestion: str


class ErrorResponse(BaseModel):
    error: str
    message: str | None = None


class ApiKeyStatus(BaseModel):
    openrouter: bool
    groq: bool


class ConversationFileInfo(BaseModel):
    exists: bool
    length: int
    preview: str | None = None


class ServiceInfo(BaseModel):
    service: str = "AI Chat with OpenRouter + Fallback"
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    status: str = "active"
    available_models: list[str]
    secondary_model: str | None = None
    api_keys: ApiKeyStatus
    conversation_file: ConversationFileInfo
    instructions: str = 'POST /api/ai/chat with body: {"question": "your question"}'


class TrainRequest(BaseModel):
    question: str
    answer: str

    @field_validator("question", "answer")
    @classmethod
    def _validate_min_length(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("question and answer must be at least 3 characters.")
        return v


class TrainResponse(BaseModel):
    success: bool = True
    message: str = "Question and answer were added to the conversation history."


def make_answer_response(
    result: CompletionResult, *, conversation: str | None
) -> ChatAnswerResponse:
    return ChatAnswerResponse(
        answer=result.answer_text,
        source=SOURCE_LABELS[result.source_provider],
        model=result.model_identifier,
        tokens_used=result.tokens_used,
        conversation_loaded=bool(conversation),
        conversation_length=len(conversation) if conversation else 0,
        note="Answered by the fallback service." if result.source_provider is SourceProvider.SECONDARY else None,
    )
