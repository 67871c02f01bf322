from .config import ChatConfig
from .contracts import CompletionRequest, CompletionResult, ModelCandidate, ProviderFailure, SourceProvider
from .conversation_store import ConversationHistoryStore
from .fallback import ChatCompletionFallbackInvoker, build_invoker

__all__ = [
    "ChatCompletionFallbackInvoker",
    "ChatConfig",
    "CompletionRequest",
    "CompletionResult",
    "ConversationHistoryStore",
    "ModelCandidate",
    "ProviderFailure",
    "SourceProvider",
    "build_invoker",
]
