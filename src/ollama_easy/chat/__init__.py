"""Streaming chat turns: the orchestrator, its push channel and timeouts."""

from ollama_easy.chat.channel import PushChannel, PushChannelClosed
from ollama_easy.chat.orchestrator import StreamingChatOrchestrator
from ollama_easy.chat.timeouts import get_timeout_for_model
from ollama_easy.chat.types import (
    ChatTurnRequest,
    ConversationState,
    ToolInvocation,
    TurnOutcome,
)

__all__ = [
    "ChatTurnRequest",
    "ConversationState",
    "PushChannel",
    "PushChannelClosed",
    "StreamingChatOrchestrator",
    "ToolInvocation",
    "TurnOutcome",
    "get_timeout_for_model",
]
