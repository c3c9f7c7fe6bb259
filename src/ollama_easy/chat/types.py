"""Domain types for a single streaming chat turn."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ChatTurnRequest:
    """One user turn as received from the client.

    Attributes:
        message: The user's text
        model: Ollama model id
        chat_id: Conversation to persist into; None for an ephemeral turn
        use_tools: Whether to augment the turn with MCP tools
        attachments: Filenames uploaded for this turn only
    """

    message: str
    model: str
    chat_id: str | None = None
    use_tools: bool = False
    attachments: list[str] = field(default_factory=list)


@dataclass
class ToolInvocation:
    """Outcome of one tool call made during the tool loop."""

    name: str
    arguments: dict[str, Any]
    iteration: int
    success: bool
    content: str


@dataclass
class ConversationState:
    """Mutable state of the tool loop. Created per turn, discarded after it."""

    messages: list[dict[str, Any]]
    iteration: int = 0
    full_response: str = ""
    chunk_count: int = 0
    invocations: list[ToolInvocation] = field(default_factory=list)

    @property
    def tools_used(self) -> int:
        return len(self.invocations)


@dataclass
class TurnOutcome:
    """How a turn ended. Returned by the orchestrator for logging and tests."""

    success: bool
    total_length: int = 0
    iterations: int = 0
    tools_used: int = 0
    stop_reason: str | None = None
    error: str | None = None
