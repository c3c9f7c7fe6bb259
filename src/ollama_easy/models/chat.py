"""Pydantic models for the streaming chat endpoint.

This module defines the request body for POST /api/v1/chat/stream and the
payloads of every SSE event emitted during a chat turn. Event payloads are
serialized with camelCase keys.
"""

from typing import Any, Literal

from pydantic import ConfigDict, Field

from ollama_easy.models.base import CamelModel


class ChatStreamRequest(CamelModel):
    """Request body for POST /api/v1/chat/stream."""

    message: str = Field(min_length=1, description="The user message to send")
    model: str = Field(min_length=1, description="Ollama model to chat with")
    chat_id: str | None = Field(
        default=None,
        description="Conversation to persist the turn into. Omit for an unsaved turn.",
    )
    enable_mcp: bool = Field(
        default=False,
        alias="enableMCP",
        description="Whether to let the model call MCP tools during this turn",
    )
    attachments: list[str] = Field(
        default_factory=list,
        description="Filenames previously uploaded to this chat for this turn",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "message": "What files are in my home directory?",
                    "model": "qwen2.5:14b",
                    "chatId": "chat_1736935200000_a1b2c3d4e",
                    "enableMCP": True,
                    "attachments": [],
                }
            ]
        },
    )


class StatusEvent(CamelModel):
    """Payload of the status event, sent first in every turn."""

    phase: str = Field(default="start", description="Turn phase")
    chat_id: str | None = Field(default=None, description="Chat identifier")
    model: str = Field(description="Model handling the turn")


class MessageSavedEvent(CamelModel):
    """Payload of the message_saved event."""

    role: str = Field(description="Role of the persisted message")
    chat_id: str = Field(description="Chat identifier")
    attachment_count: int = Field(default=0, description="Attachments saved with it")
    total_length: int = Field(default=0, description="Length of the message text")


class McpStatusEvent(CamelModel):
    """Payload of the mcp_status event."""

    enabled: bool = Field(description="Whether tools are available for this turn")
    tool_count: int = Field(default=0, description="Number of registered tools")
    tool_names: list[str] = Field(default_factory=list, description="Tool names")
    error: str | None = Field(default=None, description="Initialization error")


class StreamStartEvent(CamelModel):
    """Payload of the stream_start event, sent once per tool loop iteration."""

    model: str = Field(description="Model being streamed")
    iteration: int = Field(description="1-based tool loop iteration")
    has_tools: bool = Field(description="Whether tool descriptors were sent")


class ChunkEvent(CamelModel):
    """Payload of the chunk event: one fragment of assistant text."""

    content: str = Field(description="Text fragment")
    model: str = Field(description="Model that produced the fragment")
    done: bool = Field(default=False, description="Whether this is the last fragment")
    chunk_number: int = Field(description="1-based fragment counter for the turn")


class ToolCallEvent(CamelModel):
    """Payload of the tool_call event, sent before a tool runs."""

    name: str = Field(description="Tool name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Arguments")
    status: Literal["executing"] = "executing"


class ToolResultEvent(CamelModel):
    """Payload of the tool_result event, sent after a tool runs."""

    name: str = Field(description="Tool name")
    success: bool = Field(description="Whether the tool call succeeded")
    result: Any | None = Field(default=None, description="Tool result on success")
    error: str | None = Field(default=None, description="Error text on failure")


class WarningEvent(CamelModel):
    """Payload of the warning event."""

    message: str = Field(description="Human-readable warning")
    type: str = Field(description="Warning category, e.g. max_iterations")


class CompleteEvent(CamelModel):
    """Payload of the complete event. Every successful turn ends with one."""

    success: bool = True
    chat_id: str | None = Field(default=None, description="Chat identifier")
    total_length: int = Field(default=0, description="Length of the assistant text")
    iterations: int | None = Field(default=None, description="Tool loop iterations")
    tools_used: int | None = Field(default=None, description="Tool calls executed")
    stop_reason: str | None = Field(
        default=None, description="Why the turn stopped early, if it did"
    )


class ErrorEvent(CamelModel):
    """Payload of the error event. A failed turn ends with exactly one."""

    message: str = Field(description="Error description")
    phase: str = Field(description="Where the turn failed")
