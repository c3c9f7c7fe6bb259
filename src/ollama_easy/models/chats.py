"""Pydantic models for the chat storage endpoints."""

from typing import Any

from pydantic import ConfigDict, Field

from ollama_easy.models.base import CamelModel


class CreateChatRequest(CamelModel):
    """Request body for POST /api/v1/chats."""

    title: str | None = Field(default=None, description="Optional chat title")
    model: str | None = Field(default=None, description="Model the chat is used with")

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [{"title": "Trip planning", "model": "llama3.2:latest"}]
        }
    )


class ChatMetadataResponse(CamelModel):
    """Metadata of a chat."""

    chat_id: str = Field(description="Chat identifier")
    title: str = Field(description="Chat title")
    created_at: str = Field(description="ISO 8601 creation timestamp")
    updated_at: str = Field(description="ISO 8601 last update timestamp")
    model: str | None = Field(default=None, description="Model the chat is used with")
    message_count: int = Field(default=0, description="Number of messages")
    has_attachments: bool = Field(default=False, description="Whether files were uploaded")


class ChatListResponse(CamelModel):
    """Response body for GET /api/v1/chats."""

    chats: list[ChatMetadataResponse] = Field(default_factory=list)
    total: int = Field(default=0, description="Number of chats")


class ChatMessageResponse(CamelModel):
    """A persisted message."""

    message_id: str = Field(description="Message identifier")
    timestamp: str = Field(description="ISO 8601 timestamp")
    role: str = Field(description="user or assistant")
    content: str = Field(description="Message text")
    attachments: list[dict[str, Any]] = Field(
        default_factory=list, description="Attachments sent with the message"
    )


class ChatDetailResponse(CamelModel):
    """Response body for GET /api/v1/chats/{chat_id}."""

    metadata: ChatMetadataResponse
    messages: list[ChatMessageResponse] = Field(default_factory=list)


class AttachmentResponse(CamelModel):
    """Response body for POST /api/v1/chats/{chat_id}/attachments."""

    filename: str = Field(description="Stored filename; send it in chat requests")
    original_name: str = Field(description="Filename given by the client")
    size: int = Field(description="Size in bytes")
    type: str = Field(description="File category")
    path: str = Field(description="Path relative to the chat directory")
