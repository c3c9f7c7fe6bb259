"""Data types for persisted chats.

A chat lives in its own directory under the conversations directory:

    <conversations_dir>/<chat_id>/metadata.json
    <conversations_dir>/<chat_id>/messages.json
    <conversations_dir>/<chat_id>/attachments/
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ChatMetadata:
    """Metadata for a chat conversation."""

    chat_id: str
    title: str
    created_at: str
    updated_at: str
    model: str | None = None
    message_count: int = 0
    has_attachments: bool = False
    tags: list[str] = field(default_factory=list)
    archived: bool = False


@dataclass
class ChatMessage:
    """A single persisted message."""

    message_id: str
    timestamp: str
    role: str
    content: str
    attachments: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ChatData:
    """A chat as returned by ChatStorage.load_chat()."""

    metadata: ChatMetadata
    messages: list[ChatMessage] = field(default_factory=list)


@dataclass
class AttachmentInfo:
    """A stored attachment file."""

    filename: str
    original_name: str
    size: int
    type: str
    path: str
