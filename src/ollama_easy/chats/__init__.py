"""Chat persistence and attachment handling.

This package stores chats as JSON files on disk and extracts text from the
attachments uploaded with a message.
"""

from ollama_easy.chats.attachments import AttachmentProcessor
from ollama_easy.chats.storage import ChatStorage
from ollama_easy.chats.types import AttachmentInfo, ChatData, ChatMessage, ChatMetadata

__all__ = [
    "AttachmentInfo",
    "AttachmentProcessor",
    "ChatData",
    "ChatMessage",
    "ChatMetadata",
    "ChatStorage",
]
