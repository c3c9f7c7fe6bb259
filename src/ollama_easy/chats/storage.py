"""File-backed chat storage.

This module provides the ChatStorage class which handles:
- Creating, listing, loading and deleting chats
- Appending messages with their attachment metadata
- Saving uploaded attachment files into a chat
"""

import json
import logging
import secrets
import shutil
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ollama_easy.chats.types import AttachmentInfo, ChatData, ChatMessage, ChatMetadata

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
MESSAGES_FILE = "messages.json"
ATTACHMENTS_DIR = "attachments"

_FILE_TYPES = {
    "image": {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg"},
    "pdf": {".pdf"},
    "document": {".doc", ".docx", ".txt", ".rtf", ".md"},
    "spreadsheet": {".xls", ".xlsx", ".csv"},
    "video": {".mp4", ".avi", ".mov", ".wmv", ".webm"},
    "audio": {".mp3", ".wav", ".ogg", ".m4a"},
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_file_type(filename: str) -> str:
    """Categorize a file by extension ("image", "pdf", ..., or "other")."""
    ext = Path(filename).suffix.lower()
    for file_type, extensions in _FILE_TYPES.items():
        if ext in extensions:
            return file_type
    return "other"


def _write_json(path: Path, data: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class ChatStorage:
    """Manages chats stored as directories of JSON files.

    All methods are synchronous; files are small and local.
    """

    def __init__(self, conversations_dir: Path):
        """Initialize the storage and create the conversations directory.

        Args:
            conversations_dir: Directory holding one subdirectory per chat
        """
        self.conversations_dir = conversations_dir
        self.conversations_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def generate_chat_id() -> str:
        """Generate a new chat ID, e.g. "chat_1736935200000_a1b2c3d4"."""
        return f"chat_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    def _chat_dir(self, chat_id: str) -> Path:
        # Chat ids are single path components
        if not chat_id or Path(chat_id).name != chat_id or chat_id in (".", ".."):
            raise FileNotFoundError(f"Chat {chat_id} not found")
        return self.conversations_dir / chat_id

    def exists(self, chat_id: str) -> bool:
        try:
            return (self._chat_dir(chat_id) / METADATA_FILE).exists()
        except FileNotFoundError:
            return False

    def _require_chat(self, chat_id: str) -> Path:
        chat_dir = self._chat_dir(chat_id)
        if not (chat_dir / METADATA_FILE).exists():
            raise FileNotFoundError(f"Chat {chat_id} not found")
        return chat_dir

    def _load_metadata(self, chat_dir: Path) -> ChatMetadata:
        return ChatMetadata(**_read_json(chat_dir / METADATA_FILE))

    def create_chat(self, title: str | None = None, model: str | None = None) -> ChatMetadata:
        """Create an empty chat.

        Args:
            title: Optional title (defaults to "New conversation <date>")
            model: Optional model the chat is used with

        Returns:
            The new chat's metadata
        """
        chat_id = self.generate_chat_id()
        chat_dir = self.conversations_dir / chat_id
        (chat_dir / ATTACHMENTS_DIR).mkdir(parents=True, exist_ok=True)

        now = _now()
        metadata = ChatMetadata(
            chat_id=chat_id,
            title=title or f"New conversation {datetime.now().date().isoformat()}",
            created_at=now,
            updated_at=now,
            model=model,
        )
        _write_json(chat_dir / METADATA_FILE, asdict(metadata))
        _write_json(chat_dir / MESSAGES_FILE, {"chat_id": chat_id, "messages": []})

        logger.info(f"Created new chat {chat_id}")
        return metadata

    def list_chats(self) -> list[ChatMetadata]:
        """List all chats, most recently updated first."""
        chats: list[ChatMetadata] = []

        for chat_dir in self.conversations_dir.glob("chat_*"):
            if not (chat_dir / METADATA_FILE).exists():
                continue
            try:
                chats.append(self._load_metadata(chat_dir))
            except Exception as e:
                logger.warning(f"Failed to read metadata for {chat_dir.name}: {e}")
                continue

        chats.sort(key=lambda c: c.updated_at, reverse=True)
        logger.debug(f"Listed {len(chats)} chats")
        return chats

    def load_chat(self, chat_id: str) -> ChatData:
        """Load a chat with its full message history.

        Raises:
            FileNotFoundError: If the chat doesn't exist
        """
        chat_dir = self._require_chat(chat_id)
        metadata = self._load_metadata(chat_dir)
        data = _read_json(chat_dir / MESSAGES_FILE)
        messages = [ChatMessage(**msg) for msg in data.get("messages", [])]
        return ChatData(metadata=metadata, messages=messages)

    def add_message(
        self,
        chat_id: str,
        role: str,
        content: str,
        attachments: list[dict[str, Any]] | None = None,
    ) -> ChatMessage:
        """Append a message to a chat.

        Args:
            chat_id: The chat to append to
            role: "user" or "assistant"
            content: Message text
            attachments: Metadata of attachments sent with this message

        Returns:
            The stored message

        Raises:
            FileNotFoundError: If the chat doesn't exist
        """
        attachments = attachments or []
        chat_dir = self._require_chat(chat_id)
        metadata = self._load_metadata(chat_dir)
        data = _read_json(chat_dir / MESSAGES_FILE)

        message = ChatMessage(
            message_id=f"msg_{int(time.time() * 1000)}_{secrets.token_hex(3)}",
            timestamp=_now(),
            role=role,
            content=content,
            attachments=attachments,
        )
        data.setdefault("messages", []).append(asdict(message))

        metadata.message_count = len(data["messages"])
        metadata.updated_at = message.timestamp
        metadata.has_attachments = metadata.has_attachments or bool(attachments)

        _write_json(chat_dir / MESSAGES_FILE, data)
        _write_json(chat_dir / METADATA_FILE, asdict(metadata))

        logger.debug(f"Added {role} message {message.message_id} to chat {chat_id}")
        return message

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and all of its attachments.

        Raises:
            FileNotFoundError: If the chat doesn't exist
        """
        chat_dir = self._require_chat(chat_id)
        shutil.rmtree(chat_dir)
        logger.info(f"Deleted chat {chat_id}")

    def attachments_dir(self, chat_id: str) -> Path:
        return self._chat_dir(chat_id) / ATTACHMENTS_DIR

    def save_attachment(self, chat_id: str, data: bytes, original_filename: str) -> AttachmentInfo:
        """Store an uploaded file under a generated safe name.

        Raises:
            FileNotFoundError: If the chat doesn't exist
        """
        chat_dir = self._require_chat(chat_id)
        attachments_dir = chat_dir / ATTACHMENTS_DIR
        attachments_dir.mkdir(parents=True, exist_ok=True)

        ext = Path(original_filename).suffix.lower()
        filename = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}{ext}"
        (attachments_dir / filename).write_bytes(data)

        metadata = self._load_metadata(chat_dir)
        metadata.has_attachments = True
        metadata.updated_at = _now()
        _write_json(chat_dir / METADATA_FILE, asdict(metadata))

        logger.info(f"Saved attachment {filename} ({len(data)} bytes) in chat {chat_id}")
        return AttachmentInfo(
            filename=filename,
            original_name=original_filename,
            size=len(data),
            type=get_file_type(original_filename),
            path=f"{ATTACHMENTS_DIR}/{filename}",
        )

    def describe_attachments(self, chat_id: str, filenames: list[str]) -> list[dict[str, Any]]:
        """Build message attachment metadata for stored files.

        Filenames that don't exist in the chat are skipped with a warning.
        """
        attachments_dir = self.attachments_dir(chat_id)
        described = []

        for filename in filenames:
            path = attachments_dir / Path(filename).name
            if not path.is_file():
                logger.warning(f"Attachment {filename} not found in chat {chat_id}")
                continue
            described.append(
                {
                    "filename": path.name,
                    "size": path.stat().st_size,
                    "type": get_file_type(path.name),
                    "path": f"{ATTACHMENTS_DIR}/{path.name}",
                }
            )

        return described
