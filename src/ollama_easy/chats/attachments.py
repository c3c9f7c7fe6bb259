"""Text extraction from chat attachments.

The AttachmentProcessor turns the files attached to a single message into a
block of text that is prepended to the user's question.
"""

import logging
from pathlib import Path

from ollama_easy.chats.storage import ChatStorage, get_file_type

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {
    ".txt", ".md", ".csv", ".json", ".js", ".ts", ".py", ".html", ".css",
    ".xml", ".yaml", ".yml", ".toml", ".ini", ".log",
}


def _size_kb(path: Path) -> str:
    return f"{path.stat().st_size / 1024:.1f}KB"


def extract_text(path: Path) -> str:
    """Extract text from one attachment file.

    Plain text formats are read as UTF-8. Images, PDFs and Office documents
    are described by a one-line placeholder since no text is extracted from
    them. Unknown formats are tried as text.
    """
    ext = path.suffix.lower()
    file_type = get_file_type(path.name)

    if ext in TEXT_EXTENSIONS:
        return path.read_text(encoding="utf-8", errors="replace")

    if file_type == "image":
        return (
            f"[IMAGE FILE: {path.name} - {_size_kb(path)} - "
            f"Format: {ext.lstrip('.').upper()}]"
        )

    if file_type in ("pdf", "document", "spreadsheet"):
        return f"[{ext.lstrip('.').upper()} FILE: {path.name} - {_size_kb(path)}]"

    logger.warning(f"Unknown file type {ext or '(none)'}, attempting text extraction")
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return f"[BINARY FILE: {path.name} - {_size_kb(path)}]"


class AttachmentProcessor:
    """Extracts and combines the text of specific attachments of a chat."""

    def __init__(self, storage: ChatStorage):
        self.storage = storage

    def process_specific_attachments(self, chat_id: str, filenames: list[str]) -> str:
        """Combine the text of the given attachments.

        Each file is wrapped in "=== FILE CONTENT: name ===" and
        "=== END FILE: name ===" markers. Files that are missing or fail to
        read are skipped.

        Args:
            chat_id: The chat owning the attachments
            filenames: Stored attachment filenames

        Returns:
            The combined text, or "" when nothing could be extracted
        """
        if not chat_id or not filenames:
            return ""

        attachments_dir = self.storage.attachments_dir(chat_id)
        if not attachments_dir.is_dir():
            logger.info(f"No attachments directory for chat {chat_id}")
            return ""

        sections = []
        for filename in filenames:
            path = attachments_dir / Path(filename).name
            try:
                content = extract_text(path)
            except OSError as e:
                logger.error(f"Failed to process attachment {filename}: {e}")
                continue

            if content.strip():
                sections.append(
                    f"=== FILE CONTENT: {filename} ===\n{content}\n=== END FILE: {filename} ==="
                )

        logger.info(
            f"Processed {len(sections)}/{len(filenames)} attachments for chat {chat_id}"
        )
        return "\n\n".join(sections)
