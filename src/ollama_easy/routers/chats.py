"""Chat storage router.

This module provides REST API endpoints for:
- Creating, listing, reading and deleting chats
- Uploading attachments into a chat
"""

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ollama_easy.chats import ChatStorage
from ollama_easy.dependencies import get_chat_storage
from ollama_easy.models.chats import (
    AttachmentResponse,
    ChatDetailResponse,
    ChatListResponse,
    ChatMessageResponse,
    ChatMetadataResponse,
    CreateChatRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chats", tags=["chats"])

MAX_ATTACHMENT_BYTES = 50 * 1024 * 1024


def _chat_not_found(chat_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "error": {
                "code": "chat_not_found",
                "message": f"Chat {chat_id} not found",
                "details": {"chat_id": chat_id},
            }
        },
    )


@router.post(
    "",
    response_model=ChatMetadataResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new chat",
)
async def create_chat(
    storage: Annotated[ChatStorage, Depends(get_chat_storage)],
    request: CreateChatRequest | None = None,
) -> ChatMetadataResponse:
    """Create an empty chat.

    Args:
        storage: Injected ChatStorage
        request: Optional title and model

    Returns:
        The new chat's metadata
    """
    request = request or CreateChatRequest()
    metadata = storage.create_chat(title=request.title, model=request.model)
    return ChatMetadataResponse.model_validate(metadata)


@router.get(
    "",
    response_model=ChatListResponse,
    summary="List all chats",
)
async def list_chats(
    storage: Annotated[ChatStorage, Depends(get_chat_storage)],
) -> ChatListResponse:
    """List all chats, most recently updated first."""
    chats = [ChatMetadataResponse.model_validate(c) for c in storage.list_chats()]
    return ChatListResponse(chats=chats, total=len(chats))


@router.get(
    "/{chat_id}",
    response_model=ChatDetailResponse,
    summary="Get a chat with its messages",
)
async def get_chat(
    chat_id: str,
    storage: Annotated[ChatStorage, Depends(get_chat_storage)],
) -> ChatDetailResponse:
    """Get a chat's metadata and full message history.

    Raises:
        HTTPException: 404 if chat not found
    """
    try:
        chat = storage.load_chat(chat_id)
    except FileNotFoundError:
        logger.warning(f"Chat {chat_id} not found")
        raise _chat_not_found(chat_id)

    return ChatDetailResponse(
        metadata=ChatMetadataResponse.model_validate(chat.metadata),
        messages=[ChatMessageResponse(**asdict(msg)) for msg in chat.messages],
    )


@router.delete(
    "/{chat_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a chat",
)
async def delete_chat(
    chat_id: str,
    storage: Annotated[ChatStorage, Depends(get_chat_storage)],
) -> None:
    """Delete a chat and its attachments permanently.

    Raises:
        HTTPException: 404 if chat not found
    """
    try:
        storage.delete_chat(chat_id)
    except FileNotFoundError:
        logger.warning(f"Chat {chat_id} not found")
        raise _chat_not_found(chat_id)


@router.post(
    "/{chat_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload an attachment",
)
async def upload_attachment(
    chat_id: str,
    request: Request,
    storage: Annotated[ChatStorage, Depends(get_chat_storage)],
    filename: Annotated[str, Query(min_length=1, description="Original filename")],
) -> AttachmentResponse:
    """Store the raw request body as an attachment of the chat.

    The returned filename is what the client sends in the attachments list
    of the next chat request.

    Raises:
        HTTPException: 404 if chat not found, 400 if empty, 413 if too large
    """
    data = await request.body()

    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": {
                    "code": "empty_attachment",
                    "message": "Attachment body is empty",
                    "details": {},
                }
            },
        )

    if len(data) > MAX_ATTACHMENT_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail={
                "error": {
                    "code": "attachment_too_large",
                    "message": f"Attachment exceeds {MAX_ATTACHMENT_BYTES} bytes",
                    "details": {"size": len(data)},
                }
            },
        )

    try:
        info = storage.save_attachment(chat_id, data, filename)
    except FileNotFoundError:
        raise _chat_not_found(chat_id)

    return AttachmentResponse.model_validate(info)
