"""Streaming chat endpoint.

POST /api/v1/chat/stream runs one chat turn and streams its progress as
Server-Sent Events (status, message_saved, mcp_status, stream_start, chunk,
tool_call, tool_result, warning, complete, error).
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from ollama_easy.chat import ChatTurnRequest, PushChannel, StreamingChatOrchestrator
from ollama_easy.chats import ChatStorage
from ollama_easy.dependencies import get_chat_storage, get_orchestrator
from ollama_easy.models.chat import ChatStreamRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.post("/stream")
async def chat_streaming(
    request_body: ChatStreamRequest,
    request: Request,
    orchestrator: StreamingChatOrchestrator = Depends(get_orchestrator),
    storage: ChatStorage = Depends(get_chat_storage),
) -> EventSourceResponse:
    """Stream a chat turn via Server-Sent Events (SSE).

    The turn runs in its own task and pushes events into a channel that this
    endpoint drains. When the client disconnects the task is cancelled, which
    closes the in-flight Ollama request.

    Args:
        request_body: Message, model, optional chat id, MCP flag, attachments
        request: FastAPI request object
        orchestrator: Injected chat orchestrator
        storage: Injected chat storage

    Returns:
        EventSourceResponse with SSE events

    Raises:
        HTTPException: 404 if a chat id is given and the chat doesn't exist
    """
    if request_body.chat_id and not storage.exists(request_body.chat_id):
        raise HTTPException(
            status_code=404,
            detail={
                "error": {
                    "code": "chat_not_found",
                    "message": f"Chat {request_body.chat_id} not found",
                    "details": {"chat_id": request_body.chat_id},
                }
            },
        )

    turn = ChatTurnRequest(
        message=request_body.message,
        model=request_body.model,
        chat_id=request_body.chat_id,
        use_tools=request_body.enable_mcp,
        attachments=request_body.attachments,
    )

    logger.info(
        f"Stream chat request: chat={turn.chat_id}, model={turn.model}, "
        f"length={len(turn.message)}, mcp={turn.use_tools}"
    )

    async def event_generator():
        """Run the turn and forward its events until the channel closes."""
        channel = PushChannel()
        task = asyncio.create_task(
            orchestrator.run_turn(turn, channel), name=f"chat-turn-{turn.chat_id}"
        )

        try:
            async for event in channel:
                if await request.is_disconnected():
                    logger.warning(f"Client disconnected during streaming for chat {turn.chat_id}")
                    break
                yield event
        finally:
            channel.close()
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    return EventSourceResponse(event_generator())
