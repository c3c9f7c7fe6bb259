"""Turn-level driver for streaming chat with optional MCP tools.

A turn persists the user message, builds the prompt (attachments and system
prompt included), then either streams one plain completion from Ollama or
runs the tool loop: stream a chat response, execute the tool calls the model
asked for, feed the results back and repeat until the model answers without
tools or the iteration cap is hit. Progress is reported as named events on a
PushChannel.
"""

import json
import logging
from contextlib import aclosing
from typing import Any

from ollama_easy.chat.channel import PushChannel, PushChannelClosed
from ollama_easy.chat.timeouts import get_timeout_for_model
from ollama_easy.chat.types import (
    ChatTurnRequest,
    ConversationState,
    ToolInvocation,
    TurnOutcome,
)
from ollama_easy.chats.attachments import AttachmentProcessor
from ollama_easy.chats.storage import ChatStorage
from ollama_easy.errors import (
    MaxIterationsExceeded,
    StreamParseError,
    ToolExecutionError,
    TransportTimeoutError,
)
from ollama_easy.models.chat import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    McpStatusEvent,
    MessageSavedEvent,
    StatusEvent,
    StreamStartEvent,
    ToolCallEvent,
    ToolResultEvent,
    WarningEvent,
)
from ollama_easy.ollama.client import OllamaClient
from ollama_easy.services.system_prompts import SystemPromptService
from ollama_easy.tools.manager import ConnectionManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 5


def _parse_tool_call(raw: Any) -> tuple[str, dict[str, Any]]:
    """Extract (name, arguments) from one tool call of a chat fragment.

    Arguments may arrive as a JSON-encoded string; they are decoded.

    Raises:
        StreamParseError: If the call has no name or its arguments aren't an object
    """
    function = raw.get("function") if isinstance(raw, dict) else None
    if not isinstance(function, dict):
        raise StreamParseError(f"Tool call without a function: {raw!r}")

    name = function.get("name")
    if not isinstance(name, str) or not name:
        raise StreamParseError(f"Tool call without a name: {raw!r}")

    arguments = function.get("arguments") or {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise StreamParseError(f"Invalid arguments for tool '{name}': {e}") from e
    if not isinstance(arguments, dict):
        raise StreamParseError(f"Arguments for tool '{name}' are not an object")

    return name, arguments


def _parse_chat_fragment(
    fragment: Any,
) -> tuple[str, list[tuple[str, dict[str, Any]]], bool]:
    """Parse one /api/chat fragment into (content, tool calls, done).

    Raises:
        StreamParseError: If the fragment doesn't have the expected shape
    """
    if not isinstance(fragment, dict):
        raise StreamParseError(f"Fragment is not an object: {fragment!r}")

    message = fragment.get("message") or {}
    if not isinstance(message, dict):
        raise StreamParseError(f"Fragment message is not an object: {message!r}")

    content = message.get("content") or ""
    if not isinstance(content, str):
        raise StreamParseError("Fragment content is not a string")

    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise StreamParseError("Fragment tool_calls is not a list")

    tool_calls = [_parse_tool_call(raw) for raw in raw_calls]
    return content, tool_calls, bool(fragment.get("done"))


def _parse_generate_fragment(fragment: Any) -> tuple[str, bool]:
    """Parse one /api/generate fragment into (content, done).

    Raises:
        StreamParseError: If the fragment doesn't have the expected shape
    """
    if not isinstance(fragment, dict):
        raise StreamParseError(f"Fragment is not an object: {fragment!r}")

    content = fragment.get("response") or ""
    if not isinstance(content, str):
        raise StreamParseError("Fragment response is not a string")

    return content, bool(fragment.get("done"))


def _tool_result_text(result: dict[str, Any]) -> str:
    """Render a tool result as the content of a tool message for the model."""
    blocks = result.get("content") or []
    texts = [
        block["text"]
        for block in blocks
        if isinstance(block, dict) and block.get("type") == "text" and "text" in block
    ]
    if texts:
        return "\n".join(texts)
    return json.dumps(result.get("content", result), ensure_ascii=False, default=str)


class StreamingChatOrchestrator:
    """Runs single chat turns against Ollama, with or without MCP tools.

    One orchestrator serves every request; all per-turn state lives in the
    ConversationState created by run_turn().
    """

    def __init__(
        self,
        ollama_client: OllamaClient,
        connection_manager: ConnectionManager,
        storage: ChatStorage,
        attachment_processor: AttachmentProcessor | None = None,
        system_prompts: SystemPromptService | None = None,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
    ):
        """Initialize the orchestrator.

        Args:
            ollama_client: Client used for every inference call
            connection_manager: Source of tools and tool execution
            storage: Chat persistence
            attachment_processor: Extracts attachment text, if configured
            system_prompts: Per-model system prompts, if configured
            max_tool_iterations: Cap on chat calls within one tool turn
        """
        if max_tool_iterations < 1:
            raise ValueError("max_tool_iterations must be at least 1")

        self.ollama_client = ollama_client
        self.connection_manager = connection_manager
        self.storage = storage
        self.attachment_processor = attachment_processor
        self.system_prompts = system_prompts
        self.max_tool_iterations = max_tool_iterations

    async def run_turn(self, turn: ChatTurnRequest, channel: PushChannel) -> TurnOutcome:
        """Run one chat turn, reporting progress on the channel.

        Every turn that isn't interrupted ends with exactly one complete or
        error event. The channel is closed when the turn returns.

        If the channel is closed by the client or the calling task is
        cancelled, the in-flight Ollama stream is closed and nothing more is
        persisted.
        """
        logger.info(
            f"Chat turn started: model={turn.model}, chat={turn.chat_id}, "
            f"tools={turn.use_tools}, attachments={len(turn.attachments)}"
        )
        try:
            outcome = await self._run(turn, channel)
        except PushChannelClosed:
            logger.warning(f"Client disconnected during chat turn for chat {turn.chat_id}")
            return TurnOutcome(success=False, error="client disconnected")
        except Exception as e:
            logger.error(f"Chat turn failed: {e}")
            if not channel.closed:
                channel.emit("error", ErrorEvent(message=str(e), phase="internal"))
            return TurnOutcome(success=False, error=str(e))
        finally:
            channel.close()

        logger.info(
            f"Chat turn finished: success={outcome.success}, "
            f"iterations={outcome.iterations}, tools_used={outcome.tools_used}"
        )
        return outcome

    async def _run(self, turn: ChatTurnRequest, channel: PushChannel) -> TurnOutcome:
        channel.emit("status", StatusEvent(chat_id=turn.chat_id, model=turn.model))

        timeout = get_timeout_for_model(turn.model)
        logger.info(f"Request timeout set to {timeout:g}s for {turn.model}")

        try:
            prompt = self._prepare_prompt(turn, channel)
            system_prompt = self._get_system_prompt(turn.model)
        except PushChannelClosed:
            raise
        except Exception as e:
            logger.error(f"Failed to prepare chat turn: {e}")
            return self._fail(channel, str(e), "request_setup")

        tools = await self._resolve_tools(turn, channel)

        if tools:
            messages: list[dict[str, Any]] = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            return await self._run_tool_loop(
                turn, ConversationState(messages=messages), tools, timeout, channel
            )

        if system_prompt:
            prompt = f"{system_prompt}\n\nUser: {prompt}"
        return await self._run_plain(turn, prompt, timeout, channel)

    def _prepare_prompt(self, turn: ChatTurnRequest, channel: PushChannel) -> str:
        """Persist the user message and expand it with this turn's attachments."""
        if not turn.chat_id:
            return turn.message

        attachments = (
            self.storage.describe_attachments(turn.chat_id, turn.attachments)
            if turn.attachments
            else []
        )
        self.storage.add_message(turn.chat_id, "user", turn.message, attachments)
        channel.emit(
            "message_saved",
            MessageSavedEvent(
                role="user",
                chat_id=turn.chat_id,
                attachment_count=len(attachments),
                total_length=len(turn.message),
            ),
        )

        if self.attachment_processor is None:
            return turn.message

        try:
            filenames = self._current_attachments(turn.chat_id)
            if not filenames:
                return turn.message
            content = self.attachment_processor.process_specific_attachments(
                turn.chat_id, filenames
            )
        except OSError as e:
            logger.warning(f"Attachment processing failed for chat {turn.chat_id}: {e}")
            return turn.message

        if not content.strip():
            return turn.message

        logger.info(f"Enhanced prompt with {len(content)} chars of attachment text")
        return f"{content}\n\nUser Question: {turn.message}"

    def _current_attachments(self, chat_id: str) -> list[str]:
        """Filenames attached to the message just saved, never older ones."""
        chat = self.storage.load_chat(chat_id)
        if not chat.messages:
            return []

        last = chat.messages[-1]
        if last.role != "user":
            return []
        return [att["filename"] for att in last.attachments if att.get("filename")]

    def _get_system_prompt(self, model: str) -> str:
        if self.system_prompts is None:
            return ""
        system_prompt = self.system_prompts.get_system_prompt(model)
        if system_prompt:
            logger.debug(f"Using system prompt for {model}: {system_prompt[:50]}")
        return system_prompt

    async def _resolve_tools(
        self, turn: ChatTurnRequest, channel: PushChannel
    ) -> list[dict[str, Any]]:
        if not turn.use_tools:
            return []

        try:
            await self.connection_manager.initialize()
        except Exception as e:
            logger.warning(f"MCP initialization failed: {e}")
            channel.emit("mcp_status", McpStatusEvent(enabled=False, error=str(e)))
            return []

        tools = self.connection_manager.get_available_tools()
        tool_names = [tool["function"]["name"] for tool in tools]
        logger.info(f"MCP enabled with {len(tools)} tools available")
        channel.emit(
            "mcp_status",
            McpStatusEvent(enabled=True, tool_count=len(tools), tool_names=tool_names),
        )
        return tools

    async def _run_plain(
        self, turn: ChatTurnRequest, prompt: str, timeout: float, channel: PushChannel
    ) -> TurnOutcome:
        """Stream one /api/generate completion."""
        channel.emit(
            "stream_start", StreamStartEvent(model=turn.model, iteration=1, has_tools=False)
        )

        parts: list[str] = []
        chunk_count = 0
        completed = False

        try:
            async with aclosing(
                self.ollama_client.generate_stream(
                    model=turn.model, prompt=prompt, timeout=timeout
                )
            ) as stream:
                async for fragment in stream:
                    try:
                        content, done = _parse_generate_fragment(fragment)
                    except StreamParseError as e:
                        logger.warning(f"Dropping malformed fragment: {e}")
                        continue

                    if content:
                        parts.append(content)
                        chunk_count += 1
                        channel.emit(
                            "chunk",
                            ChunkEvent(
                                content=content,
                                model=fragment.get("model") or turn.model,
                                done=done,
                                chunk_number=chunk_count,
                            ),
                        )
                    if done:
                        completed = True
                        break
        except PushChannelClosed:
            raise
        except TransportTimeoutError as e:
            return self._fail(channel, str(e), "timeout")
        except Exception as e:
            logger.error(f"Ollama stream error: {e}")
            return self._fail(channel, str(e), "ollama_stream")

        full_response = "".join(parts)
        if not completed and not full_response:
            return self._fail(channel, "Stream ended without content", "ollama_stream")

        logger.info(f"Stream completed: {chunk_count} chunks, {len(full_response)} chars")
        try:
            self._persist_assistant(turn, full_response, channel)
        except OSError as e:
            return self._storage_failure(channel, e)

        channel.emit(
            "complete",
            CompleteEvent(
                chat_id=turn.chat_id,
                total_length=len(full_response),
                iterations=1,
                tools_used=0,
            ),
        )
        return TurnOutcome(success=True, total_length=len(full_response), iterations=1)

    async def _run_tool_loop(
        self,
        turn: ChatTurnRequest,
        state: ConversationState,
        tools: list[dict[str, Any]],
        timeout: float,
        channel: PushChannel,
    ) -> TurnOutcome:
        """Run the tool loop and turn its result into terminal events."""
        stop_reason = None
        try:
            await self._iterate(turn, state, tools, timeout, channel)
        except MaxIterationsExceeded as e:
            logger.warning(str(e))
            channel.emit("warning", WarningEvent(message=str(e), type="max_iterations"))
            stop_reason = "max_iterations"
        except PushChannelClosed:
            raise
        except TransportTimeoutError as e:
            return self._fail(channel, str(e), "timeout", state)
        except Exception as e:
            logger.error(f"Error in tool streaming after {state.iteration} iterations: {e}")
            return self._fail(channel, str(e), "tool_streaming", state)

        try:
            self._persist_assistant(turn, state.full_response, channel)
        except OSError as e:
            return self._storage_failure(channel, e, state)
        channel.emit(
            "complete",
            CompleteEvent(
                chat_id=turn.chat_id,
                total_length=len(state.full_response),
                iterations=state.iteration,
                tools_used=state.tools_used,
                stop_reason=stop_reason,
            ),
        )
        return TurnOutcome(
            success=True,
            total_length=len(state.full_response),
            iterations=state.iteration,
            tools_used=state.tools_used,
            stop_reason=stop_reason,
        )

    async def _iterate(
        self,
        turn: ChatTurnRequest,
        state: ConversationState,
        tools: list[dict[str, Any]],
        timeout: float,
        channel: PushChannel,
    ) -> None:
        """Alternate chat calls and tool execution until the model stops asking.

        Raises:
            MaxIterationsExceeded: If the cap is hit while tools are still requested
        """
        while state.iteration < self.max_tool_iterations:
            state.iteration += 1
            content, tool_calls = await self._stream_chat(turn, state, tools, timeout, channel)

            if not tool_calls:
                logger.info(f"Tool conversation complete after {state.iteration} iterations")
                return

            logger.info(
                f"Processing {len(tool_calls)} tool calls (iteration {state.iteration})"
            )
            state.messages.append(
                {
                    "role": "assistant",
                    "content": content,
                    "tool_calls": [
                        {"function": {"name": name, "arguments": arguments}}
                        for name, arguments in tool_calls
                    ],
                }
            )

            for name, arguments in tool_calls:
                invocation = await self._execute_tool(
                    name, arguments, state.iteration, channel
                )
                state.invocations.append(invocation)
                state.messages.append(
                    {"role": "tool", "content": invocation.content, "tool_name": name}
                )

        raise MaxIterationsExceeded(self.max_tool_iterations)

    async def _stream_chat(
        self,
        turn: ChatTurnRequest,
        state: ConversationState,
        tools: list[dict[str, Any]],
        timeout: float,
        channel: PushChannel,
    ) -> tuple[str, list[tuple[str, dict[str, Any]]]]:
        """Stream one /api/chat call, emitting chunks and collecting tool calls."""
        channel.emit(
            "stream_start",
            StreamStartEvent(model=turn.model, iteration=state.iteration, has_tools=True),
        )

        parts: list[str] = []
        tool_calls: list[tuple[str, dict[str, Any]]] = []

        async with aclosing(
            self.ollama_client.chat_stream(
                model=turn.model,
                messages=state.messages,
                tools=tools,
                timeout=timeout,
            )
        ) as stream:
            async for fragment in stream:
                try:
                    content, calls, done = _parse_chat_fragment(fragment)
                except StreamParseError as e:
                    logger.warning(f"Dropping malformed fragment: {e}")
                    continue

                if content:
                    parts.append(content)
                    state.full_response += content
                    state.chunk_count += 1
                    channel.emit(
                        "chunk",
                        ChunkEvent(
                            content=content,
                            model=fragment.get("model") or turn.model,
                            done=done,
                            chunk_number=state.chunk_count,
                        ),
                    )
                tool_calls.extend(calls)
                if done:
                    break

        return "".join(parts), tool_calls

    async def _execute_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        iteration: int,
        channel: PushChannel,
    ) -> ToolInvocation:
        """Execute one tool call. Failures become a failed invocation."""
        logger.info(f"Executing MCP tool: {name}")
        channel.emit("tool_call", ToolCallEvent(name=name, arguments=arguments))

        try:
            result = await self.connection_manager.call_tool(name, arguments)
        except ToolExecutionError as e:
            error = e.message
        except Exception as e:
            error = str(e)
        else:
            channel.emit("tool_result", ToolResultEvent(name=name, success=True, result=result))
            return ToolInvocation(
                name=name,
                arguments=arguments,
                iteration=iteration,
                success=True,
                content=_tool_result_text(result),
            )

        logger.error(f"Tool {name} failed: {error}")
        channel.emit("tool_result", ToolResultEvent(name=name, success=False, error=error))
        return ToolInvocation(
            name=name,
            arguments=arguments,
            iteration=iteration,
            success=False,
            content=f"Error executing {name}: {error}",
        )

    def _persist_assistant(
        self, turn: ChatTurnRequest, text: str, channel: PushChannel
    ) -> None:
        if not turn.chat_id or not text:
            return

        self.storage.add_message(turn.chat_id, "assistant", text, [])
        channel.emit(
            "message_saved",
            MessageSavedEvent(role="assistant", chat_id=turn.chat_id, total_length=len(text)),
        )

    def _storage_failure(
        self, channel: PushChannel, error: OSError, state: ConversationState | None = None
    ) -> TurnOutcome:
        logger.error(f"Failed to save assistant message: {error}")
        return self._fail(channel, f"Failed to save assistant message: {error}", "storage", state)

    def _fail(
        self,
        channel: PushChannel,
        message: str,
        phase: str,
        state: ConversationState | None = None,
    ) -> TurnOutcome:
        channel.emit("error", ErrorEvent(message=message, phase=phase))
        return TurnOutcome(
            success=False,
            iterations=state.iteration if state else 0,
            tools_used=state.tools_used if state else 0,
            error=message,
        )
