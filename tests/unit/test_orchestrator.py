"""Unit tests for StreamingChatOrchestrator.

Ollama is replaced by a scripted fake, MCP providers by in-process fakes,
and chats are stored in a temporary directory.
"""

import asyncio
import copy
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from ollama_easy.chat import ChatTurnRequest, PushChannel, StreamingChatOrchestrator
from ollama_easy.chats import AttachmentProcessor, ChatStorage
from ollama_easy.errors import ToolExecutionError, TransportTimeoutError
from ollama_easy.services import SystemPromptService
from ollama_easy.tools import ConnectionManager, ProviderConfigStore


class ScriptedOllama:
    """Replays canned fragments for chat_stream and generate_stream.

    A fragment that is an exception is raised; a callable is called and
    skipped, which lets a test act in the middle of a stream.
    """

    def __init__(self, chat_rounds=None, generate_fragments=None):
        self.chat_rounds = list(chat_rounds or [])
        self.generate_fragments = list(generate_fragments or [])
        self.chat_requests = []
        self.generate_requests = []
        self.closed_streams = 0

    async def _play(self, fragment):
        """Return the fragment to yield, or None to skip it."""
        if isinstance(fragment, Exception):
            raise fragment
        if callable(fragment):
            result = fragment()
            if asyncio.iscoroutine(result):
                await result
            return None
        return fragment

    async def chat_stream(self, model, messages, tools=None, options=None, timeout=None):
        self.chat_requests.append(
            {
                "model": model,
                "messages": copy.deepcopy(messages),
                "tools": tools,
                "timeout": timeout,
            }
        )
        try:
            for fragment in self.chat_rounds.pop(0):
                fragment = await self._play(fragment)
                if fragment is not None:
                    yield fragment
        finally:
            self.closed_streams += 1

    async def generate_stream(self, model, prompt, options=None, timeout=None):
        self.generate_requests.append({"model": model, "prompt": prompt, "timeout": timeout})
        try:
            for fragment in self.generate_fragments:
                fragment = await self._play(fragment)
                if fragment is not None:
                    yield fragment
        finally:
            self.closed_streams += 1


def chat_fragment(content="", tool_calls=None, done=False, model="qwen2.5:14b"):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"model": model, "message": message, "done": done}


def tool_call(name, arguments):
    return {"function": {"name": name, "arguments": arguments}}


def generate_fragment(text, done=False, model="llama-8b"):
    return {"model": model, "response": text, "done": done}


async def drain(channel):
    return [(e["event"], json.loads(e["data"])) async for e in channel]


def names(events):
    return [name for name, _ in events]


@pytest.fixture
def storage(tmp_path):
    return ChatStorage(conversations_dir=tmp_path / "conversations")


@pytest.fixture
def prompts(tmp_path):
    return SystemPromptService(prompts_file=tmp_path / "system-prompts.json")


@pytest.fixture
def manager(test_settings, fake_providers, write_mcp_config):
    write_mcp_config({"search-server": {"command": "search-server"}})
    fake_providers.behaviour["search-server"] = {"tools": ["search"]}
    return ConnectionManager(
        config_store=ProviderConfigStore(test_settings.resolved_mcp_config_file),
        connection_factory=fake_providers,
    )


@pytest.fixture
def make_orchestrator(storage, prompts, manager):
    def _make(ollama, max_tool_iterations=5, connection_manager=None):
        return StreamingChatOrchestrator(
            ollama_client=ollama,
            connection_manager=connection_manager or manager,
            storage=storage,
            attachment_processor=AttachmentProcessor(storage),
            system_prompts=prompts,
            max_tool_iterations=max_tool_iterations,
        )

    return _make


async def run(orchestrator, turn):
    channel = PushChannel()
    outcome = await orchestrator.run_turn(turn, channel)
    return outcome, await drain(channel)


def test_iteration_cap_must_be_positive(storage, manager):
    with pytest.raises(ValueError):
        StreamingChatOrchestrator(
            ollama_client=ScriptedOllama(),
            connection_manager=manager,
            storage=storage,
            max_tool_iterations=0,
        )


@pytest.mark.asyncio
async def test_plain_turn_persists_both_messages(make_orchestrator, storage):
    """Test a tool-less turn: one plain stream, complete, two messages saved."""
    chat_id = storage.create_chat().chat_id
    ollama = ScriptedOllama(
        generate_fragments=[generate_fragment("Hel"), generate_fragment("lo!", done=True)]
    )

    outcome, events = await run(
        make_orchestrator(ollama), ChatTurnRequest(message="hi", model="llama-8b", chat_id=chat_id)
    )

    assert names(events) == [
        "status",
        "message_saved",
        "stream_start",
        "chunk",
        "chunk",
        "message_saved",
        "complete",
    ]
    assert events[0][1] == {"phase": "start", "chatId": chat_id, "model": "llama-8b"}
    assert events[2][1] == {"model": "llama-8b", "iteration": 1, "hasTools": False}
    assert [e[1]["chunkNumber"] for e in events if e[0] == "chunk"] == [1, 2]
    complete = events[-1][1]
    assert complete["success"] is True
    assert complete["chatId"] == chat_id
    assert complete["totalLength"] == 6
    assert complete["iterations"] == 1
    assert complete["toolsUsed"] == 0

    messages = storage.load_chat(chat_id).messages
    assert [(m.role, m.content) for m in messages] == [("user", "hi"), ("assistant", "Hello!")]
    assert ollama.generate_requests[0]["prompt"] == "hi"
    assert ollama.generate_requests[0]["timeout"] == 150.0
    assert outcome.success is True


@pytest.mark.asyncio
async def test_ephemeral_turn_saves_nothing(make_orchestrator, storage):
    ollama = ScriptedOllama(generate_fragments=[generate_fragment("ok", done=True)])

    outcome, events = await run(
        make_orchestrator(ollama), ChatTurnRequest(message="hi", model="llama-8b")
    )

    assert "message_saved" not in names(events)
    assert events[-1] == (
        "complete",
        {
            "success": True,
            "chatId": None,
            "totalLength": 2,
            "iterations": 1,
            "toolsUsed": 0,
            "stopReason": None,
        },
    )
    assert storage.list_chats() == []


@pytest.mark.asyncio
async def test_tool_turn_executes_call_and_continues(make_orchestrator, storage):
    """Test one tool call in iteration 1 and a final answer in iteration 2."""
    chat_id = storage.create_chat().chat_id
    ollama = ScriptedOllama(
        chat_rounds=[
            [chat_fragment(tool_calls=[tool_call("search", {"query": "ollama"})], done=True)],
            [chat_fragment("Found "), chat_fragment("it.", done=True)],
        ]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="look it up", model="qwen2.5:14b", chat_id=chat_id, use_tools=True),
    )

    assert names(events) == [
        "status",
        "message_saved",
        "mcp_status",
        "stream_start",
        "tool_call",
        "tool_result",
        "stream_start",
        "chunk",
        "chunk",
        "message_saved",
        "complete",
    ]
    event_map = dict(events)
    assert event_map["mcp_status"] == {
        "enabled": True,
        "toolCount": 1,
        "toolNames": ["search"],
        "error": None,
    }
    assert event_map["tool_call"] == {
        "name": "search",
        "arguments": {"query": "ollama"},
        "status": "executing",
    }
    assert event_map["tool_result"]["success"] is True
    assert event_map["complete"]["iterations"] == 2
    assert event_map["complete"]["toolsUsed"] == 1
    assert event_map["complete"]["stopReason"] is None

    second_request = ollama.chat_requests[1]
    assert second_request["timeout"] == 180.0
    assert second_request["tools"][0]["function"]["name"] == "search"
    assert second_request["messages"] == [
        {"role": "user", "content": "look it up"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"function": {"name": "search", "arguments": {"query": "ollama"}}}],
        },
        {"role": "tool", "content": "search ran on search-server", "tool_name": "search"},
    ]

    messages = storage.load_chat(chat_id).messages
    assert [(m.role, m.content) for m in messages] == [
        ("user", "look it up"),
        ("assistant", "Found it."),
    ]
    assert outcome.tools_used == 1


@pytest.mark.asyncio
async def test_string_tool_arguments_are_decoded(make_orchestrator, fake_providers):
    ollama = ScriptedOllama(
        chat_rounds=[
            [chat_fragment(tool_calls=[tool_call("search", '{"query": "x"}')], done=True)],
            [chat_fragment("done", done=True)],
        ]
    )

    await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", use_tools=True),
    )

    assert fake_providers.latest("search-server").calls == [("search", {"query": "x"})]


@pytest.mark.asyncio
async def test_multiple_calls_keep_call_order(make_orchestrator, fake_providers):
    """Test that tool messages are appended in the order the model asked."""
    ollama = ScriptedOllama(
        chat_rounds=[
            [
                chat_fragment(
                    tool_calls=[tool_call("search", {"query": "a"}), tool_call("search", {"query": "b"})],
                    done=True,
                )
            ],
            [chat_fragment("both", done=True)],
        ]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", use_tools=True),
    )

    calls = [payload["arguments"] for name, payload in events if name == "tool_call"]
    assert calls == [{"query": "a"}, {"query": "b"}]
    tool_messages = [m for m in ollama.chat_requests[1]["messages"] if m["role"] == "tool"]
    assert len(tool_messages) == 2
    assert outcome.tools_used == 2


@pytest.mark.asyncio
async def test_tool_failure_is_fed_back_to_model(make_orchestrator, fake_providers):
    """Test that a failing tool becomes an error tool message, not a failed turn."""
    fake_providers.behaviour["search-server"] = {
        "tools": ["search"],
        "results": {"search": ToolExecutionError("search", "index offline")},
    }
    ollama = ScriptedOllama(
        chat_rounds=[
            [chat_fragment(tool_calls=[tool_call("search", {"query": "x"})], done=True)],
            [chat_fragment("Search is down.", done=True)],
        ]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", use_tools=True),
    )

    event_map = dict(events)
    assert event_map["tool_result"] == {
        "name": "search",
        "success": False,
        "result": None,
        "error": "index offline",
    }
    tool_message = ollama.chat_requests[1]["messages"][-1]
    assert tool_message == {
        "role": "tool",
        "content": "Error executing search: index offline",
        "tool_name": "search",
    }
    assert names(events)[-1] == "complete"
    assert outcome.success is True


@pytest.mark.asyncio
async def test_unknown_tool_is_fed_back_to_model(make_orchestrator):
    ollama = ScriptedOllama(
        chat_rounds=[
            [chat_fragment(tool_calls=[tool_call("rm_rf", {})], done=True)],
            [chat_fragment("Sorry.", done=True)],
        ]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", use_tools=True),
    )

    result = dict(events)["tool_result"]
    assert result["success"] is False
    assert "tool not available" in result["error"]
    assert outcome.success is True


@pytest.mark.asyncio
async def test_max_iterations_persists_partial_text(make_orchestrator, storage):
    """Test that hitting the cap warns, completes, and keeps the partial answer."""
    chat_id = storage.create_chat().chat_id
    looping_round = [
        chat_fragment("Checking. "),
        chat_fragment(tool_calls=[tool_call("search", {"query": "again"})], done=True),
    ]
    ollama = ScriptedOllama(chat_rounds=[looping_round, looping_round])

    outcome, events = await run(
        make_orchestrator(ollama, max_tool_iterations=2),
        ChatTurnRequest(message="q", model="qwen2.5:14b", chat_id=chat_id, use_tools=True),
    )

    event_map = dict(events)
    assert event_map["warning"] == {
        "message": "Max tool iterations (2) reached",
        "type": "max_iterations",
    }
    assert names(events)[-3:] == ["warning", "message_saved", "complete"]
    assert event_map["complete"]["stopReason"] == "max_iterations"
    assert event_map["complete"]["iterations"] == 2
    assert event_map["complete"]["toolsUsed"] == 2
    assert len(ollama.chat_requests) == 2

    messages = storage.load_chat(chat_id).messages
    assert messages[-1].role == "assistant"
    assert messages[-1].content == "Checking. Checking. "
    assert outcome.stop_reason == "max_iterations"


@pytest.mark.asyncio
async def test_timeout_reports_error_and_saves_no_reply(make_orchestrator, storage):
    """Test that an inference timeout ends the turn with a timeout error."""
    chat_id = storage.create_chat().chat_id
    ollama = ScriptedOllama(
        generate_fragments=[generate_fragment("partial"), TransportTimeoutError(150.0)]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="hi", model="llama-8b", chat_id=chat_id),
    )

    assert events[-1] == ("error", {"message": "Stream timeout after 150s", "phase": "timeout"})
    assert "complete" not in names(events)
    messages = storage.load_chat(chat_id).messages
    assert [m.role for m in messages] == ["user"]
    assert outcome.success is False


@pytest.mark.asyncio
async def test_timeout_in_tool_loop(make_orchestrator, storage):
    chat_id = storage.create_chat().chat_id
    ollama = ScriptedOllama(chat_rounds=[[TransportTimeoutError(180.0)]])

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", chat_id=chat_id, use_tools=True),
    )

    assert events[-1] == ("error", {"message": "Stream timeout after 180s", "phase": "timeout"})
    assert [m.role for m in storage.load_chat(chat_id).messages] == ["user"]
    assert ollama.closed_streams == 1


@pytest.mark.asyncio
async def test_stream_failure_reports_error(make_orchestrator):
    ollama = ScriptedOllama(
        generate_fragments=[generate_fragment("a"), ConnectionError("connection reset")]
    )

    outcome, events = await run(
        make_orchestrator(ollama), ChatTurnRequest(message="hi", model="llama-8b")
    )

    assert events[-1] == ("error", {"message": "connection reset", "phase": "ollama_stream"})


@pytest.mark.asyncio
async def test_empty_stream_is_an_error(make_orchestrator):
    ollama = ScriptedOllama(generate_fragments=[])

    outcome, events = await run(
        make_orchestrator(ollama), ChatTurnRequest(message="hi", model="llama-8b")
    )

    assert events[-1] == (
        "error",
        {"message": "Stream ended without content", "phase": "ollama_stream"},
    )


@pytest.mark.asyncio
async def test_malformed_fragments_are_dropped(make_orchestrator):
    """Test that a fragment with the wrong shape is skipped, not fatal."""
    ollama = ScriptedOllama(
        chat_rounds=[
            [
                chat_fragment("one "),
                {"model": "qwen2.5:14b", "message": "not an object", "done": False},
                chat_fragment(tool_calls=[{"function": {"arguments": {}}}]),
                chat_fragment("two", done=True),
            ]
        ]
    )

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="q", model="qwen2.5:14b", use_tools=True),
    )

    chunks = [payload for name, payload in events if name == "chunk"]
    assert [c["content"] for c in chunks] == ["one ", "two"]
    assert [c["chunkNumber"] for c in chunks] == [1, 2]
    assert "tool_call" not in names(events)
    assert dict(events)["complete"]["totalLength"] == 7


@pytest.mark.asyncio
async def test_only_current_attachments_are_used(make_orchestrator, storage):
    """Test that files from earlier messages never reach the prompt."""
    chat_id = storage.create_chat().chat_id
    old = storage.save_attachment(chat_id, b"OLD CONTENT", "old.txt").filename
    storage.add_message(
        chat_id, "user", "earlier", storage.describe_attachments(chat_id, [old])
    )
    storage.add_message(chat_id, "assistant", "noted")
    new = storage.save_attachment(chat_id, b"NEW CONTENT", "new.txt").filename
    ollama = ScriptedOllama(generate_fragments=[generate_fragment("Summary", done=True)])

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(
            message="summarize", model="llama-8b", chat_id=chat_id, attachments=[new]
        ),
    )

    prompt = ollama.generate_requests[0]["prompt"]
    assert prompt == (
        f"=== FILE CONTENT: {new} ===\nNEW CONTENT\n=== END FILE: {new} ===\n\n"
        "User Question: summarize"
    )
    assert "OLD CONTENT" not in prompt

    user_saved = events[1][1]
    assert user_saved["role"] == "user"
    assert user_saved["attachmentCount"] == 1
    saved = storage.load_chat(chat_id).messages[2]
    assert saved.content == "summarize"
    assert [a["filename"] for a in saved.attachments] == [new]


@pytest.mark.asyncio
async def test_turn_without_attachments_ignores_older_ones(make_orchestrator, storage):
    chat_id = storage.create_chat().chat_id
    old = storage.save_attachment(chat_id, b"OLD CONTENT", "old.txt").filename
    storage.add_message(chat_id, "user", "earlier", storage.describe_attachments(chat_id, [old]))
    ollama = ScriptedOllama(generate_fragments=[generate_fragment("ok", done=True)])

    await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="and now?", model="llama-8b", chat_id=chat_id),
    )

    assert ollama.generate_requests[0]["prompt"] == "and now?"


@pytest.mark.asyncio
async def test_system_prompt_in_plain_prompt(make_orchestrator, prompts):
    prompts.set_prompt("default", "You are terse.")
    ollama = ScriptedOllama(generate_fragments=[generate_fragment("ok", done=True)])

    await run(make_orchestrator(ollama), ChatTurnRequest(message="hi", model="llama-8b"))

    assert ollama.generate_requests[0]["prompt"] == "You are terse.\n\nUser: hi"


@pytest.mark.asyncio
async def test_system_prompt_leads_tool_conversation(make_orchestrator, prompts):
    """Test that the model's system prompt is the first chat message."""
    prompts.set_prompt("qwen2.5:14b", "Use tools wisely.")
    ollama = ScriptedOllama(chat_rounds=[[chat_fragment("ok", done=True)]])

    await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="hi", model="qwen2.5:14b", use_tools=True),
    )

    assert ollama.chat_requests[0]["messages"] == [
        {"role": "system", "content": "Use tools wisely."},
        {"role": "user", "content": "hi"},
    ]


@pytest.mark.asyncio
async def test_mcp_initialization_failure_falls_back_to_plain(make_orchestrator):
    """Test that a broken tool setup still answers, without tools."""
    broken_manager = MagicMock()
    broken_manager.initialize = AsyncMock(side_effect=RuntimeError("config unreadable"))
    ollama = ScriptedOllama(generate_fragments=[generate_fragment("ok", done=True)])

    outcome, events = await run(
        make_orchestrator(ollama, connection_manager=broken_manager),
        ChatTurnRequest(message="hi", model="llama-8b", use_tools=True),
    )

    assert dict(events)["mcp_status"] == {
        "enabled": False,
        "toolCount": 0,
        "toolNames": [],
        "error": "config unreadable",
    }
    assert ollama.chat_requests == []
    assert names(events)[-1] == "complete"


@pytest.mark.asyncio
async def test_missing_chat_is_a_setup_error(make_orchestrator):
    ollama = ScriptedOllama()

    outcome, events = await run(
        make_orchestrator(ollama),
        ChatTurnRequest(message="hi", model="llama-8b", chat_id="chat_0_deadbeef"),
    )

    assert events[-1][0] == "error"
    assert events[-1][1]["phase"] == "request_setup"
    assert ollama.generate_requests == []


@pytest.mark.asyncio
async def test_client_disconnect_closes_stream(make_orchestrator, storage):
    """Test that a closed channel stops the turn and closes the Ollama stream."""
    chat_id = storage.create_chat().chat_id
    channel = PushChannel()
    ollama = ScriptedOllama(
        generate_fragments=[
            generate_fragment("first "),
            channel.close,
            generate_fragment("second", done=True),
        ]
    )

    outcome = await make_orchestrator(ollama).run_turn(
        ChatTurnRequest(message="hi", model="llama-8b", chat_id=chat_id), channel
    )

    assert outcome.success is False
    assert outcome.error == "client disconnected"
    assert ollama.closed_streams == 1
    assert [m.role for m in storage.load_chat(chat_id).messages] == ["user"]


@pytest.mark.asyncio
async def test_cancelled_turn_closes_stream(make_orchestrator):
    """Test that cancelling the turn task closes the in-flight stream."""
    started = asyncio.Event()
    ollama = ScriptedOllama(
        generate_fragments=[
            generate_fragment("first "),
            started.set,
            lambda: asyncio.sleep(60),
        ]
    )
    channel = PushChannel()
    task = asyncio.create_task(
        make_orchestrator(ollama).run_turn(
            ChatTurnRequest(message="hi", model="llama-8b"), channel
        )
    )

    await asyncio.wait_for(started.wait(), timeout=5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert ollama.closed_streams == 1
    assert channel.closed
