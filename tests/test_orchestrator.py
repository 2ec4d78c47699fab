"""Tests for the session orchestrator: sanitation, dispatch, completion, cancellation and failures."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import ScriptedBackend, dialogue, reply, wait_until

from heliumai.cancellation import CancelOutcome
from heliumai.errors import ModelNotSelectedError, SessionInFlightError, SessionNotFoundError
from heliumai.models import AIMode, Conversation, Message, ModelProvider, Role, SessionState, ToolStatus
from heliumai.orchestrator import ERROR_MESSAGE_PREFIX, SessionOrchestrator, sanitize_history
from heliumai.preferences import PreferenceRecord, Resolved, Unresolved
from heliumai.tools import FunctionToolExecutor


def make_orchestrator(backend, preferences, catalog, **kwargs):
    events = []
    orchestrator = SessionOrchestrator(
        backend=backend,
        preferences=preferences,
        available_models=catalog,
        on_status=events.append,
        **kwargs,
    )
    return orchestrator, events


def snapshot(orchestrator):
    return [(m.id, m.role, m.content, m.is_streaming, m.error) for m in orchestrator.messages]


class TestSanitizeHistory:
    def test_streaming_placeholder_is_dropped_but_its_question_kept(self):
        a = Message(role=Role.USER, content="a")
        b = Message(role=Role.ASSISTANT, content="b", is_streaming=True)
        assert sanitize_history([a, b]) == [a]

    def test_unanswered_trailing_user_message_is_dropped(self):
        a = Message(role=Role.USER, content="a")
        assert sanitize_history([a]) == []

    def test_trailing_error_and_its_question_are_dropped(self):
        q1 = Message(role=Role.USER, content="q1")
        a1 = Message(role=Role.ASSISTANT, content="a1")
        q2 = Message(role=Role.USER, content="q2")
        err = Message(role=Role.ASSISTANT, content=f"{ERROR_MESSAGE_PREFIX}boom", error="boom")
        assert sanitize_history([q1, a1, q2, err]) == [q1, a1]

    def test_completed_history_is_untouched(self):
        q1 = Message(role=Role.USER, content="q1")
        a1 = Message(role=Role.ASSISTANT, content="a1")
        assert sanitize_history([q1, a1]) == [q1, a1]


@pytest.mark.asyncio
class TestSend:
    async def test_history_sanitation_before_dispatch(self, preferences, catalog):
        conversation = Conversation(
            messages=[
                Message(role=Role.USER, content="a"),
                Message(role=Role.ASSISTANT, content="b", is_streaming=True),
            ]
        )
        backend = ScriptedBackend([reply("ok")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog, conversation=conversation)

        await orchestrator.send("c")

        assert dialogue(backend.requests[0]) == [(Role.USER, "a"), (Role.USER, "c")]
        assert [(m.role, m.content) for m in orchestrator.messages] == [
            (Role.USER, "a"),
            (Role.USER, "c"),
            (Role.ASSISTANT, "ok"),
        ]

    async def test_trailing_user_cleanup(self, preferences, catalog):
        conversation = Conversation(messages=[Message(role=Role.USER, content="a")])
        backend = ScriptedBackend([reply("ok")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog, conversation=conversation)

        await orchestrator.send("b")

        assert dialogue(backend.requests[0]) == [(Role.USER, "b")]

    async def test_final_text_overwrites_streamed_text(self, preferences, catalog):
        backend = ScriptedBackend([reply("He", "llo", final="Hello!")])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)

        message = await orchestrator.send("hi")

        assert message.content == "Hello!"
        assert message.is_streaming is False
        assert message.error is None
        assert [e.content for e in events if e.kind == "stream_chunk"] == ["He", "llo"]
        assert orchestrator.messages[-1] is message
        assert orchestrator.conversation.check_invariants() == []

    async def test_empty_final_keeps_streamed_text(self, preferences, catalog):
        backend = ScriptedBackend([reply("partial ", "answer", final="")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        message = await orchestrator.send("hi")

        assert message.content == "partial answer"

    async def test_state_transitions_on_completion(self, preferences, catalog):
        backend = ScriptedBackend([reply("Hi")])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)

        await orchestrator.send("hi")

        states = [e.state for e in events if e.kind == "state_change"]
        assert states == ["sending", "streaming", "finalizing", "idle"]
        assert events[-1].kind == "complete"
        assert orchestrator.state == SessionState.IDLE
        assert orchestrator.is_loading is False
        assert orchestrator.active_session_id is None

    async def test_request_carries_resolved_model_and_mode(self, preferences, catalog):
        backend = ScriptedBackend([reply("ok")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        await orchestrator.send("hi")

        request = backend.requests[0]
        assert request.mode == AIMode.QA
        assert request.model.id == "llama3.2:1b"
        assert request.model.endpoint == "http://127.0.0.1:11434"
        assert request.messages[0].role == Role.SYSTEM

    async def test_qa_mode_does_not_execute_tools(self, preferences, catalog):
        calls = []

        def list_directory(path: str) -> str:
            """List a directory."""
            calls.append(path)
            return "a.txt"

        backend = ScriptedBackend(
            [reply('<tool_call>{"name": "list_directory", "arguments": {"path": "/"}}</tool_call>Answer')],
            tool_executor=FunctionToolExecutor([list_directory]),
        )
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        message = await orchestrator.send("what is in /?")

        assert message.content == "Answer"
        assert message.tool_executions == []
        assert calls == []
        assert len(backend.requests) == 1

    async def test_agent_mode_runs_tools_and_records_executions(self, preferences, catalog):
        def list_directory(path: str) -> str:
            """List a directory."""
            return "a.txt\nb.txt"

        backend = ScriptedBackend(
            [
                reply('Let me look. <tool_call>{"name": "list_directory", "arguments": {"path": "/tmp"}}</tool_call>'),
                reply("There are two files."),
            ],
            tool_executor=FunctionToolExecutor([list_directory]),
        )
        orchestrator, events = make_orchestrator(backend, preferences, catalog, mode=AIMode.AGENT)

        message = await orchestrator.send("what is in /tmp?")

        assert message.content == "There are two files."
        assert len(message.tool_executions) == 1
        execution = message.tool_executions[0]
        assert execution.tool_name == "list_directory"
        assert execution.arguments == {"path": "/tmp"}
        assert execution.status == ToolStatus.SUCCESS
        assert execution.result == "a.txt\nb.txt"
        assert [e.tool_status for e in events if e.kind == "tool_execution"] == ["executing", "success"]
        assert "tool_executing" in [e.state for e in events if e.kind == "state_change"]

        second_round = dialogue(backend.requests[1])
        assert second_round[-1][0] == Role.USER
        assert '<tool_result name="list_directory" status="success">' in second_round[-1][1]

    async def test_failing_tool_is_recorded_and_stream_continues(self, preferences, catalog):
        def read_file(path: str) -> str:
            """Read a file."""
            raise PermissionError("denied")

        backend = ScriptedBackend(
            [
                reply('<tool_call>{"name": "read_file", "arguments": {"path": "/etc/shadow"}}</tool_call>'),
                reply("I cannot read that file."),
            ],
            tool_executor=FunctionToolExecutor([read_file]),
        )
        orchestrator, _ = make_orchestrator(backend, preferences, catalog, mode=AIMode.AGENT)

        message = await orchestrator.send("read it")

        assert message.error is None
        assert message.content == "I cannot read that file."
        assert message.tool_executions[0].status == ToolStatus.ERROR
        assert "PermissionError" in message.tool_executions[0].error

    async def test_max_tool_iterations_produces_error_message(self, preferences, catalog):
        def ping() -> str:
            """Ping."""
            return "pong"

        call = '<tool_call>{"name": "ping", "arguments": {}}</tool_call>'
        backend = ScriptedBackend(
            [reply(call), reply(call)],
            tool_executor=FunctionToolExecutor([ping]),
            max_tool_iterations=2,
        )
        orchestrator, _ = make_orchestrator(backend, preferences, catalog, mode=AIMode.AGENT)

        message = await orchestrator.send("loop")

        assert message.error is not None
        assert message.content.startswith(ERROR_MESSAGE_PREFIX)
        assert "Maximum tool calling iterations reached" in message.content

    async def test_concurrent_send_is_rejected(self, preferences, catalog):
        gate = asyncio.Event()
        backend = ScriptedBackend([["Hel", gate, "lo", *reply(final="Hello")]])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        first = asyncio.create_task(orchestrator.send("one"))
        await backend.started.wait()
        before = snapshot(orchestrator)

        with pytest.raises(SessionInFlightError):
            await orchestrator.send("two")

        assert snapshot(orchestrator) == before
        gate.set()
        message = await first
        assert message.content == "Hello"


@pytest.mark.asyncio
class TestFailures:
    async def test_failure_before_content_is_backend_unavailable(self, preferences, catalog):
        backend = ScriptedBackend([[RuntimeError("connection refused")]])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)

        message = await orchestrator.send("hi")

        assert message.error is not None
        assert message.content == f"{ERROR_MESSAGE_PREFIX}connection refused"
        assert [m.role for m in orchestrator.messages] == [Role.USER, Role.ASSISTANT]
        assert orchestrator.conversation.streaming_messages() == []
        error_event = next(e for e in events if e.kind == "error")
        assert error_event.error_type == "BackendUnavailableError"
        assert orchestrator.state == SessionState.IDLE

    async def test_failure_after_content_is_stream_interrupted(self, preferences, catalog):
        backend = ScriptedBackend([["Hel", RuntimeError("connection reset")]])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)

        message = await orchestrator.send("hi")

        assert message.error is not None
        assert len([m for m in orchestrator.messages if m.role == Role.ASSISTANT]) == 1
        error_event = next(e for e in events if e.kind == "error")
        assert error_event.error_type == "StreamInterruptedError"

    async def test_empty_catalog_produces_configuration_error(self, preferences):
        backend = ScriptedBackend()
        orchestrator, events = make_orchestrator(backend, preferences, [])

        message = await orchestrator.send("hi")

        assert message.error is not None
        assert [m.role for m in orchestrator.messages] == [Role.USER, Role.ASSISTANT]
        assert orchestrator.conversation.check_invariants() == []
        assert backend.requests == []
        assert events[-1].error_type == "ConfigurationInvalidError"

    async def test_retry_after_error_drops_failed_attempt(self, preferences, catalog):
        backend = ScriptedBackend([[RuntimeError("boom")], reply("ok")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        await orchestrator.send("first")
        message = await orchestrator.send("second")

        assert dialogue(backend.requests[1]) == [(Role.USER, "second")]
        assert [(m.role, m.content) for m in orchestrator.messages] == [
            (Role.USER, "second"),
            (Role.ASSISTANT, "ok"),
        ]
        assert message.content == "ok"


@pytest.mark.asyncio
class TestStatusCallbackErrors:
    async def test_error_at_dispatch_leaves_orchestrator_idle(self, preferences, catalog):
        backend = ScriptedBackend([reply("ok")])
        broken = True

        def on_status(event):
            if broken and event.state == SessionState.SENDING.value:
                raise ValueError("ui crashed")

        orchestrator = SessionOrchestrator(
            backend=backend, preferences=preferences, available_models=catalog, on_status=on_status
        )

        with pytest.raises(ValueError):
            await orchestrator.send("hi")

        assert orchestrator.is_loading is False
        assert orchestrator.active_session_id is None
        assert orchestrator.state == SessionState.IDLE
        assert orchestrator.conversation.streaming_messages() == []
        assert backend.requests == []

        broken = False
        message = await orchestrator.send("again")

        assert message.content == "ok"
        assert dialogue(backend.requests[0]) == [(Role.USER, "again")]

    async def test_error_on_complete_keeps_committed_message(self, preferences, catalog):
        backend = ScriptedBackend([reply("o", "k")])

        def on_status(event):
            if event.kind == "complete":
                raise ValueError("ui crashed")

        orchestrator = SessionOrchestrator(
            backend=backend, preferences=preferences, available_models=catalog, on_status=on_status
        )

        with pytest.raises(ValueError):
            await orchestrator.send("hi")

        assert [(m.role, m.content, m.is_streaming, m.error) for m in orchestrator.messages] == [
            (Role.USER, "hi", False, None),
            (Role.ASSISTANT, "ok", False, None),
        ]
        assert orchestrator.is_loading is False
        assert orchestrator.state == SessionState.IDLE
        assert await orchestrator.cancel() == CancelOutcome.NO_ACTIVE_SESSION


@pytest.mark.asyncio
class TestCancel:
    async def test_cancel_before_any_delta_leaves_no_assistant_message(self, preferences, catalog):
        backend = ScriptedBackend([[asyncio.Event()]])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)

        task = asyncio.create_task(orchestrator.send("hi"))
        await backend.started.wait()
        assert orchestrator.is_loading is True

        outcome = await orchestrator.cancel()

        assert outcome == CancelOutcome.SIGNALLED
        assert orchestrator.is_loading is False
        assert await task is None
        assert [m.role for m in orchestrator.messages] == [Role.USER]
        assert orchestrator.state == SessionState.IDLE
        assert events[-1].kind == "cancelled"
        assert backend.active_sessions == []

    async def test_cancel_after_partial_content_discards_placeholder(self, preferences, catalog):
        backend = ScriptedBackend([["Hel", asyncio.Event()]])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        task = asyncio.create_task(orchestrator.send("hi"))
        await wait_until(lambda: any(m.content == "Hel" for m in orchestrator.messages))

        await orchestrator.cancel()

        assert await task is None
        assert [m.role for m in orchestrator.messages] == [Role.USER]

    async def test_cancel_after_completion_changes_nothing(self, preferences, catalog):
        backend = ScriptedBackend([reply("done")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)
        await orchestrator.send("hi")
        before = snapshot(orchestrator)

        outcome = await orchestrator.cancel()

        assert outcome == CancelOutcome.NO_ACTIVE_SESSION
        assert snapshot(orchestrator) == before

    async def test_signal_failure_still_cleans_up(self, preferences, catalog):
        backend = ScriptedBackend([[asyncio.Event()]])
        backend.cancel_inference = AsyncMock(side_effect=RuntimeError("backend gone"))
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        task = asyncio.create_task(orchestrator.send("hi"))
        await backend.started.wait()

        outcome = await orchestrator.cancel()

        assert outcome == CancelOutcome.SIGNAL_FAILED
        assert await task is None
        assert orchestrator.is_loading is False
        assert [m.role for m in orchestrator.messages] == [Role.USER]

    async def test_unknown_session_is_benign(self, preferences, catalog):
        backend = ScriptedBackend([[asyncio.Event()]])
        backend.cancel_inference = AsyncMock(side_effect=SessionNotFoundError("x"))
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        task = asyncio.create_task(orchestrator.send("hi"))
        await backend.started.wait()

        assert await orchestrator.cancel() == CancelOutcome.ALREADY_FINISHED
        assert await task is None

    async def test_next_send_after_cancel_starts_clean(self, preferences, catalog):
        backend = ScriptedBackend([[asyncio.Event()], reply("fresh")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        task = asyncio.create_task(orchestrator.send("first"))
        await backend.started.wait()
        await orchestrator.cancel()
        await task

        message = await orchestrator.send("second")

        assert message.content == "fresh"
        assert dialogue(backend.requests[1]) == [(Role.USER, "second")]


@pytest.mark.asyncio
class TestSelection:
    async def test_change_mode_re_resolves_and_keeps_history(self, preferences, catalog):
        backend = ScriptedBackend([reply("ok")])
        orchestrator, events = make_orchestrator(backend, preferences, catalog)
        await orchestrator.send("hi")
        history = list(orchestrator.messages)

        resolution = await orchestrator.change_mode(AIMode.AGENT)

        assert isinstance(resolution, Resolved)
        assert resolution.model.id == "llama3.2:1b"
        assert resolution.source == "static_config"
        assert orchestrator.mode == AIMode.AGENT
        assert orchestrator.messages == history
        assert events[-1].kind == "mode_change"
        assert events[-1].mode == "agent"

    async def test_change_mode_uses_persisted_model(self, preferences, catalog):
        preferences.save(
            PreferenceRecord(mode=AIMode.AGENT, provider=ModelProvider.OPENAI_COMPATIBLE, model_id="local-server")
        )
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)

        resolution = await orchestrator.change_mode(AIMode.AGENT)

        assert resolution.model.id == "local-server"
        assert resolution.source == "persisted"
        assert orchestrator.conversation.active_provider == ModelProvider.OPENAI_COMPATIBLE

    async def test_select_unknown_model_raises(self, preferences, catalog):
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)

        with pytest.raises(ModelNotSelectedError):
            orchestrator.select_model("gpt-99")

    async def test_select_model_by_backend_id(self, preferences, catalog):
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)

        model = orchestrator.select_model("openai-compatible-generic")

        assert model.id == "local-server"
        assert orchestrator.selected_model.endpoint == "http://127.0.0.1:8080/v1"

    async def test_endpoint_override_applies_to_requests(self, preferences, catalog):
        backend = ScriptedBackend([reply("ok")])
        orchestrator, _ = make_orchestrator(backend, preferences, catalog)

        orchestrator.override_endpoint("http://10.0.0.5:11434")
        await orchestrator.send("hi")

        assert backend.requests[0].model.endpoint == "http://10.0.0.5:11434"

    async def test_save_and_clear_default(self, preferences, catalog):
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)
        orchestrator.select_model("mistral")

        record = orchestrator.save_as_default()

        assert record.model_id == "mistral"
        assert preferences.load(AIMode.QA).model_id == "mistral"

        orchestrator.clear_default()

        assert preferences.load(AIMode.QA).model_id is None
        assert orchestrator.selected_model.id == "mistral"

    async def test_set_available_models_keeps_selection_when_present(self, preferences, catalog):
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)
        orchestrator.select_model("local-server")

        assert orchestrator.set_available_models(catalog[1:]) is None
        assert orchestrator.selected_model.id == "local-server"

    async def test_set_available_models_re_resolves_when_selection_vanishes(self, preferences, catalog):
        orchestrator, _ = make_orchestrator(ScriptedBackend(), preferences, catalog)

        resolution = orchestrator.set_available_models([])

        assert isinstance(resolution, Unresolved)
        assert orchestrator.selected_model is None
