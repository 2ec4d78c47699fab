"""Base inference backend interface for heliumai.

A backend turns an InferenceRequest into an async stream of events:
zero or more TextDelta fragments (and, in agent mode, ToolExecutionEvent
notifications) followed by exactly one InferenceResponse whose message is
the authoritative final text.

Subclasses only implement `_stream_completion`, a single provider round
trip. This base class adds what every provider shares:
    - the mode's system prompt (unless the request already has one)
    - a registry of live sessions so `cancel_inference` can reach them
    - the agent loop: detect tool calls, execute them, feed results back
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from heliumai.config import HeliumSettings, get_settings
from heliumai.errors import (
    BackendError,
    CancelledByUserError,
    MaxToolIterationsError,
    SessionInFlightError,
    SessionNotFoundError,
)
from heliumai.logging_config import get_logger
from heliumai.models.conversation import Message, Role, ToolExecution
from heliumai.models.inference import InferenceRequest, InferenceResponse, TextDelta, ToolExecutionEvent
from heliumai.prompts import render_system_prompt
from heliumai.tool_markup import extract_tool_calls, format_tool_result
from heliumai.tools import ToolCall, ToolExecutor

logger = get_logger(__name__)


class InferenceBackend(ABC):
    """Abstract base class for inference backends.

    Example:
        >>> class EchoBackend(InferenceBackend):
        ...     async def _stream_completion(self, request):
        ...         text = request.messages[-1].content
        ...         yield TextDelta(content=text)
        ...         yield InferenceResponse(message=Message(role=Role.ASSISTANT, content=text))
    """

    def __init__(
        self,
        tool_executor: ToolExecutor | None = None,
        max_tool_iterations: int | None = None,
        settings: HeliumSettings | None = None,
    ):
        """Initialize a backend.

        Args:
            tool_executor: Executes tool calls in agent mode; without one the
                agent path behaves like plain inference
            max_tool_iterations: Agent loop limit (defaults to settings.max_tool_iterations)
            settings: Settings instance (defaults to the global settings)
        """
        self.settings = settings or get_settings()
        self.tool_executor = tool_executor
        self.max_tool_iterations = max_tool_iterations or self.settings.max_tool_iterations
        self._active_sessions: dict[str, asyncio.Event] = {}

    @abstractmethod
    def _stream_completion(self, request: InferenceRequest) -> AsyncIterator[TextDelta | InferenceResponse]:
        """Run one provider round trip.

        The request's messages already start with the system prompt. Must
        yield TextDelta fragments in arrival order, then one InferenceResponse.

        Raises:
            BackendError: Classified provider failure
        """
        pass

    @property
    def active_sessions(self) -> list[str]:
        return list(self._active_sessions)

    async def cancel_inference(self, session_id: str) -> None:
        """Signal a running session to stop.

        Raises:
            SessionNotFoundError: If the session already finished or never existed
        """
        cancelled = self._active_sessions.pop(session_id, None)
        if cancelled is None:
            raise SessionNotFoundError(session_id)
        logger.info(f"Cancellation requested for session {session_id}")
        cancelled.set()

    async def run_inference(self, request: InferenceRequest) -> AsyncIterator[TextDelta | InferenceResponse]:
        """Plain streaming inference (QA mode)."""
        async with self._session(request.session_id) as cancelled:
            async for event in self._run_once(self.prepare_request(request), cancelled):
                yield event

    async def run_inference_with_tools(
        self, request: InferenceRequest
    ) -> AsyncIterator[TextDelta | ToolExecutionEvent | InferenceResponse]:
        """Tool-augmented inference (agent mode).

        Each round streams a completion; if it contains tool calls they are
        executed in order, reported as start/end ToolExecutionEvents, and fed
        back as user messages for the next round. The first round without
        tool calls is final and carries every tool execution of the session.

        Raises:
            MaxToolIterationsError: If the model still calls tools after the last round
        """
        async with self._session(request.session_id) as cancelled:
            current = self.prepare_request(request)
            executions: list[ToolExecution] = []

            for iteration in range(1, self.max_tool_iterations + 1):
                logger.debug(f"Agent round {iteration}/{self.max_tool_iterations} for session {request.session_id}")
                final = None
                async for event in self._run_once(current, cancelled):
                    if isinstance(event, InferenceResponse):
                        final = event
                    else:
                        yield event
                if final is None:
                    raise BackendError("Stream ended without a final response")

                calls = extract_tool_calls(final.message.content) if self.tool_executor else []
                if not calls:
                    if executions:
                        final.message.tool_executions = executions
                    yield final
                    return

                logger.info(f"Round {iteration}: model requested {len(calls)} tool call(s)")
                feedback: list[Message] = []
                for call in calls:
                    yield ToolExecutionEvent(tool_name=call.name, arguments=call.arguments)
                    end_event, result_message = await self._execute_tool(call)
                    executions.append(self._record(end_event))
                    feedback.append(result_message)
                    if cancelled.is_set():
                        raise CancelledByUserError(request.session_id)
                    yield end_event

                current = current.model_copy(
                    update={
                        "messages": [
                            *current.messages,
                            # Raw turn, markup included, so each result follows its call
                            Message(role=Role.ASSISTANT, content=final.message.content),
                            *feedback,
                        ]
                    }
                )

            raise MaxToolIterationsError(
                f"Maximum tool calling iterations reached ({self.max_tool_iterations})"
            )

    def prepare_request(self, request: InferenceRequest) -> InferenceRequest:
        """Prepend the mode's system prompt unless one is already present."""
        if any(m.role == Role.SYSTEM for m in request.messages):
            return request
        tools = self.tool_executor.describe() if self.tool_executor else None
        system_message = Message(
            role=Role.SYSTEM,
            content=render_system_prompt(request.mode, request.fs_context, tools=tools),
        )
        return request.model_copy(update={"messages": [system_message, *request.messages]})

    @asynccontextmanager
    async def _session(self, session_id: str) -> AsyncIterator[asyncio.Event]:
        if session_id in self._active_sessions:
            raise SessionInFlightError(session_id)
        cancelled = asyncio.Event()
        self._active_sessions[session_id] = cancelled
        try:
            yield cancelled
        finally:
            # cancel_inference may already have removed it
            if self._active_sessions.get(session_id) is cancelled:
                del self._active_sessions[session_id]

    async def _run_once(
        self, request: InferenceRequest, cancelled: asyncio.Event
    ) -> AsyncIterator[TextDelta | InferenceResponse]:
        if cancelled.is_set():
            raise CancelledByUserError(request.session_id)
        async for event in self._stream_completion(request):
            if cancelled.is_set():
                raise CancelledByUserError(request.session_id)
            yield event

    async def _execute_tool(self, call: ToolCall) -> tuple[ToolExecutionEvent, Message]:
        start_time = time.time()
        try:
            result = await self.tool_executor.execute(call)
        except Exception as e:
            elapsed_ms = (time.time() - start_time) * 1000
            logger.warning(f"Tool {call.name} failed: {e}")
            event = ToolExecutionEvent(
                tool_name=call.name, arguments=call.arguments, error=str(e), execution_time_ms=elapsed_ms
            )
            return event, Message(role=Role.USER, content=format_tool_result(call.name, f"Error: {e}", is_error=True))

        elapsed_ms = result.execution_time_ms
        if elapsed_ms is None:
            elapsed_ms = (time.time() - start_time) * 1000
        event = ToolExecutionEvent(
            tool_name=call.name,
            arguments=call.arguments,
            result=result.content,
            error=result.content if result.is_error else None,
            execution_time_ms=elapsed_ms,
        )
        message = Message(role=Role.USER, content=format_tool_result(call.name, result.content, result.is_error))
        return event, message

    @staticmethod
    def _record(event: ToolExecutionEvent) -> ToolExecution:
        execution = ToolExecution(tool_name=event.tool_name, arguments=dict(event.arguments))
        if event.error is not None:
            execution.fail(event.error, result=event.result, execution_time_ms=event.execution_time_ms)
        else:
            execution.succeed(event.result, execution_time_ms=event.execution_time_ms)
        return execution
