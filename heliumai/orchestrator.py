"""Session orchestration: the one place where the conversation changes.

A `send` sanitizes the history, mints a session, inserts a streaming
placeholder, dispatches to the backend (plain inference in QA mode,
tool-augmented inference in agent mode) and folds the resulting stream into
the placeholder. The session ends in exactly one of three ways:

    - completion: the final text replaces the placeholder, which is committed
    - cancellation: the placeholder disappears without a trace
    - failure: the placeholder is replaced by one terminal error message

Only one session may be in flight; a concurrent `send` is rejected with
SessionInFlightError and leaves the conversation untouched.

Example:
    >>> orchestrator = SessionOrchestrator(
    ...     backend=AnyLLMBackend(),
    ...     preferences=Preferences(JsonFilePreferenceStore(settings.preferences_path)),
    ...     available_models=merge_catalog(installed_models),
    ... )
    >>> message = await orchestrator.send("Which files are the largest?")
    >>> print(message.content)
"""

import asyncio
from contextlib import aclosing
from typing import Any

from heliumai.backends import InferenceBackend
from heliumai.cancellation import CancellationController, CancelOutcome
from heliumai.config import HeliumSettings, get_settings
from heliumai.errors import (
    BackendError,
    BackendUnavailableError,
    CancelledByUserError,
    ConfigurationInvalidError,
    HeliumError,
    ModelNotSelectedError,
    SessionInFlightError,
    StreamInterruptedError,
)
from heliumai.events import SessionEvent, StatusCallback, emit_status
from heliumai.logging_config import get_logger
from heliumai.models.conversation import Conversation, Message, Role
from heliumai.models.inference import (
    FileSystemContext,
    InferenceRequest,
    InferenceResponse,
    TextDelta,
    ToolExecutionEvent,
)
from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelConfig
from heliumai.models.session import Session, SessionState, check_transition
from heliumai.preferences import PreferenceRecord, PreferenceResolver, Preferences, Resolution, Resolved
from heliumai.streaming import StreamAccumulator
from heliumai.telemetry import record_token_usage, record_tool_execution, set_span_attributes, trace_session
from heliumai.tool_markup import strip_tool_markup

logger = get_logger(__name__)

ERROR_MESSAGE_PREFIX = "Sorry, I encountered an error: "


def sanitize_history(messages: list[Message]) -> list[Message]:
    """Drop the debris of previous failed or cancelled attempts.

    Removes every streaming placeholder, a trailing assistant error message,
    and a trailing user message that was left unanswered. A user message
    whose answer was still streaming is kept: its question stays in context.
    """
    kept: list[Message] = []
    answered_by_placeholder: set[str] = set()
    for message in messages:
        if message.is_streaming:
            if kept:
                answered_by_placeholder.add(kept[-1].id)
            continue
        kept.append(message)

    if kept and kept[-1].role == Role.ASSISTANT and kept[-1].error:
        kept.pop()
    if kept and kept[-1].role == Role.USER and kept[-1].id not in answered_by_placeholder:
        kept.pop()
    return kept


class SessionOrchestrator:
    """Owns a conversation and drives inference sessions against a backend."""

    def __init__(
        self,
        backend: InferenceBackend,
        preferences: Preferences,
        settings: HeliumSettings | None = None,
        available_models: list[ModelConfig] | None = None,
        mode: AIMode | None = None,
        on_status: StatusCallback | None = None,
        conversation: Conversation | None = None,
    ):
        """Initialize the orchestrator and resolve a model for the starting mode.

        Args:
            backend: Inference backend to dispatch to
            preferences: Persisted per-mode selections and endpoints
            settings: Settings instance (defaults to the global settings)
            available_models: The model catalog; may be empty
            mode: Starting mode (defaults to the conversation's mode, QA for a new one)
            on_status: Optional sync or async callback receiving SessionEvents
            conversation: Existing conversation to continue
        """
        self.backend = backend
        self.preferences = preferences
        self.settings = settings or get_settings()
        self.resolver = PreferenceResolver(preferences, self.settings)
        self.on_status = on_status
        self.conversation = conversation or Conversation()
        if mode is not None:
            self.conversation.mode = mode
        self.available_models: list[ModelConfig] = list(available_models or [])

        self._cancellation = CancellationController(backend.cancel_inference)
        self._state = SessionState.IDLE
        self._task: asyncio.Task | None = None
        # Catalog entry carrying its resolved endpoint
        self._selected: ModelConfig | None = None
        self._endpoint_overrides: dict[str, str] = {}

        self.resolution = self._apply_resolution(self.resolver.resolve(self.mode, self.available_models))

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def mode(self) -> AIMode:
        return self.conversation.mode

    @property
    def messages(self) -> list[Message]:
        return self.conversation.messages

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._cancellation.active is not None

    @property
    def active_session_id(self) -> str | None:
        session = self._cancellation.active
        return session.id if session else None

    @property
    def selected_model(self) -> ModelConfig | None:
        """The selected model with its effective endpoint applied."""
        if self._selected is None:
            return None
        override = self._endpoint_overrides.get(self._selected.id)
        return self._selected.with_endpoint(override or self._selected.endpoint)

    # ------------------------------------------------------------------
    # Model and mode selection
    # ------------------------------------------------------------------

    async def change_mode(self, mode: AIMode) -> Resolution:
        """Switch modes and re-resolve the model; the history is kept."""
        if self.is_loading:
            raise SessionInFlightError(self.active_session_id)

        previous = self.mode
        self.conversation.mode = mode
        self.resolution = self._apply_resolution(self.resolver.resolve(mode, self.available_models))
        logger.info(
            f"Mode changed: {previous.value} -> {mode.value}, model={self.conversation.selected_model_id}"
        )
        await self._emit(SessionEvent(kind="mode_change", mode=mode.value, model=self.conversation.selected_model_id))
        return self.resolution

    def select_model(self, model_id: str) -> ModelConfig:
        """Pin a catalog model for the current mode.

        Raises:
            ModelNotSelectedError: If the model is not in the catalog
        """
        model = self._find_model(model_id)
        if model is None:
            raise ModelNotSelectedError(f"Model {model_id!r} is not in the catalog")
        self._select(model.with_endpoint(self.resolver.resolve_endpoint(model)))
        logger.info(f"Selected model {model.id} ({model.provider.value}) for {self.mode.value} mode")
        return model

    def set_available_models(self, models: list[ModelConfig]) -> Resolution | None:
        """Replace the catalog; re-resolves only if the selection disappeared.

        Returns:
            The new resolution, or None when the selection was kept
        """
        self.available_models = list(models)
        if self._selected is not None:
            refreshed = next((m for m in self.available_models if m.id == self._selected.id), None)
            if refreshed is not None:
                self._selected = refreshed.with_endpoint(self._selected.endpoint)
                return None
            logger.info(f"Selected model {self._selected.id} left the catalog; re-resolving")

        self.resolution = self._apply_resolution(self.resolver.resolve(self.mode, self.available_models))
        return self.resolution

    def override_endpoint(self, endpoint: str | None) -> None:
        """Point the selected model at another endpoint (None removes the override)."""
        if self._selected is None:
            raise ModelNotSelectedError("Select a model before overriding its endpoint")
        if self._selected.provider not in NETWORK_PROVIDERS:
            raise ValueError(f"Provider {self._selected.provider.value} does not use an endpoint")
        if endpoint:
            self._endpoint_overrides[self._selected.id] = endpoint
        else:
            self._endpoint_overrides.pop(self._selected.id, None)

    def save_as_default(self) -> PreferenceRecord:
        """Persist the current provider, model and endpoint for this mode."""
        model = self.selected_model
        if model is None:
            raise ModelNotSelectedError(f"No model selected for {self.mode.value} mode")
        record = PreferenceRecord(
            mode=self.mode,
            provider=model.provider,
            model_id=model.id,
            endpoint=model.endpoint if model.is_network_backed else None,
        )
        self.preferences.save(record)
        return record

    def clear_default(self) -> None:
        """Forget the persisted selection for this mode; the current selection stays."""
        self.preferences.clear(self.mode)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def send(self, text: str, fs_context: FileSystemContext | None = None) -> Message | None:
        """Send a user message and run one inference session.

        Returns:
            The committed assistant message, a terminal error message, or
            None when the session was cancelled

        Raises:
            SessionInFlightError: If another session is still running
        """
        active = self._cancellation.active
        if active is not None:
            raise SessionInFlightError(active.id)

        history = sanitize_history(self.conversation.messages)
        user_message = Message(
            role=Role.USER,
            content=text,
            context_paths=list(fs_context.selected_paths) if fs_context and fs_context.selected_paths else None,
        )
        self.conversation.messages = [*history, user_message]

        try:
            model = self._require_model()
        except (ConfigurationInvalidError, ModelNotSelectedError) as e:
            logger.warning(f"Cannot dispatch in {self.mode.value} mode: {e}")
            message = self._append_error(e)
            await self._emit(
                SessionEvent(kind="error", error=str(e), error_type=type(e).__name__, message_id=message.id)
            )
            return message

        placeholder = Message(role=Role.ASSISTANT, content=self.settings.placeholder_text, is_streaming=True)
        session = Session(model_id=model.id, provider=model.provider, placeholder=placeholder)
        request = InferenceRequest(
            session_id=session.id,
            model=model,
            messages=[*history, user_message],
            fs_context=fs_context,
            mode=self.mode,
        )
        self.conversation.messages.append(placeholder)
        self._cancellation.activate(session)
        sending = self._transition(session, SessionState.SENDING)
        logger.info(
            f"Session {session.id} started: mode={self.mode.value}, model={model.id}, "
            f"provider={model.provider.value}, history={len(history)}"
        )

        with trace_session(
            session.id, mode=self.mode.value, provider=model.provider.value, model=model.model_id
        ) as span:
            try:
                await self._emit(sending)
            except BaseException:
                if not session.retired:
                    logger.error(f"Session {session.id} abandoned: status callback failed before dispatch")
                    self._abandon(session)
                raise
            if session.retired:
                return None

            accumulator = StreamAccumulator(placeholder)
            self._task = asyncio.create_task(self._consume(session, request, accumulator, span))
            try:
                message, events = await self._task
            except asyncio.CancelledError:
                if session.cancel_requested:
                    return None
                # send() itself was cancelled
                self._discard(session)
                raise
            except CancelledByUserError:
                if not session.retired:
                    await self._cancel_cleanup(session)
                return None
            except Exception as e:
                return await self._fail(session, accumulator, e, span)
            finally:
                self._task = None

        # Already committed; callback errors propagate to the caller
        for event in events:
            await self._emit(event)
        return message

    async def cancel(self) -> CancelOutcome:
        """Cancel the in-flight session, if any. Local state stops loading immediately."""
        return await self._cancellation.cancel(self._cancel_cleanup)

    async def _consume(
        self, session: Session, request: InferenceRequest, accumulator: StreamAccumulator, span: Any
    ) -> tuple[Message, list[SessionEvent]]:
        if request.mode == AIMode.AGENT:
            stream = self.backend.run_inference_with_tools(request)
        else:
            stream = self.backend.run_inference(request)

        final: InferenceResponse | None = None
        async with aclosing(stream):
            async for event in stream:
                if session.retired:
                    break
                if isinstance(event, TextDelta):
                    await self._on_delta(session, accumulator, event)
                elif isinstance(event, ToolExecutionEvent):
                    await self._on_tool_event(session, accumulator, event, span)
                else:
                    final = event

        if session.retired:
            raise CancelledByUserError(session.id)
        if final is None:
            raise BackendError("Stream ended without a final response")

        events = self._commit(session, accumulator, final)
        record_token_usage(span, final.usage)
        set_span_attributes(span, **{"session.outcome": "completed"})
        return session.placeholder, events

    async def _on_delta(self, session: Session, accumulator: StreamAccumulator, delta: TextDelta) -> None:
        events = []
        if self._state != SessionState.STREAMING:
            events.append(self._transition(session, SessionState.STREAMING))
        accumulator.feed(delta.content)
        session.received_content = True
        events.append(
            SessionEvent(
                kind="stream_chunk",
                session_id=session.id,
                content=delta.content,
                message_id=session.placeholder.id,
            )
        )
        for event in events:
            await self._emit(event)

    async def _on_tool_event(
        self, session: Session, accumulator: StreamAccumulator, event: ToolExecutionEvent, span: Any
    ) -> None:
        events = []
        target = SessionState.TOOL_EXECUTING if event.is_start else SessionState.STREAMING
        if self._state != target:
            events.append(self._transition(session, target))
        execution = accumulator.apply_tool_event(event)
        session.received_content = True
        if not event.is_start:
            record_tool_execution(span, event.tool_name, event.arguments, error=event.error is not None)
            logger.debug(f"Tool {event.tool_name} finished with status {execution.status.value}")
        events.append(
            SessionEvent(
                kind="tool_execution",
                session_id=session.id,
                tool_name=event.tool_name,
                tool_status=execution.status.value,
                message_id=session.placeholder.id,
            )
        )
        for status_event in events:
            await self._emit(status_event)

    def _commit(self, session: Session, accumulator: StreamAccumulator, final: InferenceResponse) -> list[SessionEvent]:
        events = [self._transition(session, SessionState.FINALIZING)]
        placeholder = session.placeholder
        text = accumulator.finalize(final.message.content)
        placeholder.content = strip_tool_markup(text)
        accumulator.merge_tool_executions(final.message.tool_executions)
        placeholder.commit()
        self._cancellation.retire(session)
        events.append(self._transition(session, SessionState.IDLE))
        logger.info(
            f"Session {session.id} completed: chars={len(placeholder.content)}, "
            f"tools={len(placeholder.tool_executions)}"
        )
        events.append(
            SessionEvent(
                kind="complete",
                session_id=session.id,
                content=placeholder.content,
                message_id=placeholder.id,
            )
        )
        return events

    async def _fail(
        self, session: Session, accumulator: StreamAccumulator, error: Exception, span: Any
    ) -> Message | None:
        if session.retired:
            return None

        session_error = self._classify_failure(error, accumulator)
        logger.error(f"Session {session.id} failed: {type(session_error).__name__}: {session_error}")
        events = [self._transition(session, SessionState.ERRORED)]
        self._remove_placeholder(session)
        message = self._append_error(session_error)
        self._cancellation.retire(session)
        events.append(self._transition(session, SessionState.IDLE))
        set_span_attributes(
            span, **{"session.outcome": "error", "session.error_type": type(session_error).__name__}
        )

        events.append(
            SessionEvent(
                kind="error",
                session_id=session.id,
                error=str(session_error),
                error_type=type(session_error).__name__,
                message_id=message.id,
            )
        )
        for event in events:
            await self._emit(event)
        return message

    async def _cancel_cleanup(self, session: Session) -> None:
        if session.retired:
            return
        if self._task is not None and not self._task.done():
            self._task.cancel()
        events = self._discard(session)
        logger.info(f"Session {session.id} cancelled (received_content={session.received_content})")
        events.append(SessionEvent(kind="cancelled", session_id=session.id))
        for event in events:
            await self._emit(event)

    def _abandon(self, session: Session) -> None:
        self._remove_placeholder(session)
        self._cancellation.retire(session)
        self._transition(session, SessionState.ERRORED)
        self._transition(session, SessionState.IDLE)

    def _discard(self, session: Session) -> list[SessionEvent]:
        self._remove_placeholder(session)
        self._cancellation.retire(session)
        events = []
        if self._state != SessionState.IDLE:
            events.append(self._transition(session, SessionState.CANCELLED))
            events.append(self._transition(session, SessionState.IDLE))
        return events

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, session: Session | None, new: SessionState) -> SessionEvent:
        previous = self._state
        check_transition(previous, new)
        self._state = new
        logger.debug(f"State {previous.value} -> {new.value}")
        return SessionEvent(
            kind="state_change",
            session_id=session.id if session else None,
            state=new.value,
            previous_state=previous.value,
        )

    async def _emit(self, event: SessionEvent) -> None:
        await emit_status(event, self.on_status)

    def _remove_placeholder(self, session: Session) -> None:
        placeholder = session.placeholder
        if not placeholder.is_streaming:
            return
        self.conversation.messages = [m for m in self.conversation.messages if m is not placeholder]

    def _append_error(self, error: Exception) -> Message:
        return self.conversation.add_message(Role.ASSISTANT, f"{ERROR_MESSAGE_PREFIX}{error}", error=str(error))

    @staticmethod
    def _classify_failure(error: Exception, accumulator: StreamAccumulator) -> HeliumError:
        if isinstance(error, HeliumError) and not isinstance(error, BackendError):
            return error
        if accumulator.received_content:
            return StreamInterruptedError(f"Stream interrupted: {error}", partial_content=accumulator.text)
        return BackendUnavailableError(str(error))

    def _require_model(self) -> ModelConfig:
        if not self.available_models:
            raise ConfigurationInvalidError(f"No models available for {self.mode.value} mode")
        model = self.selected_model
        if model is None:
            raise ModelNotSelectedError(f"No model selected for {self.mode.value} mode")
        return model

    def _find_model(self, model_id: str) -> ModelConfig | None:
        exact = next((m for m in self.available_models if m.id == model_id), None)
        return exact or next((m for m in self.available_models if m.matches(model_id)), None)

    def _select(self, model: ModelConfig | None) -> None:
        self._selected = model
        self.conversation.selected_model_id = model.id if model else None
        if model is not None:
            self.conversation.active_provider = model.provider

    def _apply_resolution(self, resolution: Resolution) -> Resolution:
        if isinstance(resolution, Resolved):
            self._select(resolution.model_with_endpoint())
            if not resolution.is_available:
                logger.warning(f"Resolved model {resolution.model.id} is not installed or reachable")
        else:
            self._select(None)
            self.conversation.active_provider = resolution.provider
        return resolution
