"""heliumai - inference session orchestration for a local-first AI file assistant.

heliumai sits between a chat UI and local or network inference backends:
- Per-mode (QA / agent) provider, model and endpoint resolution from
  persisted preferences, static configuration and catalog heuristics
- Streaming of partial responses into a single evolving message
- Tool-augmented agent sessions with inline tool execution records
- Best-effort cancellation that always leaves the conversation consistent
- History sanitation so failed or cancelled attempts never leak into context

Quick Start:
    >>> import asyncio
    >>> from heliumai import (
    ...     AnyLLMBackend, AIMode, InMemoryPreferenceStore, Preferences, SessionOrchestrator, merge_catalog,
    ... )
    >>>
    >>> async def main():
    ...     orchestrator = SessionOrchestrator(
    ...         backend=AnyLLMBackend(),
    ...         preferences=Preferences(InMemoryPreferenceStore()),
    ...         available_models=merge_catalog([]),
    ...     )
    ...     message = await orchestrator.send("What is in my Downloads folder?")
    ...     print(message.content)
    ...
    ...     await orchestrator.change_mode(AIMode.AGENT)
    ...     message = await orchestrator.send("Find the largest log file")
    ...     for execution in message.tool_executions:
    ...         print(execution.tool_name, execution.status)
    >>>
    >>> asyncio.run(main())

Main Components:
    - SessionOrchestrator: Owns the conversation and drives sessions
    - InferenceBackend / AnyLLMBackend: Backend contract and network backend
    - PreferenceResolver / Preferences: Per-mode model and endpoint resolution
    - StreamAccumulator: Folds streamed deltas and tool events into a message
    - CancellationController: Cancels the in-flight session
    - HeliumSettings: Global settings manager

Exceptions:
    - HeliumError: Base exception
    - ModelNotSelectedError, ConfigurationInvalidError
    - BackendUnavailableError, StreamInterruptedError
    - CancelledByUserError, ToolExecutionFailedError
    - SessionNotFoundError, SessionInFlightError, MaxToolIterationsError
"""

from heliumai.backends import AnyLLMBackend, InferenceBackend
from heliumai.cancellation import CancellationController, CancelOutcome
from heliumai.catalog import KNOWN_MODELS, load_catalog, merge_catalog
from heliumai.config import HeliumSettings, get_settings, reload_settings, settings
from heliumai.errors import (
    BackendError,
    BackendUnavailableError,
    CancelledByUserError,
    ConfigurationInvalidError,
    HeliumError,
    MaxToolIterationsError,
    ModelNotSelectedError,
    SessionInFlightError,
    SessionNotFoundError,
    StreamInterruptedError,
    ToolExecutionFailedError,
)
from heliumai.events import SessionEvent
from heliumai.logging_config import setup_logging
from heliumai.models import (
    AIMode,
    Conversation,
    FileSystemContext,
    InferenceRequest,
    InferenceResponse,
    Message,
    ModelConfig,
    ModelParameters,
    ModelProvider,
    Role,
    SessionState,
    TextDelta,
    ToolExecution,
    ToolExecutionEvent,
    ToolStatus,
)
from heliumai.orchestrator import SessionOrchestrator, sanitize_history
from heliumai.preferences import (
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    PreferenceRecord,
    PreferenceResolver,
    Preferences,
    PreferenceStore,
    Resolved,
    Unresolved,
)
from heliumai.streaming import StreamAccumulator
from heliumai.tool_markup import strip_tool_markup
from heliumai.tools import FunctionToolExecutor, ToolCall, ToolExecutor, ToolResult

# Console and file handlers are attached once, on first import
setup_logging(settings)

__all__ = [
    "AIMode",
    "AnyLLMBackend",
    "BackendError",
    "BackendUnavailableError",
    "CancellationController",
    "CancelOutcome",
    "CancelledByUserError",
    "ConfigurationInvalidError",
    "Conversation",
    "FileSystemContext",
    "FunctionToolExecutor",
    "HeliumError",
    "HeliumSettings",
    "InMemoryPreferenceStore",
    "InferenceBackend",
    "InferenceRequest",
    "InferenceResponse",
    "JsonFilePreferenceStore",
    "KNOWN_MODELS",
    "MaxToolIterationsError",
    "Message",
    "ModelConfig",
    "ModelNotSelectedError",
    "ModelParameters",
    "ModelProvider",
    "PreferenceRecord",
    "PreferenceResolver",
    "PreferenceStore",
    "Preferences",
    "Resolved",
    "Role",
    "SessionEvent",
    "SessionInFlightError",
    "SessionNotFoundError",
    "SessionOrchestrator",
    "SessionState",
    "StreamAccumulator",
    "StreamInterruptedError",
    "TextDelta",
    "ToolCall",
    "ToolExecution",
    "ToolExecutionEvent",
    "ToolExecutionFailedError",
    "ToolExecutor",
    "ToolResult",
    "ToolStatus",
    "Unresolved",
    "get_settings",
    "load_catalog",
    "merge_catalog",
    "reload_settings",
    "sanitize_history",
    "settings",
    "strip_tool_markup",
]
