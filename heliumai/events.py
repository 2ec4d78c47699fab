"""Status events emitted by the session orchestrator.

The orchestrator owns the conversation; a UI observes it through an optional
on_status callback receiving SessionEvent objects (state changes, streamed
chunks, tool progress, completion, cancellation, errors, mode changes).
"""

import inspect
import time
from collections.abc import Awaitable, Callable
from typing import Literal

from pydantic import BaseModel, Field

SessionEventKind = Literal[
    "state_change",
    "stream_chunk",
    "tool_execution",
    "complete",
    "cancelled",
    "error",
    "mode_change",
]


class SessionEvent(BaseModel):
    """A status event emitted while a session runs.

    Use the `kind` field to discriminate; optional payload fields are
    populated depending on the event kind.
    """

    kind: SessionEventKind = Field(description="Event type discriminator")
    session_id: str | None = Field(default=None, description="Session the event belongs to")
    timestamp: float = Field(default_factory=time.time, description="Event time (time.time())")

    # state_change
    state: str | None = Field(default=None, description="New orchestrator state")
    previous_state: str | None = Field(default=None, description="State before the transition")

    # stream_chunk / complete
    content: str | None = Field(default=None, description="Chunk text, or the final text on complete")
    message_id: str | None = Field(default=None, description="Placeholder or committed message id")

    # tool_execution
    tool_name: str | None = Field(default=None, description="Name of the tool")
    tool_status: str | None = Field(default=None, description="executing, success or error")

    # error
    error: str | None = Field(default=None, description="Error summary")
    error_type: str | None = Field(default=None, description="Exception class name")

    # mode_change
    mode: str | None = Field(default=None, description="New mode")
    model: str | None = Field(default=None, description="Model id in effect")

    model_config = {"extra": "allow"}


StatusCallback = Callable[[SessionEvent], None] | Callable[[SessionEvent], Awaitable[None]]


async def emit_status(event: SessionEvent, on_status: StatusCallback | None) -> None:
    """Invoke on_status with the event if set; supports sync and async callbacks.

    No-op when on_status is None. Exceptions from the callback are not caught.
    """
    if on_status is None:
        return
    result = on_status(event)
    if inspect.iscoroutine(result):
        await result
