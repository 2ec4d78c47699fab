"""Session bookkeeping: one dispatched request, from mint to retirement."""

import uuid
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field

from heliumai.models.conversation import Message
from heliumai.models.model_config import ModelProvider


class SessionState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    FINALIZING = "finalizing"
    CANCELLED = "cancelled"
    ERRORED = "errored"


_IN_FLIGHT = {SessionState.SENDING, SessionState.STREAMING, SessionState.TOOL_EXECUTING}

ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.SENDING}),
    SessionState.SENDING: frozenset(
        {SessionState.STREAMING, SessionState.TOOL_EXECUTING, SessionState.FINALIZING}
    ),
    SessionState.STREAMING: frozenset({SessionState.TOOL_EXECUTING, SessionState.FINALIZING}),
    SessionState.TOOL_EXECUTING: frozenset({SessionState.STREAMING, SessionState.FINALIZING}),
    SessionState.FINALIZING: frozenset({SessionState.IDLE}),
    SessionState.CANCELLED: frozenset({SessionState.IDLE}),
    SessionState.ERRORED: frozenset({SessionState.IDLE}),
}
for _state in _IN_FLIGHT:
    ALLOWED_TRANSITIONS[_state] = ALLOWED_TRANSITIONS[_state] | {SessionState.CANCELLED, SessionState.ERRORED}


def check_transition(current: SessionState, new: SessionState) -> None:
    """Raise RuntimeError if `current -> new` is not a legal transition."""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise RuntimeError(f"Illegal session state transition: {current.value} -> {new.value}")


class Session(BaseModel):
    """A single inference attempt. Never reused once retired."""

    id: Annotated[str, Field(default_factory=lambda: uuid.uuid4().hex)]
    model_id: str
    provider: ModelProvider
    placeholder: Annotated[Message, Field(description="Streaming assistant message owned by this session")]
    cancel_requested: bool = False
    received_content: bool = False
    retired: bool = False
