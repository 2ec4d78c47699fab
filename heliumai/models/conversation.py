"""Conversation state: messages, tool executions and the conversation itself."""

import time
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field

from heliumai.models.model_config import AIMode, ModelProvider


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ToolStatus(str, Enum):
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


class ToolExecution(BaseModel):
    """One agent-mode tool invocation as shown alongside an assistant message.

    Created in the executing state and moved to a terminal status exactly
    once through `succeed()` or `fail()`.
    """

    tool_name: Annotated[str, Field(description="Name of the tool")]
    arguments: Annotated[dict[str, Any], Field(default_factory=dict, description="Tool arguments")]
    result: Annotated[str | None, Field(default=None, description="Tool output")]
    error: Annotated[str | None, Field(default=None, description="Error text if the tool failed")]
    execution_time_ms: Annotated[float | None, Field(default=None, ge=0, description="Elapsed time")]
    status: Annotated[ToolStatus, Field(default=ToolStatus.EXECUTING)]

    @property
    def is_terminal(self) -> bool:
        return self.status != ToolStatus.EXECUTING

    def succeed(self, result: str | None, execution_time_ms: float | None = None) -> None:
        self._ensure_open()
        self.result = result
        self.execution_time_ms = execution_time_ms
        self.status = ToolStatus.SUCCESS

    def fail(self, error: str, result: str | None = None, execution_time_ms: float | None = None) -> None:
        self._ensure_open()
        self.error = error
        self.result = result
        self.execution_time_ms = execution_time_ms
        self.status = ToolStatus.ERROR

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Tool execution '{self.tool_name}' already finished with status {self.status.value}")


def new_message_id() -> str:
    return f"msg-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class Message(BaseModel):
    id: Annotated[str, Field(default_factory=new_message_id, description="The unique identifier for the message")]
    role: Annotated[Role, Field(description="The role of the message")]
    content: Annotated[str, Field(default="", description="The content of the message")]
    created_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(UTC))]
    is_streaming: Annotated[bool, Field(default=False, description="Whether the message is still being generated")]
    error: Annotated[str | None, Field(default=None, description="Error text if inference failed")]
    tool_executions: Annotated[list[ToolExecution], Field(default_factory=list)]
    context_paths: Annotated[list[str] | None, Field(default=None, description="Paths the message refers to")]

    def commit(self) -> None:
        """Freeze the message; it must not be mutated afterwards."""
        self.is_streaming = False


class Conversation(BaseModel):
    """Ordered message history plus the current mode and model selection.

    Outside of an in-flight request the history alternates user/assistant
    messages and holds at most one streaming message; `check_invariants()`
    reports any deviation.
    """

    id: Annotated[str, Field(default_factory=lambda: str(uuid.uuid4()))]
    messages: Annotated[list[Message], Field(default_factory=list)]
    mode: Annotated[AIMode, Field(default=AIMode.QA)]
    selected_model_id: Annotated[str | None, Field(default=None)]
    active_provider: Annotated[ModelProvider | None, Field(default=None)]

    @property
    def messages_dict(self) -> list[dict]:
        return [
            {
                "role": message.role.value,
                "content": message.content,
            }
            for message in self.messages
        ]

    def add_message(self, role: Role, content: str, **fields: Any) -> Message:
        message = Message(role=role, content=content, **fields)
        self.messages.append(message)
        return message

    def streaming_messages(self) -> list[Message]:
        return [message for message in self.messages if message.is_streaming]

    def check_invariants(self) -> list[str]:
        """Return human-readable invariant violations (empty when consistent)."""
        problems = []
        dialogue = [m for m in self.messages if m.role != Role.SYSTEM]
        for previous, current in zip(dialogue, dialogue[1:]):
            if previous.role == current.role:
                problems.append(f"consecutive {current.role.value} messages ({previous.id}, {current.id})")
        streaming = self.streaming_messages()
        if len(streaming) > 1:
            problems.append(f"{len(streaming)} streaming messages")
        return problems
