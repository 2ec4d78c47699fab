"""Request, response and stream event types exchanged with inference backends."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from heliumai.models.conversation import Message
from heliumai.models.model_config import AIMode, ModelConfig


class FileMetadata(BaseModel):
    name: str
    is_dir: bool
    size: int = 0
    file_count: int | None = None
    last_modified: float | None = None


class LargeFile(BaseModel):
    path: str
    size: int


class ScanSummary(BaseModel):
    total_files: int
    total_size: int
    largest_files: list[LargeFile] = Field(default_factory=list)
    file_types: dict[str, int] = Field(default_factory=dict)
    scanned_at: float | None = None


class FileSystemContext(BaseModel):
    """Snapshot supplied by the file browser; passed through unmodified."""

    current_path: str
    selected_paths: list[str] = Field(default_factory=list)
    visible_files: list[FileMetadata] | None = None
    scan_data: ScanSummary | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class InferenceRequest(BaseModel):
    session_id: Annotated[str, Field(description="Session the request belongs to")]
    model: Annotated[ModelConfig, Field(description="Model to run, with its resolved endpoint")]
    messages: Annotated[list[Message], Field(description="Sanitized conversation history")]
    fs_context: Annotated[FileSystemContext | None, Field(default=None)]
    mode: Annotated[AIMode, Field(default=AIMode.QA)]


class TextDelta(BaseModel):
    """A fragment of streamed assistant text."""

    kind: Literal["text_delta"] = "text_delta"
    content: str


class ToolExecutionEvent(BaseModel):
    """Tool progress notification.

    A start event carries neither `result` nor `error`; an end event carries
    at least one of them.
    """

    kind: Literal["tool_execution"] = "tool_execution"
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None
    error: str | None = None
    execution_time_ms: float | None = None

    @property
    def is_start(self) -> bool:
        return self.result is None and self.error is None


class InferenceResponse(BaseModel):
    """Final payload of a request; its message content is authoritative."""

    kind: Literal["completed"] = "completed"
    message: Message
    is_complete: bool = True
    usage: TokenUsage | None = None
    inference_time_ms: float | None = None


StreamEvent = TextDelta | ToolExecutionEvent | InferenceResponse
