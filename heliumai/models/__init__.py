from heliumai.models.conversation import Conversation, Message, Role, ToolExecution, ToolStatus
from heliumai.models.inference import (
    FileMetadata,
    FileSystemContext,
    InferenceRequest,
    InferenceResponse,
    LargeFile,
    ScanSummary,
    StreamEvent,
    TextDelta,
    TokenUsage,
    ToolExecutionEvent,
)
from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelConfig, ModelParameters, ModelProvider
from heliumai.models.session import Session, SessionState

__all__ = [
    "AIMode",
    "Conversation",
    "FileMetadata",
    "FileSystemContext",
    "InferenceRequest",
    "InferenceResponse",
    "LargeFile",
    "Message",
    "ModelConfig",
    "ModelParameters",
    "ModelProvider",
    "NETWORK_PROVIDERS",
    "Role",
    "ScanSummary",
    "Session",
    "SessionState",
    "StreamEvent",
    "TextDelta",
    "TokenUsage",
    "ToolExecution",
    "ToolExecutionEvent",
    "ToolStatus",
]
