"""Model catalog entries, providers and modes."""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field


class AIMode(str, Enum):
    """Conversational behaviour profile."""

    QA = "qa"
    AGENT = "agent"


class ModelProvider(str, Enum):
    """Backend families that expose the same request/response contract."""

    TRANSFORMERJS = "transformerjs"
    OLLAMA = "ollama"
    OPENAI_COMPATIBLE = "openai-compatible"
    LLAMACPP = "llamacpp"
    MLX = "mlx"
    CANDLE = "candle"


# Providers reached over HTTP; only these carry an endpoint.
NETWORK_PROVIDERS: frozenset[ModelProvider] = frozenset(
    {ModelProvider.OLLAMA, ModelProvider.OPENAI_COMPATIBLE, ModelProvider.LLAMACPP}
)


class ModelParameters(BaseModel):
    temperature: Annotated[float, Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")]
    top_p: Annotated[float, Field(default=0.9, ge=0.0, le=1.0, description="Nucleus sampling threshold")]
    max_tokens: Annotated[int, Field(default=2048, gt=0, description="Maximum tokens to generate")]
    stream: Annotated[bool, Field(default=True, description="Whether to stream responses")]
    stop_sequences: Annotated[list[str] | None, Field(default=None, description="Stop sequences")]
    context_window: Annotated[int | None, Field(default=None, gt=0, description="Context window size")]


class ModelConfig(BaseModel):
    """A model offered by the external catalog.

    Read-only to the orchestrator apart from the endpoint, which can be
    overridden through `with_endpoint()` (returns a copy).
    """

    id: Annotated[str, Field(description="Unique identifier for this configuration")]
    name: Annotated[str, Field(description="Display name")]
    provider: Annotated[ModelProvider, Field(description="Provider family")]
    model_id: Annotated[str, Field(description="Backend-specific model identifier, e.g. 'llama3.2:3b'")]
    parameters: Annotated[ModelParameters, Field(default_factory=ModelParameters)]
    endpoint: Annotated[str | None, Field(default=None, description="Custom endpoint for network providers")]
    api_key: Annotated[str | None, Field(default=None, repr=False, description="API key, if the server needs one")]
    is_available: Annotated[bool, Field(default=False, description="Whether the model is installed/reachable")]
    recommended_for: Annotated[list[AIMode], Field(default_factory=list, description="Modes this model suits")]
    size_bytes: Annotated[int | None, Field(default=None, ge=0, description="Model size in bytes, if known")]

    @property
    def is_network_backed(self) -> bool:
        return self.provider in NETWORK_PROVIDERS

    def with_endpoint(self, endpoint: str | None) -> "ModelConfig":
        return self.model_copy(update={"endpoint": endpoint})

    def matches(self, model_ref: str) -> bool:
        """Whether `model_ref` names this entry, by catalog id or backend model id."""
        return model_ref in (self.id, self.model_id)
