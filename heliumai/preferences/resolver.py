"""Resolution of the provider, model and endpoint to use for a mode.

Model resolution, first match wins:
    1. The model persisted for this mode, if it is in the catalog.
    2. The static-config default model for the mode's provider, if in the catalog.
    3. The first catalog model of the mode's provider.
    4. The best catalog model for the mode (`best_model_for_mode`).

The mode's provider is the persisted one, else the configured default.

Endpoint resolution (network providers only): persisted endpoint for the
provider, then the model's own endpoint, then the static-config default.

An empty catalog yields `Unresolved`; nothing is ever synthesized.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from heliumai.config import HeliumSettings, get_settings
from heliumai.errors import ConfigurationInvalidError
from heliumai.logging_config import get_logger
from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelConfig, ModelProvider
from heliumai.preferences.store import Preferences

logger = get_logger(__name__)

ResolutionSource = Literal["persisted", "static_config", "provider_default", "heuristic"]


class Resolved(BaseModel):
    kind: Literal["resolved"] = "resolved"
    mode: AIMode
    provider: ModelProvider
    model: ModelConfig
    endpoint: Annotated[str | None, Field(default=None)]
    source: Annotated[ResolutionSource, Field(description="Which resolution step matched")]

    @property
    def is_available(self) -> bool:
        """False when the model resolved but is not installed/reachable."""
        return self.model.is_available

    def model_with_endpoint(self) -> ModelConfig:
        return self.model.with_endpoint(self.endpoint)


class Unresolved(BaseModel):
    kind: Literal["unresolved"] = "unresolved"
    mode: AIMode
    provider: ModelProvider
    reason: Annotated[Literal["no_models_available"], Field(description="Why nothing resolved")] = "no_models_available"


Resolution = Annotated[Resolved | Unresolved, Field(discriminator="kind")]


def best_model_for_mode(mode: AIMode, available_models: list[ModelConfig]) -> ModelConfig | None:
    """Heuristic default: prefer models recommended for the mode.

    Agent mode takes the largest recommended model (tool use needs capacity);
    QA takes the first recommended one. Without recommendations, the first
    model wins.
    """
    if not available_models:
        return None

    recommended = [m for m in available_models if mode in m.recommended_for]
    if not recommended:
        return available_models[0]

    if mode == AIMode.AGENT:
        return max(recommended, key=lambda m: m.size_bytes or 0)
    return recommended[0]


class PreferenceResolver:
    def __init__(self, preferences: Preferences, settings: HeliumSettings | None = None):
        self.preferences = preferences
        self.settings = settings or get_settings()

    def provider_for(self, mode: AIMode) -> ModelProvider:
        return self.preferences.provider_for(mode) or self.settings.default_provider_for(mode)

    def resolve(self, mode: AIMode, available_models: list[ModelConfig]) -> Resolution:
        provider = self.provider_for(mode)
        if not available_models:
            logger.warning(f"No models available to resolve {mode.value} mode")
            return Unresolved(mode=mode, provider=provider)

        model, source = self._resolve_model(mode, provider, available_models)
        endpoint = self.resolve_endpoint(model)
        logger.debug(
            f"Resolved {mode.value} mode: model={model.id}, provider={model.provider.value}, "
            f"endpoint={endpoint}, source={source}"
        )
        return Resolved(mode=mode, provider=model.provider, model=model, endpoint=endpoint, source=source)

    def require(self, mode: AIMode, available_models: list[ModelConfig]) -> Resolved:
        """Like `resolve`, but an unresolved result raises."""
        resolution = self.resolve(mode, available_models)
        if isinstance(resolution, Unresolved):
            raise ConfigurationInvalidError(
                f"No model can be resolved for {mode.value} mode ({resolution.reason}, "
                f"provider={resolution.provider.value})"
            )
        return resolution

    def resolve_endpoint(self, model: ModelConfig) -> str | None:
        if model.provider not in NETWORK_PROVIDERS:
            return None
        return (
            self.preferences.endpoint_for(model.provider)
            or model.endpoint
            or self.settings.default_endpoint_for(model.provider)
        )

    def _resolve_model(
        self, mode: AIMode, provider: ModelProvider, available_models: list[ModelConfig]
    ) -> tuple[ModelConfig, ResolutionSource]:
        persisted_id = self.preferences.load(mode).model_id
        if persisted_id:
            model = next((m for m in available_models if m.id == persisted_id), None)
            if model is not None:
                return model, "persisted"
            logger.info(f"Persisted {mode.value} model {persisted_id!r} is not in the catalog; falling through")

        configured_id = self.settings.default_model_for(provider)
        if configured_id:
            model = next(
                (m for m in available_models if m.provider == provider and m.matches(configured_id)),
                None,
            )
            if model is not None:
                return model, "static_config"

        model = next((m for m in available_models if m.provider == provider), None)
        if model is not None:
            return model, "provider_default"

        return best_model_for_mode(mode, available_models), "heuristic"
