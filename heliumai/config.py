"""Configuration management using pydantic-settings.

This module provides the static configuration layer for heliumai: default
providers, default model ids, provider endpoints and sampling parameters,
plus the ambient logging, retry and tracing settings.

Configuration Sources (in order of precedence):
    1. Direct instantiation parameters
    2. Environment variables (prefixed with HELIUM_)
    3. .env file in project root

Static configuration is the lowest layer of model resolution. Per-mode
selections persisted by the user (see heliumai.preferences) always win over
these defaults.

Example:
    >>> from heliumai.config import settings, reload_settings
    >>>
    >>> settings.default_provider
    <ModelProvider.OLLAMA: 'ollama'>
    >>> settings.default_endpoint_for(ModelProvider.OLLAMA)
    'http://127.0.0.1:11434'
    >>>
    >>> # Reload after changing .env
    >>> settings = reload_settings()
"""

from pathlib import Path
from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelParameters, ModelProvider

_env_file = Path(__file__).parent.parent / ".env"


class HeliumSettings(BaseSettings):
    """Global settings for heliumai.

    Configuration values can be set via:
    1. Environment variables (e.g., HELIUM_DEFAULT_PROVIDER)
    2. .env file in the project root
    3. Direct instantiation with parameters
    """

    model_config = SettingsConfigDict(
        env_prefix="HELIUM_",
        env_file=_env_file,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider defaults
    default_provider: ModelProvider = ModelProvider.OLLAMA
    qa_default_provider: ModelProvider | None = None
    agent_default_provider: ModelProvider | None = None

    # Default model ids, per provider
    default_ollama_model: str = "llama3.2:1b"
    default_openai_model: str = "openai-compatible-generic"
    default_llamacpp_model: str = "llamacpp-generic"
    default_candle_model: str = "embedded-qwen1.5"

    # Provider endpoints
    ollama_endpoint: str = "http://127.0.0.1:11434"
    openai_compatible_endpoint: str = "http://127.0.0.1:8080/v1"
    llamacpp_endpoint: str = "http://127.0.0.1:8081"

    # Default sampling parameters
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7
    top_p: Annotated[float, Field(ge=0.0, le=1.0)] = 0.9
    max_tokens: Annotated[int, Field(gt=0)] = 2048

    # Session behaviour
    placeholder_text: str = "Working..."
    max_tool_iterations: Annotated[int, Field(gt=0)] = 5
    request_timeout: Annotated[float, Field(gt=0)] = 120.0

    # Retry settings (opening a stream only)
    retry_max_attempts: Annotated[int, Field(gt=0)] = 3
    retry_min_wait: Annotated[int, Field(ge=0)] = 1
    retry_max_wait: Annotated[int, Field(ge=0)] = 10
    retry_multiplier: Annotated[int, Field(ge=0)] = 1

    # Optional API key for OpenAI-compatible servers that require one
    openai_api_key: str | None = None

    # Local state
    preferences_path: Path = Path.home() / ".heliumai" / "preferences.json"
    catalog_path: Path | None = None

    # Logging settings
    log_level: str = "INFO"
    log_file_level: str = "DEBUG"
    log_dir: Path | None = None  # None means use default 'logs' directory
    log_file_name: str = "heliumai.log"
    log_json_format: bool = False
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 5

    # OpenTelemetry tracing settings
    enable_tracing: bool = False
    otel_exporter_endpoint: str | None = None
    otel_service_name: str = "heliumai"

    def default_provider_for(self, mode: AIMode) -> ModelProvider:
        """Return the configured default provider for a mode."""
        override = self.agent_default_provider if mode == AIMode.AGENT else self.qa_default_provider
        return override or self.default_provider

    def default_model_for(self, provider: ModelProvider) -> str | None:
        """Return the configured default model id for a provider, if any."""
        return {
            ModelProvider.OLLAMA: self.default_ollama_model,
            ModelProvider.OPENAI_COMPATIBLE: self.default_openai_model,
            ModelProvider.LLAMACPP: self.default_llamacpp_model,
            ModelProvider.CANDLE: self.default_candle_model,
        }.get(provider)

    def default_endpoint_for(self, provider: ModelProvider) -> str | None:
        """Return the configured endpoint for a network-backed provider."""
        if provider not in NETWORK_PROVIDERS:
            return None
        return {
            ModelProvider.OLLAMA: self.ollama_endpoint,
            ModelProvider.OPENAI_COMPATIBLE: self.openai_compatible_endpoint,
            ModelProvider.LLAMACPP: self.llamacpp_endpoint,
        }[provider]

    def default_parameters(self) -> ModelParameters:
        return ModelParameters(temperature=self.temperature, top_p=self.top_p, max_tokens=self.max_tokens)


settings = HeliumSettings()


def get_settings() -> HeliumSettings:
    return settings


def reload_settings() -> HeliumSettings:
    """Re-read the environment and .env; modules calling get_settings() see the new values."""
    global settings
    settings = HeliumSettings()
    return settings
