"""The model catalog: a library of known models merged with installed ones.

The catalog is owned by an external collaborator (provider discovery); this
module only supplies the known-models library shown for download guidance,
JSON loading for a user-maintained catalog file, and the merge rule.
"""

import json
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from heliumai.config import get_settings
from heliumai.errors import ConfigurationInvalidError
from heliumai.logging_config import get_logger
from heliumai.models.model_config import AIMode, ModelConfig, ModelProvider

logger = get_logger(__name__)

_catalog_adapter = TypeAdapter(list[ModelConfig])


def _ollama(model_id: str, name: str, size_bytes: int, modes: list[AIMode], **parameters) -> ModelConfig:
    return ModelConfig(
        id=model_id,
        name=name,
        provider=ModelProvider.OLLAMA,
        model_id=model_id,
        parameters=get_settings().default_parameters().model_copy(update=parameters),
        recommended_for=modes,
        size_bytes=size_bytes,
    )


KNOWN_MODELS: list[ModelConfig] = [
    _ollama("llama3.2:1b", "Llama 3.2 1B", 1_300_000_000, [AIMode.QA]),
    _ollama("llama3.2:3b", "Llama 3.2 3B", 2_000_000_000, [AIMode.QA, AIMode.AGENT]),
    _ollama("mistral", "Mistral 7B", 4_100_000_000, [AIMode.AGENT], max_tokens=4096),
    _ollama(
        "qwen2.5-coder:0.5b",
        "Qwen 2.5 Coder 0.5B",
        350_000_000,
        [AIMode.AGENT],
        temperature=0.2,
        top_p=0.7,
        max_tokens=4096,
    ),
    _ollama("gemma:2b", "Gemma 2B", 1_500_000_000, []),
]


def merge_catalog(installed: list[ModelConfig], known: list[ModelConfig] | None = None) -> list[ModelConfig]:
    """Installed models first, then known models not already installed.

    Known entries are matched against installed ones by provider and backend
    model id, and keep `is_available=False`.
    """
    known = KNOWN_MODELS if known is None else known
    installed_keys = {(m.provider, m.model_id) for m in installed}
    merged = list(installed)
    merged.extend(m.model_copy() for m in known if (m.provider, m.model_id) not in installed_keys)
    return merged


def load_catalog(path: Path | str) -> list[ModelConfig]:
    """Load a JSON array of model configs.

    Raises:
        ConfigurationInvalidError: If the file is unreadable or malformed
    """
    path = Path(path).expanduser()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        models = _catalog_adapter.validate_python(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationInvalidError(f"Cannot load model catalog from {path}: {e}") from e
    logger.info(f"Loaded {len(models)} model(s) from {path}")
    return models
