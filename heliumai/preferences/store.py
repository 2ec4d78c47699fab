"""Persisted per-mode preferences.

`PreferenceStore` is the raw string key-value interface (the desktop shell's
local storage). `Preferences` is the one typed accessor on top of it; no
other code builds store keys.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field

from heliumai.logging_config import get_logger
from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelProvider

logger = get_logger(__name__)


class PreferenceStore(ABC):
    """String key-value store; a missing key reads as None."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self._data = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFilePreferenceStore(PreferenceStore):
    """Store backed by a JSON object on disk.

    The file is read lazily and rewritten atomically (temp file + rename) on
    every change. A corrupt file is logged and treated as empty.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._data: dict[str, str] | None = None

    def _load(self) -> dict[str, str]:
        if self._data is None:
            self._data = {}
            if self.path.exists():
                try:
                    raw = json.loads(self.path.read_text(encoding="utf-8"))
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
                else:
                    if isinstance(raw, dict):
                        self._data = {str(k): str(v) for k, v in raw.items() if v is not None}
                    else:
                        logger.warning(f"Ignoring preferences file {self.path}: expected a JSON object")
        return self._data

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._load(), f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        self._load()[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()


class PreferenceRecord(BaseModel):
    """What the user pinned for one mode. Every field may be absent."""

    mode: AIMode
    provider: Annotated[ModelProvider | None, Field(default=None)]
    model_id: Annotated[str | None, Field(default=None)]
    endpoint: Annotated[str | None, Field(default=None, description="Saved endpoint for `provider`")]

    @property
    def is_empty(self) -> bool:
        return self.provider is None and self.model_id is None and self.endpoint is None


class Preferences:
    """Typed access to per-mode selections and per-provider endpoints.

    Endpoints are stored per provider, not per mode, so that the daemon and
    an OpenAI-compatible server can each keep their own address.
    """

    def __init__(self, store: PreferenceStore):
        self.store = store

    @staticmethod
    def _provider_key(mode: AIMode) -> str:
        return f"default_provider.{mode.value}"

    @staticmethod
    def _model_key(mode: AIMode) -> str:
        return f"default_model.{mode.value}"

    @staticmethod
    def _endpoint_key(provider: ModelProvider) -> str:
        return f"endpoint.{provider.value}"

    def provider_for(self, mode: AIMode) -> ModelProvider | None:
        raw = self.store.get(self._provider_key(mode))
        if raw is None:
            return None
        try:
            return ModelProvider(raw)
        except ValueError:
            logger.warning(f"Ignoring unknown persisted provider {raw!r} for mode {mode.value}")
            return None

    def endpoint_for(self, provider: ModelProvider) -> str | None:
        if provider not in NETWORK_PROVIDERS:
            return None
        return self.store.get(self._endpoint_key(provider)) or None

    def set_endpoint(self, provider: ModelProvider, endpoint: str | None) -> None:
        if provider not in NETWORK_PROVIDERS:
            raise ValueError(f"Provider {provider.value} does not use an endpoint")
        if endpoint:
            self.store.set(self._endpoint_key(provider), endpoint)
        else:
            self.store.remove(self._endpoint_key(provider))

    def load(self, mode: AIMode) -> PreferenceRecord:
        provider = self.provider_for(mode)
        return PreferenceRecord(
            mode=mode,
            provider=provider,
            model_id=self.store.get(self._model_key(mode)) or None,
            endpoint=self.endpoint_for(provider) if provider else None,
        )

    def save(self, record: PreferenceRecord) -> None:
        """Persist a record; absent fields are removed from the store."""
        if record.provider is not None:
            self.store.set(self._provider_key(record.mode), record.provider.value)
        else:
            self.store.remove(self._provider_key(record.mode))
        if record.model_id:
            self.store.set(self._model_key(record.mode), record.model_id)
        else:
            self.store.remove(self._model_key(record.mode))
        if record.provider is not None and record.endpoint and record.provider in NETWORK_PROVIDERS:
            self.set_endpoint(record.provider, record.endpoint)
        logger.info(
            f"Saved {record.mode.value} defaults: provider={record.provider and record.provider.value}, "
            f"model={record.model_id}"
        )

    def clear(self, mode: AIMode) -> None:
        """Forget the mode's provider and model. Provider endpoints are kept."""
        self.store.remove(self._provider_key(mode))
        self.store.remove(self._model_key(mode))
        logger.info(f"Cleared {mode.value} defaults")
