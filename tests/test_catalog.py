"""Tests for the known-models library and catalog loading."""

import json

import pytest

from heliumai.catalog import KNOWN_MODELS, load_catalog, merge_catalog
from heliumai.errors import ConfigurationInvalidError
from heliumai.models import ModelConfig, ModelProvider


def test_known_models_are_not_installed():
    assert KNOWN_MODELS
    assert all(not m.is_available for m in KNOWN_MODELS)
    assert all(m.provider == ModelProvider.OLLAMA for m in KNOWN_MODELS)


def test_known_models_use_default_parameters_unless_tuned():
    by_id = {m.id: m for m in KNOWN_MODELS}

    assert by_id["llama3.2:1b"].parameters.temperature == 0.7
    assert by_id["qwen2.5-coder:0.5b"].parameters.temperature == 0.2


def test_merge_puts_installed_first_and_skips_duplicates():
    installed = [
        ModelConfig(
            id="my-mistral",
            name="Mistral",
            provider=ModelProvider.OLLAMA,
            model_id="mistral",
            is_available=True,
        )
    ]

    merged = merge_catalog(installed)

    assert merged[0].id == "my-mistral"
    assert [m.model_id for m in merged].count("mistral") == 1
    assert len(merged) == len(KNOWN_MODELS)


def test_load_catalog(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "server",
                    "name": "Server",
                    "provider": "openai-compatible",
                    "model_id": "qwen2.5",
                    "endpoint": "http://127.0.0.1:8080/v1",
                    "is_available": True,
                    "recommended_for": ["agent"],
                }
            ]
        )
    )

    models = load_catalog(path)

    assert models[0].provider == ModelProvider.OPENAI_COMPATIBLE
    assert models[0].is_available is True


def test_load_malformed_catalog_raises(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text('[{"id": "x"}]')

    with pytest.raises(ConfigurationInvalidError):
        load_catalog(path)


def test_load_missing_catalog_raises(tmp_path):
    with pytest.raises(ConfigurationInvalidError):
        load_catalog(tmp_path / "missing.json")
