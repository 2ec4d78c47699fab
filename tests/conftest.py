"""Pytest configuration for heliumai tests."""

import asyncio

import pytest

from heliumai.backends import InferenceBackend
from heliumai.models import AIMode, InferenceResponse, Message, ModelConfig, ModelProvider, Role, TextDelta
from heliumai.preferences import InMemoryPreferenceStore, Preferences


@pytest.fixture(autouse=True)
def reset_settings():
    """Reset global settings after each test to ensure test isolation."""
    yield
    # After each test, reload settings to reset to defaults
    from heliumai.config import reload_settings

    reload_settings()


def reply(*chunks: str, final: str | None = None) -> list:
    """A scripted round: stream `chunks`, then complete with `final` (default: the joined chunks)."""
    return [*chunks, InferenceResponse(message=Message(role=Role.ASSISTANT, content="".join(chunks) if final is None else final))]


class ScriptedBackend(InferenceBackend):
    """Backend that replays scripted rounds, one per provider round trip.

    Round items:
        - str: streamed as a TextDelta
        - InferenceResponse: yielded as the final payload
        - Exception instance: raised at that point of the stream
        - asyncio.Event: the stream blocks until the event is set
    """

    def __init__(self, rounds: list[list] | None = None, **kwargs):
        super().__init__(**kwargs)
        self.rounds = list(rounds or [])
        self.requests = []
        self.started = asyncio.Event()

    async def _stream_completion(self, request):
        self.requests.append(request)
        self.started.set()
        assert self.rounds, "ScriptedBackend ran out of rounds"
        for item in self.rounds.pop(0):
            if isinstance(item, str):
                yield TextDelta(content=item)
            elif isinstance(item, BaseException):
                raise item
            elif isinstance(item, asyncio.Event):
                await item.wait()
            else:
                yield item


def dialogue(request) -> list[tuple[Role, str]]:
    """Non-system (role, content) pairs of a request."""
    return [(m.role, m.content) for m in request.messages if m.role != Role.SYSTEM]


async def wait_until(condition, timeout: float = 1.0) -> None:
    async def _poll():
        while not condition():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def preferences():
    return Preferences(InMemoryPreferenceStore())


@pytest.fixture
def catalog():
    return [
        ModelConfig(
            id="llama3.2:1b",
            name="Llama 3.2 1B",
            provider=ModelProvider.OLLAMA,
            model_id="llama3.2:1b",
            is_available=True,
            recommended_for=[AIMode.QA],
            size_bytes=1_300_000_000,
        ),
        ModelConfig(
            id="mistral",
            name="Mistral 7B",
            provider=ModelProvider.OLLAMA,
            model_id="mistral",
            is_available=True,
            recommended_for=[AIMode.AGENT],
            size_bytes=4_100_000_000,
        ),
        ModelConfig(
            id="local-server",
            name="Local OpenAI-compatible server",
            provider=ModelProvider.OPENAI_COMPATIBLE,
            model_id="openai-compatible-generic",
            is_available=True,
        ),
    ]
