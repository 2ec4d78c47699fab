"""Network backend built on any-llm.

Covers the providers reachable over HTTP: Ollama, OpenAI-compatible servers
and llama.cpp servers. Opening the stream is retried on transient errors
(rate limits, connectivity) with exponential backoff; once content is
flowing, failures are classified and surfaced without retry.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from any_llm import acompletion as any_llm_acompletion
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from heliumai.backends._base import InferenceBackend
from heliumai.errors import APIConnectionError, BackendUnavailableError, classify_backend_error, should_retry_error
from heliumai.logging_config import get_logger
from heliumai.models.conversation import Message, Role
from heliumai.models.inference import InferenceRequest, InferenceResponse, TextDelta, TokenUsage
from heliumai.models.model_config import ModelConfig, ModelProvider

logger = get_logger(__name__)

# heliumai provider -> any-llm provider name
_ANY_LLM_PROVIDERS: dict[ModelProvider, str] = {
    ModelProvider.OLLAMA: "ollama",
    ModelProvider.OPENAI_COMPATIBLE: "openai",
    ModelProvider.LLAMACPP: "llamacpp",
}

# Local OpenAI-compatible servers ignore the key but the client requires one
_PLACEHOLDER_API_KEY = "not-needed"


def _extract_token_usage(chunk: Any) -> TokenUsage | None:
    usage = getattr(chunk, "usage", None)
    if not usage:
        return None

    def _count(name: str) -> int:
        value = getattr(usage, name, None)
        return int(value) if isinstance(value, (int, float)) else 0

    return TokenUsage(
        prompt_tokens=_count("prompt_tokens"),
        completion_tokens=_count("completion_tokens"),
        total_tokens=_count("total_tokens"),
    )


def _chunk_text(chunk: Any) -> str | None:
    choices = getattr(chunk, "choices", None)
    if not choices:
        return None
    delta = getattr(choices[0], "delta", None)
    return getattr(delta, "content", None) if delta is not None else None


class AnyLLMBackend(InferenceBackend):
    """Streams completions from network providers through any-llm.

    Example:
        >>> backend = AnyLLMBackend()
        >>> async for event in backend.run_inference(request):
        ...     if isinstance(event, TextDelta):
        ...         print(event.content, end="")
    """

    def completion_kwargs(self, model: ModelConfig) -> dict[str, Any]:
        """Build the any-llm call arguments for a model.

        Raises:
            BackendUnavailableError: If the provider is not network-backed
        """
        provider = _ANY_LLM_PROVIDERS.get(model.provider)
        if provider is None:
            raise BackendUnavailableError(
                f"Provider {model.provider.value} is not served by the network backend"
            )

        params = model.parameters
        kwargs: dict[str, Any] = {
            "model": f"{provider}:{model.model_id}",
            "temperature": params.temperature,
            "top_p": params.top_p,
            "max_tokens": params.max_tokens,
        }
        if params.stop_sequences:
            kwargs["stop"] = params.stop_sequences

        endpoint = model.endpoint or self.settings.default_endpoint_for(model.provider)
        if endpoint:
            kwargs["api_base"] = endpoint

        if model.provider == ModelProvider.OPENAI_COMPATIBLE:
            kwargs["api_key"] = model.api_key or self.settings.openai_api_key or _PLACEHOLDER_API_KEY
        elif model.api_key:
            kwargs["api_key"] = model.api_key
        return kwargs

    async def _stream_completion(self, request: InferenceRequest) -> AsyncIterator[TextDelta | InferenceResponse]:
        kwargs = self.completion_kwargs(request.model)
        messages = [{"role": m.role.value, "content": m.content} for m in request.messages]

        start_time = time.time()
        stream = await self._open_stream_with_retry(messages, kwargs)

        parts: list[str] = []
        usage = None
        try:
            async for chunk in stream:
                usage = _extract_token_usage(chunk) or usage
                text = _chunk_text(chunk)
                if text:
                    parts.append(text)
                    yield TextDelta(content=text)
        except Exception as e:
            classified = classify_backend_error(e)
            logger.error(
                f"Stream failed after {len(parts)} chunk(s): model={kwargs['model']}, "
                f"error_type={type(classified).__name__}, error={classified}"
            )
            raise classified from e

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Stream completed: model={kwargs['model']}, chunks={len(parts)}, latency={elapsed_ms:.0f}ms"
            + (f", tokens={usage.total_tokens}" if usage else "")
        )
        yield InferenceResponse(
            message=Message(role=Role.ASSISTANT, content="".join(parts)),
            usage=usage,
            inference_time_ms=elapsed_ms,
        )

    async def _open_stream_with_retry(self, messages: list[dict], kwargs: dict[str, Any]) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception(should_retry_error),
            stop=stop_after_attempt(self.settings.retry_max_attempts),
            wait=wait_exponential(
                multiplier=self.settings.retry_multiplier,
                min=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._open_stream(messages, kwargs)

    async def _open_stream(self, messages: list[dict], kwargs: dict[str, Any]) -> Any:
        timeout = self.settings.request_timeout
        logger.debug(
            f"Opening stream: model={kwargs['model']}, api_base={kwargs.get('api_base')}, "
            f"message_count={len(messages)}, timeout={timeout}s"
        )
        try:
            return await asyncio.wait_for(
                any_llm_acompletion(messages=messages, stream=True, **kwargs),
                timeout=timeout,
            )
        except TimeoutError as e:
            raise APIConnectionError(f"Timed out opening stream after {timeout}s") from e
        except Exception as e:
            classified = classify_backend_error(e)
            logger.warning(f"Opening stream failed: {type(classified).__name__}: {classified}")
            raise classified from e
