"""OpenTelemetry spans for inference sessions.

Off by default. Set HELIUM_ENABLE_TRACING=true (and optionally
HELIUM_OTEL_EXPORTER_ENDPOINT / HELIUM_OTEL_SERVICE_NAME) and call
`configure_tracing()` once at startup. While tracing is off, `trace_session`
yields a span stand-in and the record helpers do nothing.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from heliumai._version import get_version
from heliumai.config import HeliumSettings, get_settings
from heliumai.logging_config import get_logger
from heliumai.models.inference import TokenUsage

logger = get_logger(__name__)

SESSION_SPAN_NAME = "heliumai.session"

_tracer: trace.Tracer | None = None


class _NoOpSpan:
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_status(self, *args: Any, **kwargs: Any) -> None:
        pass

    def record_exception(self, *args: Any, **kwargs: Any) -> None:
        pass


def _build_provider(settings: HeliumSettings) -> TracerProvider:
    provider = TracerProvider(
        resource=Resource.create({SERVICE_NAME: settings.otel_service_name, SERVICE_VERSION: get_version()})
    )
    if settings.otel_exporter_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)))
        logger.info(f"Exporting spans to {settings.otel_exporter_endpoint}")
    else:
        logger.warning("Tracing enabled without HELIUM_OTEL_EXPORTER_ENDPOINT; spans are not exported")
    return provider


def configure_tracing(settings: HeliumSettings | None = None) -> bool:
    """Install the tracer provider if tracing is enabled.

    Safe to call more than once.

    Returns:
        Whether tracing is active afterwards
    """
    global _tracer

    if _tracer is not None:
        return True
    settings = settings or get_settings()
    if not settings.enable_tracing:
        logger.debug("Tracing disabled")
        return False

    try:
        trace.set_tracer_provider(_build_provider(settings))
    except Exception as e:
        logger.error(f"Could not set up tracing, continuing without it: {e}")
        return False
    _tracer = trace.get_tracer("heliumai", get_version())
    return True


def is_tracing_enabled() -> bool:
    return _tracer is not None


@contextmanager
def trace_session(
    session_id: str, mode: str, provider: str | None, model: str | None, **attributes: Any
) -> Iterator[Any]:
    """Span around one session, from send to commit, failure or cancellation.

    An exception leaving the block marks the span as errored and propagates.
    """
    if _tracer is None:
        yield _NoOpSpan()
        return

    base = {
        "session.id": session_id,
        "session.mode": mode,
        "llm.provider": provider or "unknown",
        "llm.model": model or "unknown",
    }
    with _tracer.start_as_current_span(
        SESSION_SPAN_NAME, attributes=base | attributes, record_exception=False, set_status_on_exception=False
    ) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            raise


def set_span_attributes(span: Any, **attributes: Any) -> None:
    if _tracer is None:
        return
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, bool, int, float)):
            value = str(value)
        span.set_attribute(key, value)


def record_token_usage(span: Any, usage: TokenUsage | None) -> None:
    if usage is not None:
        set_span_attributes(
            span,
            **{
                "llm.usage.prompt_tokens": usage.prompt_tokens,
                "llm.usage.completion_tokens": usage.completion_tokens,
                "llm.usage.total_tokens": usage.total_tokens,
            },
        )


def record_tool_execution(span: Any, tool_name: str, arguments: dict, error: bool = False) -> None:
    # Argument values may be file paths; only their names are recorded
    set_span_attributes(
        span,
        **{
            f"tool.{tool_name}.status": "error" if error else "success",
            f"tool.{tool_name}.arguments": ",".join(sorted(arguments)),
        },
    )
