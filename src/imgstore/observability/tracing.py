"""OpenTelemetry tracing for imgstore.

Tracing is opt-in. Once enabled, FastAPI requests and blob store operations
emit spans through a process-wide SDK tracer provider.

Environment Variables:
    IMGSTORE_OTEL_ENABLED: "1" turns tracing on (default: off)
    IMGSTORE_REQUIRE_OTEL: "1" makes a failed setup raise TracingConfigError
    IMGSTORE_OTEL_SERVICE_NAME: service.name resource attribute (default: "imgstore")
    IMGSTORE_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    IMGSTORE_OTEL_EXPORTER_OTLP_ENDPOINT: collector endpoint (optional)
    IMGSTORE_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    IMGSTORE_OTEL_RESOURCE_ATTRS: extra resource attributes as k=v,k=v
    IMGSTORE_OTEL_TEST_CAPTURE: "1" keeps finished spans in memory for tests
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider

logger = logging.getLogger(__name__)

OTEL_ENABLED_ENV: Final[str] = "IMGSTORE_OTEL_ENABLED"
OTEL_REQUIRE_ENV: Final[str] = "IMGSTORE_REQUIRE_OTEL"
OTEL_TEST_CAPTURE_ENV: Final[str] = "IMGSTORE_OTEL_TEST_CAPTURE"

_TRUTHY = frozenset({"1", "true", "yes"})

_tracer_provider: TracerProvider | None = None
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing is required but could not be set up."""


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def _env_text(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


@dataclass(frozen=True)
class TracingSettings:
    """Exporter and resource settings read from IMGSTORE_OTEL_* variables."""

    service_name: str = "imgstore"
    exporter: str = "otlp"
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"
    test_capture: bool = False
    resource_attrs: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> TracingSettings:
        """Read settings from the environment."""
        attrs: dict[str, str] = {}
        for pair in _env_text("IMGSTORE_OTEL_RESOURCE_ATTRS").split(","):
            key, sep, value = pair.partition("=")
            if sep and key.strip():
                attrs[key.strip()] = value.strip()

        return cls(
            service_name=_env_text("IMGSTORE_OTEL_SERVICE_NAME", "imgstore"),
            exporter=_env_text("IMGSTORE_OTEL_EXPORTER", "otlp"),
            otlp_endpoint=_env_text("IMGSTORE_OTEL_EXPORTER_OTLP_ENDPOINT") or None,
            otlp_protocol=_env_text("IMGSTORE_OTEL_EXPORTER_OTLP_PROTOCOL", "grpc"),
            test_capture=_env_flag(OTEL_TEST_CAPTURE_ENV),
            resource_attrs=attrs,
        )


def _build_span_processor(settings: TracingSettings) -> SpanProcessor:
    """Pick the exporter named by settings and wrap it in a span processor."""
    global _test_exporter

    from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

    if settings.test_capture:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _test_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_test_exporter)

    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        return SimpleSpanProcessor(ConsoleSpanExporter())

    kwargs: dict[str, Any] = {}
    if settings.otlp_endpoint:
        kwargs["endpoint"] = settings.otlp_endpoint

    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HttpExporter,
        )

        return BatchSpanProcessor(HttpExporter(**kwargs))

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GrpcExporter,
    )

    return BatchSpanProcessor(GrpcExporter(**kwargs))


def is_tracing_enabled() -> bool:
    """Return True when IMGSTORE_OTEL_ENABLED is set to a truthy value."""
    return _env_flag(OTEL_ENABLED_ENV)


def configure_tracing() -> bool:
    """Install the SDK tracer provider if tracing is enabled.

    Safe to call repeatedly. The global provider can only be installed once
    per process; later calls reuse it.

    Returns:
        True if tracing is active, False otherwise.

    Raises:
        TracingConfigError: If IMGSTORE_REQUIRE_OTEL=1 and setup fails.
    """
    global _tracer_provider

    if not is_tracing_enabled():
        logger.debug("Tracing disabled (%s not set)", OTEL_ENABLED_ENV)
        return False

    if _tracer_provider is not None:
        return True

    settings = TracingSettings.from_env()
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        attrs = {"service.name": settings.service_name, **settings.resource_attrs}
        provider = TracerProvider(resource=Resource.create(attrs))
        provider.add_span_processor(_build_span_processor(settings))
        trace.set_tracer_provider(provider)
    except Exception as e:
        logger.error("Tracing setup failed: %s", e)
        if _env_flag(OTEL_REQUIRE_ENV):
            raise TracingConfigError(f"Tracing is required but setup failed: {e}") from e
        return False

    _tracer_provider = provider
    logger.info(
        "Tracing enabled: service=%s exporter=%s",
        settings.service_name,
        "in-memory" if settings.test_capture else settings.exporter,
    )
    return True


def instrument_fastapi(app: Any) -> None:
    """Add OpenTelemetry request spans to a FastAPI app when tracing is on."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
    except Exception as e:
        logger.warning("FastAPI instrumentation unavailable: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Return spans captured by the in-memory exporter (empty if not capturing)."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_test_spans() -> None:
    """Drop spans captured by the in-memory exporter."""
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Clear captured spans between tests.

    The installed provider and its exporter stay in place; the global
    provider cannot be replaced.
    """
    clear_test_spans()
