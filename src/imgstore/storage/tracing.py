"""OpenTelemetry tracing for blob store operations.

Spans only ever carry public identifiers and counts. Physical paths and
stored file names stay out of span attributes.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from imgstore.observability.tracing import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "imgstore.blob_store"


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace a BlobStore method with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "upload", "fetch", "remove", "list").

    Returns:
        Decorated function that emits a span when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            from opentelemetry import trace

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"{TRACER_NAME}.{operation}") as span:
                span.set_attribute("imgstore.operation", operation)
                if operation in ("fetch", "remove") and args:
                    span.set_attribute("imgstore.blob_id", str(args[0]))

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add safe result attributes (blob id, size, counts) to a span."""
    from imgstore.storage.models import PublicMeta

    if isinstance(result, PublicMeta):
        span.set_attribute("imgstore.blob_id", result.id)
        span.set_attribute("imgstore.blob_size_bytes", result.size)
    elif operation == "list" and isinstance(result, list):
        span.set_attribute("imgstore.result_count", len(result))
