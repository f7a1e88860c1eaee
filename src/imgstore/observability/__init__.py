"""imgstore observability module.

Provides opt-in OpenTelemetry tracing.
"""

from imgstore.observability.tracing import configure_tracing, is_tracing_enabled

__all__ = ["configure_tracing", "is_tracing_enabled"]
