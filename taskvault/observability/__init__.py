"""Observability helpers."""

from taskvault.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_export,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_export",
]
