"""Diagnostic events for observing isolation fallbacks and best-effort work.

Usage:
    from worldvault.tracing import InMemoryDiagnosticSink, EventKind

    sink = InMemoryDiagnosticSink()
    resolver = WorldContextResolver(storage, Environment.LOCAL_DEV, sink=sink)
    resolver.resolve(world_id="gone")
    assert sink.of_kind(EventKind.WORLD_FALLBACK)
"""

from worldvault.tracing.models import DiagnosticEvent, EventKind
from worldvault.tracing.protocol import DiagnosticSink
from worldvault.tracing.sinks import (
    FanOutDiagnosticSink,
    InMemoryDiagnosticSink,
    LoggingDiagnosticSink,
)

__all__ = [
    "DiagnosticEvent",
    "DiagnosticSink",
    "EventKind",
    "FanOutDiagnosticSink",
    "InMemoryDiagnosticSink",
    "LoggingDiagnosticSink",
]
