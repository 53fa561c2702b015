"""Protocols for diagnostic infrastructure.

These protocols define the interface for event sinks, allowing different
implementations (in-memory, logging, external collectors).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from worldvault.tracing.models import DiagnosticEvent


@runtime_checkable
class DiagnosticSink(Protocol):
    """Receiver of structured diagnostic events.

    Example implementations:
        - InMemoryDiagnosticSink: keeps events for assertions (tests)
        - LoggingDiagnosticSink: forwards events to ``logging``

    Usage:
        sink = InMemoryDiagnosticSink()
        resolver = WorldContextResolver(storage, Environment.LOCAL_DEV, sink=sink)
        resolver.resolve(world_id="missing")
        assert sink.kinds() == [EventKind.WORLD_FALLBACK]

    Thread Safety:
        Implementations should be thread-safe for concurrent emitters.
    """

    def emit(self, event: DiagnosticEvent) -> None:
        """Record one event. Must not raise."""
        ...
