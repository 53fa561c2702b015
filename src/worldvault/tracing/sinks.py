"""Diagnostic sink implementations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from worldvault.tracing.models import DiagnosticEvent, EventKind
from worldvault.tracing.protocol import DiagnosticSink

logger = logging.getLogger(__name__)

_WARNING_KINDS = frozenset(
    {
        EventKind.WORLD_FALLBACK,
        EventKind.WORLD_TOKEN_REJECTED,
        EventKind.WORLD_USAGE_BUMP_FAILED,
        EventKind.SUMMARY_FAILED,
        EventKind.SEED_CATEGORY_FAILED,
    }
)


class InMemoryDiagnosticSink:
    """Bounded list of events, oldest dropped first.

    Args:
        max_events: Retained event limit (None keeps everything).
    """

    def __init__(self, max_events: int | None = None):
        self._max_events = max_events
        self._events: list[DiagnosticEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: DiagnosticEvent) -> None:
        with self._lock:
            self._events.append(event)
            if self._max_events is not None and len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]

    @property
    def events(self) -> Sequence[DiagnosticEvent]:
        with self._lock:
            return tuple(self._events)

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: EventKind) -> list[DiagnosticEvent]:
        return [event for event in self.events if event.kind is kind]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class LoggingDiagnosticSink:
    """Forwards events to a logger; failure kinds log at WARNING, the rest at DEBUG."""

    def __init__(self, target: logging.Logger | None = None):
        self._logger = target or logger

    def emit(self, event: DiagnosticEvent) -> None:
        level = logging.WARNING if event.kind in _WARNING_KINDS else logging.DEBUG
        self._logger.log(level, "%s %s", event.kind.value, event.attributes)


class FanOutDiagnosticSink:
    """Delivers each event to several sinks in order."""

    def __init__(self, *sinks: DiagnosticSink):
        self._sinks = sinks

    def emit(self, event: DiagnosticEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)
