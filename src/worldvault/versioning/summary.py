"""Best-effort summary generation after a save.

The dispatcher runs the summarizer inline or on an executor and writes the
result to the saved row. Any failure is logged and reported as a
``summary.failed`` diagnostic; it never reaches the caller of ``save``.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future
from typing import TYPE_CHECKING

from worldvault.core.content import display_text
from worldvault.core.types import Clock, ensure_utc, utc_now
from worldvault.tracing import DiagnosticEvent, DiagnosticSink, EventKind, LoggingDiagnosticSink

if TYPE_CHECKING:
    from worldvault.adapters.protocol import Summarizer
    from worldvault.core.models import Artifact
    from worldvault.storage.protocol import Storage
    from worldvault.world.context import WorldScope

logger = logging.getLogger(__name__)


class SummaryDispatcher:
    """Fire-and-forget summary writer.

    Args:
        storage: Backend the summary is written to.
        summarizer: Summary producer; None disables summaries.
        sink: Receives ``summary.failed`` events.
        executor: Runs summaries off the caller's thread when given.
        clock: Timestamp source for diagnostics.
    """

    def __init__(
        self,
        storage: Storage,
        summarizer: Summarizer | None = None,
        sink: DiagnosticSink | None = None,
        executor: Executor | None = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._summarizer = summarizer
        self._sink = sink or LoggingDiagnosticSink()
        self._executor = executor
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._summarizer is not None

    def dispatch(self, artifact: Artifact, scope: WorldScope) -> Future[None] | None:
        """Start summarizing ``artifact``; returns the future when an executor runs it."""
        if self._summarizer is None:
            return None
        if not display_text(artifact.content).strip():
            logger.debug("Skipping summary for empty artifact %s", artifact.id)
            return None
        if self._executor is not None:
            return self._executor.submit(self._run, artifact, scope)
        self._run(artifact, scope)
        return None

    def _run(self, artifact: Artifact, scope: WorldScope) -> None:
        assert self._summarizer is not None
        try:
            summary = self._summarizer.summarize(artifact)
            if summary:
                self._storage.update_artifact(artifact.key, scope, summary=summary)
        except Exception as e:  # noqa: BLE001 - summaries never fail the save
            logger.warning("Summary generation failed for artifact %s: %s", artifact.id, e)
            self._sink.emit(
                DiagnosticEvent(
                    kind=EventKind.SUMMARY_FAILED,
                    timestamp=ensure_utc(self._clock()),
                    attributes={
                        "artifact_id": artifact.id,
                        "world_id": scope.world_id,
                        "error": type(e).__name__,
                        "message": str(e),
                    },
                )
            )
