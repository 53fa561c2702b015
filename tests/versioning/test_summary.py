"""Tests for best-effort summaries after a save.

Focus: summaries never fail a save, failures become diagnostics.
"""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from worldvault.adapters import Summarizer
from worldvault.core.types import ArtifactKind
from worldvault.tracing import EventKind
from worldvault.versioning import ArtifactVersionStore, SummaryDispatcher
from worldvault.world.context import WorldScope

WORLD = WorldScope("w1")


class StaticSummarizer:
    def __init__(self, text: str):
        self.text = text
        self.seen: list[str] = []

    def summarize(self, artifact) -> str:
        self.seen.append(artifact.id)
        return self.text


class BrokenSummarizer:
    def summarize(self, artifact) -> str:
        raise TimeoutError("model did not answer")


def test_summarizers_satisfy_protocol():
    assert isinstance(StaticSummarizer("x"), Summarizer)


def test_inline_summary_is_written_to_saved_row(storage, clock, sink):
    summarizer = StaticSummarizer("A shopping list.")
    store = ArtifactVersionStore(storage, summarizer=summarizer, sink=sink, clock=clock)

    row = store.save(ArtifactKind.TEXT, "eggs, milk", "List", "u1", scope=WORLD)

    assert summarizer.seen == [row.id]
    assert store.get_latest(row.id, scope=WORLD).artifact.summary == "A shopping list."
    assert sink.events == ()


def test_failed_summary_does_not_fail_save(storage, clock, sink):
    """The save succeeds and a ``summary.failed`` event names the artifact.

    Why: Summaries come from an external model and may time out at any point.
    """
    store = ArtifactVersionStore(storage, summarizer=BrokenSummarizer(), sink=sink, clock=clock)

    row = store.save(ArtifactKind.TEXT, "eggs, milk", "List", "u1", scope=WORLD)

    assert store.get_latest(row.id, scope=WORLD).artifact.summary == ""
    (event,) = sink.of_kind(EventKind.SUMMARY_FAILED)
    assert event.attributes == {
        "artifact_id": row.id,
        "world_id": "w1",
        "error": "TimeoutError",
        "message": "model did not answer",
    }
    assert event.timestamp == clock.now


def test_empty_summary_is_not_stored(storage, clock):
    store = ArtifactVersionStore(storage, summarizer=StaticSummarizer(""), clock=clock)

    row = store.save(ArtifactKind.TEXT, "x", "T", "u1", scope=WORLD)

    assert store.get_latest(row.id, scope=WORLD).artifact.summary == ""


def test_blank_content_is_not_summarized(storage, clock):
    summarizer = StaticSummarizer("Nothing here.")
    store = ArtifactVersionStore(storage, summarizer=summarizer, clock=clock)

    row = store.save(ArtifactKind.TEXT, "  ", "Draft", "u1", scope=WORLD)

    assert summarizer.seen == []
    assert store.get_latest(row.id, scope=WORLD).artifact.summary == ""


def test_executor_runs_summary_off_the_save_path(storage, clock, sink):
    summarizer = StaticSummarizer("Later.")
    with ThreadPoolExecutor(max_workers=1) as executor:
        store = ArtifactVersionStore(
            storage, summarizer=summarizer, sink=sink, executor=executor, clock=clock
        )
        row = store.save(ArtifactKind.TEXT, "x", "T", "u1", scope=WORLD)

    assert store.get_latest(row.id, scope=WORLD).artifact.summary == "Later."


def test_dispatcher_without_summarizer_is_disabled(storage):
    dispatcher = SummaryDispatcher(storage)

    assert not dispatcher.enabled
    assert dispatcher.dispatch(MagicMock(), WORLD) is None
