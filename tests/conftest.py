"""Shared test fixtures."""

import sys

import pytest

# Ensure src is in path
sys.path.insert(0, "src")

from datetime import UTC, datetime, timedelta

from worldvault.core.types import Environment
from worldvault.storage.local import LocalStorage
from worldvault.storage.sql import SqlStorage
from worldvault.tracing import InMemoryDiagnosticSink
from worldvault.world.context import WorldScope
from worldvault.world.registry import WorldRegistry

START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture(params=["local", "sql"])
def storage(request: pytest.FixtureRequest) -> LocalStorage | SqlStorage:
    """Each storage backend in turn."""
    if request.param == "local":
        return LocalStorage()
    return SqlStorage.in_memory()


@pytest.fixture
def sink() -> InMemoryDiagnosticSink:
    return InMemoryDiagnosticSink()


@pytest.fixture
def registry(storage: LocalStorage | SqlStorage, clock: ManualClock) -> WorldRegistry:
    return WorldRegistry(storage, clock)


@pytest.fixture
def world_a(registry: WorldRegistry) -> WorldScope:
    registry.create_world("World A", Environment.LOCAL_DEV, world_id="world-a")
    return WorldScope("world-a")


@pytest.fixture
def world_b(registry: WorldRegistry) -> WorldScope:
    registry.create_world("World B", Environment.LOCAL_DEV, world_id="world-b")
    return WorldScope("world-b")
