"""Resolved world values threaded through every storage-touching call.

``WorldScope`` is the only thing storage sees: a world id or ``None`` for
production. ``WorldContext`` is what the resolver returns to callers and
carries the scope plus the resolution details.

Usage:
    scope = WorldScope("demo-1")
    scope.matches(row.world_id)       # exact tag match, never a prefix
    record = scope.tag(record)        # stamp world_id before insert
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from worldvault.core.models import WorldMeta
from worldvault.core.types import Environment

R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class WorldScope:
    """Isolation filter: ``world_id is None`` selects production rows only."""

    world_id: str | None = None

    PRODUCTION: ClassVar[WorldScope]

    @property
    def is_production(self) -> bool:
        return self.world_id is None

    def matches(self, record_world_id: str | None) -> bool:
        """True iff a row tagged ``record_world_id`` belongs to this scope."""
        return record_world_id == self.world_id

    def tag(self, record: R) -> R:
        """Copy of a record dataclass stamped with this scope's world id."""
        if getattr(record, "world_id", self.world_id) == self.world_id:
            return record
        return dataclasses.replace(record, world_id=self.world_id)  # type: ignore[type-var]

    def tag_mapping(self, values: dict[str, Any]) -> dict[str, Any]:
        """Mapping variant of ``tag`` for raw column dicts."""
        return {**values, "world_id": self.world_id}

    def __str__(self) -> str:
        return self.world_id or "production"


WorldScope.PRODUCTION = WorldScope(None)


@dataclass(frozen=True, slots=True)
class WorldContext:
    """Outcome of one world resolution.

    Attributes:
        world_id: Resolved world, or None for production.
        is_test_mode: True iff a world was found and is in effect.
        environment: Deployment tier the resolution ran under.
        meta: World metadata when a world was resolved.
    """

    world_id: str | None
    is_test_mode: bool
    environment: Environment
    meta: WorldMeta | None = None

    @classmethod
    def production(cls, environment: Environment) -> WorldContext:
        return cls(world_id=None, is_test_mode=False, environment=environment)

    @property
    def scope(self) -> WorldScope:
        if self.world_id is None:
            return WorldScope.PRODUCTION
        return WorldScope(self.world_id)

    @property
    def isolation_prefix(self) -> str | None:
        """Key prefix for world-owned external objects such as blobs."""
        return f"test-{self.world_id}" if self.world_id else None

    def can_access_record(self, record_world_id: str | None) -> bool:
        return self.scope.matches(record_world_id)


def can_access_record(record_world_id: str | None, context: WorldContext) -> bool:
    """Whether a row tagged ``record_world_id`` is visible under ``context``."""
    return context.can_access_record(record_world_id)
