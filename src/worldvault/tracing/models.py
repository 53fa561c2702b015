"""Data models for diagnostic events.

Events are storage-agnostic and serialize to plain JSON dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from worldvault.core.types import ensure_utc


class EventKind(Enum):
    """Closed set of diagnostic event kinds."""

    WORLD_RESOLVED = "world.resolved"
    WORLD_FALLBACK = "world.fallback"
    WORLD_TOKEN_REJECTED = "world.token_rejected"
    WORLD_USAGE_BUMP_FAILED = "world.usage_bump_failed"
    SUMMARY_FAILED = "summary.failed"
    SEED_CATEGORY_COMMITTED = "seed.category_committed"
    SEED_CATEGORY_FAILED = "seed.category_failed"


@dataclass(slots=True)
class DiagnosticEvent:
    """One structured diagnostic.

    Attributes:
        kind: What happened.
        timestamp: When it happened (UTC).
        attributes: JSON-serializable details, e.g. ``{"world_id": "w1"}``.

    Example:
        event = DiagnosticEvent(
            kind=EventKind.WORLD_FALLBACK,
            timestamp=now,
            attributes={"world_id": "gone", "reason": "not_found"},
        )
    """

    kind: EventKind
    timestamp: datetime
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "kind": self.kind.value,
            "timestamp": self.timestamp.isoformat(),
            "attributes": self.attributes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiagnosticEvent:
        """Create from dictionary (for deserialization)."""
        return cls(
            kind=EventKind(data["kind"]),
            timestamp=ensure_utc(datetime.fromisoformat(data["timestamp"])),
            attributes=data.get("attributes", {}),
        )
