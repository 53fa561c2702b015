"""Artifact version identity.

Usage:
    key = VersionKey(logical_id="a1", created_at=now, sequence=3)
    fresh = new_id()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime


def new_id() -> str:
    """Fresh opaque identifier for users, chats and logical artifacts."""
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True, order=True)
class VersionKey:
    """Position of one artifact row in the version arena.

    Rows sharing ``logical_id`` are versions of one artifact. Ordering is by
    ``(logical_id, created_at, sequence)``; ``sequence`` breaks timestamp ties.
    """

    logical_id: str
    created_at: datetime
    sequence: int = 1

    def sort_key(self) -> tuple[datetime, int]:
        """Ordering key within one logical id."""
        return (self.created_at, self.sequence)
