"""Core type definitions for worldvault."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum


class ArtifactKind(Enum):
    """Closed set of artifact kinds. The kind selects the content slot."""

    TEXT = "text"
    CODE = "code"
    IMAGE = "image"
    SHEET = "sheet"
    SITE = "site"
    ADDRESS = "address"
    PERSON = "person"
    LINK = "link"
    FAQ_ITEM = "faq-item"
    SET = "set"
    SET_DEFINITION = "set-definition"

    @classmethod
    def parse(cls, value: ArtifactKind | str) -> ArtifactKind:
        """Coerce a raw string to a kind.

        Raises:
            ValueError: If the value names no known kind.
        """
        if isinstance(value, cls):
            return value
        return cls(value)


class Environment(Enum):
    """Deployment tier. Only non-production tiers infer worlds from tokens."""

    PRODUCTION = "production"
    LOCAL_DEV = "local-dev"
    SHARED_TEST = "shared-test"

    @property
    def is_production(self) -> bool:
        return self is Environment.PRODUCTION


type Clock = Callable[[], datetime]
"""Zero-argument callable returning the current timezone-aware UTC instant."""


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
