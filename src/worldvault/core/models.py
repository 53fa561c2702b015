"""Domain records shared by storage, services and the seed pipeline.

Records are immutable snapshots of stored rows. Services derive changed
copies with ``dataclasses.replace`` and hand them back to storage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from worldvault.core.content.models import ContentPayload
from worldvault.core.identity import VersionKey
from worldvault.core.types import ArtifactKind, Environment, ensure_utc


class PublicationSource(Enum):
    """What caused an artifact to become public."""

    DIRECT = "direct"
    VIA_CONVERSATION = "via-conversation"
    AS_SITE = "as-site"

    @classmethod
    def parse(cls, value: PublicationSource | str) -> PublicationSource:
        """Coerce raw values, accepting the legacy ``chat``/``site`` tags."""
        if isinstance(value, cls):
            return value
        legacy = {"chat": cls.VIA_CONVERSATION, "site": cls.AS_SITE}
        if value in legacy:
            return legacy[value]
        return cls(value)


@dataclass(frozen=True, slots=True)
class PublicationInfo:
    """One publication grant.

    Attributes:
        source: What caused publication.
        source_id: Causing entity (conversation id, site id, or the artifact's own id).
        published_at: Activation instant.
        expires_at: Expiry instant; None never expires.
    """

    source: PublicationSource
    source_id: str
    published_at: datetime
    expires_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire shape."""
        return {
            "source": self.source.value,
            "sourceId": self.source_id,
            "publishedAt": self.published_at.isoformat(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicationInfo:
        """Create from the JSON wire shape."""
        expires = data.get("expiresAt")
        return cls(
            source=PublicationSource.parse(data["source"]),
            source_id=data["sourceId"],
            published_at=ensure_utc(datetime.fromisoformat(data["publishedAt"])),
            expires_at=ensure_utc(datetime.fromisoformat(expires)) if expires else None,
        )


@dataclass(frozen=True, slots=True)
class Artifact:
    """One version row of a logical artifact.

    ``created_at`` doubles as the version key; ``sequence`` only breaks ties.
    """

    id: str
    created_at: datetime
    title: str
    kind: ArtifactKind
    content: ContentPayload
    user_id: str
    author_id: str | None = None
    summary: str = ""
    deleted_at: datetime | None = None
    publication_state: tuple[PublicationInfo, ...] = ()
    world_id: str | None = None
    sequence: int = 1

    @property
    def key(self) -> VersionKey:
        return VersionKey(self.id, self.created_at, self.sequence)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_ai_authored(self) -> bool:
        """Machine authored rows carry no author."""
        return self.author_id is None


@dataclass(frozen=True, slots=True)
class Chat:
    """Conversation with the single-value publication model."""

    id: str
    created_at: datetime
    title: str
    user_id: str
    published_until: datetime | None = None
    deleted_at: datetime | None = None
    world_id: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True, slots=True)
class User:
    """Account owning artifacts and chats."""

    id: str
    email: str
    name: str | None = None
    world_id: str | None = None


@dataclass(frozen=True, slots=True)
class WorldMeta:
    """Description of one isolated world.

    ``users``/``artifacts``/``chats`` are the embedded definitions used to
    hydrate the world; the live rows are tagged with ``world_id == id``.
    """

    id: str
    name: str
    environment: Environment
    description: str = ""
    category: str = "GENERAL"
    tags: tuple[str, ...] = ()
    users: tuple[dict[str, Any], ...] = ()
    artifacts: tuple[dict[str, Any], ...] = ()
    chats: tuple[dict[str, Any], ...] = ()
    settings: dict[str, Any] = field(default_factory=dict)
    is_template: bool = False
    is_active: bool = True
    auto_cleanup: bool = True
    cleanup_after_hours: int = 24
    usage_count: int = 0
    last_used_at: datetime | None = None
    version: str = "1.0.0"
    isolation_level: str = "FULL"
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
