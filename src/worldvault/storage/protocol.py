"""Storage protocol for swappable backends.

The storage layer abstracts the relational store, enabling:
- Local in-memory (default, tests and prototyping)
- SQL via SQLAlchemy (SQLite, Postgres)

Every method that reads or writes world-tagged rows takes an explicit
``WorldScope``. The seed-pipeline helpers at the bottom are the documented
exception: they take a world id, or read across worlds by id.

Usage:
    storage = LocalStorage()
    store = ArtifactVersionStore(storage)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from worldvault.core.identity import VersionKey
from worldvault.core.models import Artifact, Chat, User, WorldMeta
from worldvault.core.types import Environment
from worldvault.storage.models import ArtifactQuery, EntityType
from worldvault.world.context import WorldScope


@runtime_checkable
class Storage(Protocol):
    """Abstract storage interface. Implementations handle actual data."""

    def transaction(self) -> AbstractContextManager[None]:
        """All-or-nothing unit of work. Nested calls join the outer one."""
        ...

    # Artifacts

    def insert_artifact(self, artifact: Artifact, scope: WorldScope) -> Artifact:
        """Append one version row tagged with ``scope``. Never updates."""
        ...

    def artifact_versions(self, artifact_id: str, scope: WorldScope) -> list[Artifact]:
        """All rows of a logical id in scope, ascending ``(created_at, sequence)``."""
        ...

    def latest_artifact(self, artifact_id: str, scope: WorldScope) -> Artifact | None:
        """Latest row of a logical id in scope, deleted or not."""
        ...

    def update_artifact(self, key: VersionKey, scope: WorldScope, **changes: Any) -> Artifact:
        """Change mutable columns (deleted_at, summary, publication_state, title) of one row.

        Raises:
            NotFoundError: If the row is not in scope.
        """
        ...

    def query_artifacts(
        self, query: ArtifactQuery, scope: WorldScope
    ) -> tuple[list[Artifact], int]:
        """Listing page and total match count. See ``ArtifactQuery``."""
        ...

    def delete_artifact_versions(
        self, artifact_id: str, scope: WorldScope, after: datetime
    ) -> int:
        """Remove rows of a logical id created strictly after ``after``."""
        ...

    # Chats and users

    def insert_chat(self, chat: Chat, scope: WorldScope) -> Chat:
        ...

    def get_chat(
        self, chat_id: str, scope: WorldScope, include_deleted: bool = False
    ) -> Chat | None:
        """Chat in scope; soft-deleted chats only when ``include_deleted``."""
        ...

    def update_chat(self, chat_id: str, scope: WorldScope, **changes: Any) -> Chat:
        """Raises NotFoundError if the chat is not in scope. Deleted chats count."""
        ...

    def query_chats(
        self,
        user_id: str,
        scope: WorldScope,
        *,
        newer_than: datetime | None = None,
        older_than: datetime | None = None,
        limit: int | None = None,
    ) -> list[Chat]:
        """Live chats of a user in scope, newest first.

        ``newer_than`` and ``older_than`` keep chats created strictly after or
        strictly before the given instant.
        """
        ...

    def insert_user(self, user: User, scope: WorldScope) -> User:
        ...

    def get_user(self, user_id: str, scope: WorldScope) -> User | None:
        ...

    # World metadata (not world-tagged)

    def put_world(self, meta: WorldMeta) -> WorldMeta:
        """Insert or replace a world metadata row."""
        ...

    def get_world(self, world_id: str) -> WorldMeta | None:
        ...

    def list_worlds(
        self,
        environment: Environment | None = None,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorldMeta]:
        """Worlds ordered by name."""
        ...

    def delete_world(self, world_id: str) -> bool:
        """Remove metadata only. Returns True if it existed."""
        ...

    def bump_world_usage(self, world_id: str, at: datetime) -> None:
        """Increment ``usage_count`` and set ``last_used_at``."""
        ...

    # Seed pipeline helpers (explicit world id, documented cross-world reads)

    def find_existing_ids(self, entity: EntityType, ids: Iterable[str]) -> set[str]:
        """Ids already present in any world. Used for collision analysis."""
        ...

    def locate_ids(self, entity: EntityType, ids: Iterable[str]) -> dict[str, set[str | None]]:
        """Map each present id to the world ids holding it (None is production)."""
        ...

    def delete_entities(self, entity: EntityType, ids: Iterable[str], scope: WorldScope) -> int:
        """Delete rows by id in ``scope`` only; for artifacts every version goes."""
        ...

    def world_rows(self, entity: EntityType, world_id: str) -> Iterator[Any]:
        """Every row tagged ``world_id``; artifacts include all versions."""
        ...

    def purge_world(self, world_id: str) -> dict[str, int]:
        """Delete all rows tagged ``world_id``. Returns per-table counts."""
        ...

    def count_world(self, world_id: str) -> dict[str, int]:
        """Per-table row counts tagged ``world_id``."""
        ...

    def snapshot(self) -> bytes:
        """Serialize entire storage state."""
        ...

    def restore(self, data: bytes) -> None:
        """Restore from snapshot."""
        ...
