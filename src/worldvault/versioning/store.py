"""ArtifactVersionStore: append-only versioned artifacts scoped by world.

Every save inserts a new row; nothing is updated in place except the
soft-delete marker, the title, the derived summary and publication state. "The
artifact" is the newest row of a logical id, and it counts as deleted when
that newest row carries ``deleted_at``.

Usage:
    store = ArtifactVersionStore(LocalStorage())
    scope = context.scope

    first = store.save(ArtifactKind.TEXT, "v1", "Notes", "u1", scope=scope)
    store.save(ArtifactKind.TEXT, "v2", "Notes", "u1", artifact_id=first.id, scope=scope)

    store.get_latest(first.id, scope=scope).total_versions   # 2
    store.get_version(first.id, index=1, scope=scope).artifact.content
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import Executor
from datetime import datetime
from typing import TYPE_CHECKING, Any

from worldvault.core.content import ContentPayload, build_payload
from worldvault.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from worldvault.core.identity import new_id
from worldvault.core.models import Artifact
from worldvault.core.types import ArtifactKind, Clock, ensure_utc, utc_now
from worldvault.storage.allocator import VersionAllocator
from worldvault.storage.models import ArtifactQuery
from worldvault.versioning.models import Page, VersionedArtifact
from worldvault.versioning.summary import SummaryDispatcher

if TYPE_CHECKING:
    from worldvault.adapters.protocol import Summarizer
    from worldvault.storage.protocol import Storage
    from worldvault.tracing import DiagnosticSink
    from worldvault.world.context import WorldScope

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10


class ArtifactVersionStore:
    """Lifecycle of artifact rows: create, version, read, delete, restore, list.

    Args:
        storage: Backend holding artifact rows.
        summarizer: Optional summary producer run after each save.
        sink: Diagnostics sink for best-effort failures.
        executor: Runs summaries asynchronously when given.
        clock: Source of ``created_at`` and ``deleted_at`` instants.
        allocator: Version key allocator (one per store by default).
        default_page_size: Page size when ``get_paged`` gets none.
    """

    def __init__(
        self,
        storage: Storage,
        *,
        summarizer: Summarizer | None = None,
        sink: DiagnosticSink | None = None,
        executor: Executor | None = None,
        clock: Clock = utc_now,
        allocator: VersionAllocator | None = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._storage = storage
        self._clock = clock
        self._allocator = allocator or VersionAllocator(clock)
        self._summaries = SummaryDispatcher(storage, summarizer, sink, executor, clock)
        self._default_page_size = default_page_size

    @property
    def storage(self) -> Storage:
        return self._storage

    # Reads

    def _versions(
        self, artifact_id: str, scope: WorldScope, include_deleted: bool
    ) -> list[Artifact]:
        versions = self._storage.artifact_versions(artifact_id, scope)
        if not versions:
            raise NotFoundError("Artifact", artifact_id)
        if versions[-1].is_deleted and not include_deleted:
            raise NotFoundError("Artifact", artifact_id)
        return versions

    def get_latest(self, artifact_id: str, *, scope: WorldScope) -> VersionedArtifact:
        """Newest row of a live artifact.

        Raises:
            NotFoundError: If no row exists in scope or the artifact is deleted.
        """
        versions = self._versions(artifact_id, scope, include_deleted=False)
        return VersionedArtifact(versions[-1], len(versions), len(versions))

    def get_version(
        self,
        artifact_id: str,
        *,
        index: int | None = None,
        timestamp: datetime | None = None,
        include_deleted: bool = False,
        scope: WorldScope,
    ) -> VersionedArtifact:
        """One historical row, by 1-based index or by exact ``created_at``.

        Args:
            artifact_id: Logical id.
            index: Position in ascending ``created_at`` order, starting at 1.
            timestamp: Exact ``created_at`` of the wanted row (not "as of").
            include_deleted: Allow reading history of a deleted artifact.
            scope: World to read from.

        Raises:
            ValidationError: Unless exactly one of ``index``/``timestamp`` is given.
            NotFoundError: If the artifact or the requested version is absent.
        """
        if (index is None) == (timestamp is None):
            raise ValidationError("Exactly one of index or timestamp is required")
        versions = self._versions(artifact_id, scope, include_deleted)

        if index is not None:
            if not 1 <= index <= len(versions):
                raise NotFoundError("Artifact version", f"{artifact_id}#{index}")
            return VersionedArtifact(versions[index - 1], index, len(versions))

        wanted = ensure_utc(timestamp)  # type: ignore[arg-type]
        for position, row in enumerate(versions, start=1):
            if row.created_at == wanted:
                return VersionedArtifact(row, position, len(versions))
        raise NotFoundError("Artifact version", f"{artifact_id}@{wanted.isoformat()}")

    def list_versions(
        self, artifact_id: str, *, include_deleted: bool = True, scope: WorldScope
    ) -> list[Artifact]:
        """Every row of a logical id, oldest first; empty when none are in scope.

        With ``include_deleted=False`` a deleted artifact lists nothing.
        """
        versions = self._storage.artifact_versions(artifact_id, scope)
        if versions and versions[-1].is_deleted and not include_deleted:
            return []
        return versions

    def version_count(self, artifact_id: str, *, scope: WorldScope) -> int:
        return len(self._storage.artifact_versions(artifact_id, scope))

    # Writes

    def save(
        self,
        kind: ArtifactKind | str,
        content: str | Mapping[str, Any] | ContentPayload,
        title: str,
        user_id: str,
        *,
        artifact_id: str | None = None,
        author_id: str | None = None,
        scope: WorldScope,
    ) -> Artifact:
        """Insert a new version, creating the logical artifact when needed.

        A save never updates in place: with ``artifact_id`` of an existing
        artifact it appends one row, carrying publication state forward.
        Saving a soft-deleted artifact brings it back with the new row.

        Args:
            kind: Artifact kind; selects the content slot.
            content: Raw or typed content; validated for the kind.
            title: Display title.
            user_id: Owner.
            artifact_id: Logical id to version; None creates a fresh id.
            author_id: Human author; None marks machine-authored content.
            scope: World the row is tagged with.

        Returns:
            The inserted row.

        Raises:
            ValidationError: If kind, title or content is invalid.
            PermissionDeniedError: If the artifact exists and ``user_id`` does not own it.
        """
        try:
            kind = ArtifactKind.parse(kind)
        except ValueError as e:
            raise ValidationError(f"Unknown artifact kind '{kind}'") from e
        if not title or not title.strip():
            raise ValidationError("Artifact title is required")
        payload = build_payload(kind, content)

        latest: Artifact | None = None
        if artifact_id is None:
            artifact_id = new_id()
        else:
            latest = self._storage.latest_artifact(artifact_id, scope)
            if latest is not None:
                if latest.user_id != user_id:
                    raise PermissionDeniedError("artifact", artifact_id, user_id)
                self._allocator.observe(latest.key)

        key = self._allocator.allocate(artifact_id)
        row = self._storage.insert_artifact(
            Artifact(
                id=artifact_id,
                created_at=key.created_at,
                sequence=key.sequence,
                title=title.strip(),
                kind=kind,
                content=payload,
                user_id=user_id,
                author_id=author_id,
                publication_state=latest.publication_state if latest else (),
            ),
            scope,
        )
        logger.debug("Saved artifact %s version %d in world %s", row.id, row.sequence, scope)
        self._summaries.dispatch(row, scope)
        return row

    def _owned_latest(self, artifact_id: str, user_id: str, scope: WorldScope) -> Artifact:
        latest = self._storage.latest_artifact(artifact_id, scope)
        if latest is None:
            raise NotFoundError("Artifact", artifact_id)
        if latest.user_id != user_id:
            raise PermissionDeniedError("artifact", artifact_id, user_id)
        return latest

    def soft_delete(self, artifact_id: str, user_id: str, *, scope: WorldScope) -> Artifact:
        """Mark the newest row deleted; history rows stay untouched.

        Deleting an already-deleted artifact returns it unchanged.

        Raises:
            NotFoundError: If the artifact has no row in scope.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        latest = self._owned_latest(artifact_id, user_id, scope)
        if latest.is_deleted:
            return latest
        now = ensure_utc(self._clock())
        return self._storage.update_artifact(latest.key, scope, deleted_at=now)

    def restore(self, artifact_id: str, user_id: str, *, scope: WorldScope) -> Artifact:
        """Clear the deletion marker on the newest row. No-op when not deleted.

        Raises:
            NotFoundError: If the artifact has no row in scope.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        latest = self._owned_latest(artifact_id, user_id, scope)
        if not latest.is_deleted:
            return latest
        return self._storage.update_artifact(latest.key, scope, deleted_at=None)

    def rename(self, artifact_id: str, title: str, user_id: str, *, scope: WorldScope) -> Artifact:
        """Set the title on every version row of a live artifact.

        Returns:
            The latest row after the change.

        Raises:
            ValidationError: If the title is blank.
            NotFoundError: If the artifact has no row in scope or is deleted.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        if not title or not title.strip():
            raise ValidationError("Artifact title is required")
        latest = self._owned_latest(artifact_id, user_id, scope)
        if latest.is_deleted:
            raise NotFoundError("Artifact", artifact_id)
        with self._storage.transaction():
            for row in self._storage.artifact_versions(artifact_id, scope):
                latest = self._storage.update_artifact(row.key, scope, title=title.strip())
        logger.info("Renamed artifact %s in world %s", artifact_id, scope)
        return latest

    def discard_versions_after(
        self, artifact_id: str, timestamp: datetime, user_id: str, *, scope: WorldScope
    ) -> int:
        """Revert to the version at ``timestamp`` by dropping newer rows.

        Publication state and the deletion marker move to the new latest row.

        Returns:
            Number of rows removed.

        Raises:
            NotFoundError: If the artifact has no row in scope.
            PermissionDeniedError: If ``user_id`` does not own it.
            ValidationError: If no version at or before ``timestamp`` exists.
        """
        cutoff = ensure_utc(timestamp)
        latest = self._owned_latest(artifact_id, user_id, scope)
        versions = self._storage.artifact_versions(artifact_id, scope)
        kept = [row for row in versions if row.created_at <= cutoff]
        if not kept:
            raise ValidationError(f"No version of artifact '{artifact_id}' at or before {cutoff}")
        if len(kept) == len(versions):
            return 0

        with self._storage.transaction():
            removed = self._storage.delete_artifact_versions(artifact_id, scope, cutoff)
            self._storage.update_artifact(
                kept[-1].key,
                scope,
                publication_state=latest.publication_state,
                deleted_at=latest.deleted_at,
            )
        self._allocator.forget(artifact_id)
        logger.info("Discarded %d versions of artifact %s after %s", removed, artifact_id, cutoff)
        return removed

    # Listings

    def get_paged(
        self,
        user_id: str | None,
        *,
        page: int = 1,
        page_size: int | None = None,
        search: str | None = None,
        kind: ArtifactKind | str | None = None,
        group_by_versions: bool = True,
        scope: WorldScope,
    ) -> Page[Artifact]:
        """Listing page, newest first. Empty results are an empty page.

        With ``group_by_versions`` each logical id appears at most once (its
        latest row); without it every version row of a live artifact is a
        separate result.

        Raises:
            ValidationError: If ``page`` or ``page_size`` is not positive or the kind is unknown.
        """
        size = page_size if page_size is not None else self._default_page_size
        if page < 1 or size < 1:
            raise ValidationError("page and page_size must be positive")
        try:
            parsed_kind = ArtifactKind.parse(kind) if kind is not None else None
        except ValueError as e:
            raise ValidationError(f"Unknown artifact kind '{kind}'") from e

        query = ArtifactQuery(
            user_id=user_id,
            kind=parsed_kind,
            search=search.strip() if search and search.strip() else None,
            group_by_versions=group_by_versions,
            offset=(page - 1) * size,
            limit=size,
        )
        rows, total = self._storage.query_artifacts(query, scope)
        return Page(data=rows, total_count=total, page=page, page_size=size)

    def get_recent(
        self,
        user_id: str | None,
        *,
        limit: int = 5,
        kind: ArtifactKind | str | None = None,
        scope: WorldScope,
    ) -> list[Artifact]:
        """Most recently saved live artifacts, one row per logical id."""
        return self.get_paged(user_id, page=1, page_size=limit, kind=kind, scope=scope).data
