"""PublicationTracker: evaluates and mutates publication state.

The tracker owns no rows. It reads the latest row of an artifact, rewrites
its ``publication_state`` and hands it back to storage; chats only get their
``published_until`` column changed.

Usage:
    tracker = PublicationTracker(storage)
    tracker.add_publication("a1", PublicationSource.DIRECT, "a1", scope=scope)
    tracker.publish_chat("c1", "u1", ["a1", "a2"], expires_at=tomorrow, scope=scope)
    tracker.is_published(store.get_latest("a1", scope=scope).artifact)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from worldvault.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from worldvault.core.models import Artifact, Chat, PublicationInfo, PublicationSource
from worldvault.core.types import ArtifactKind, Clock, ensure_utc, utc_now
from worldvault.publication import operations as ops
from worldvault.storage.models import ArtifactQuery

if TYPE_CHECKING:
    from worldvault.storage.protocol import Storage
    from worldvault.world.context import WorldScope

logger = logging.getLogger(__name__)

NEVER_EXPIRES = datetime(9999, 12, 31, tzinfo=UTC)
"""``published_until`` stored for chats published without an expiry."""


@dataclass(frozen=True, slots=True)
class ChatPublication:
    """Outcome of publishing or unpublishing a conversation.

    Attributes:
        chat: Chat row after the change.
        artifacts: Artifacts whose publication state changed.
        missing: Requested artifact ids with no live row in scope.
    """

    chat: Chat
    artifacts: tuple[Artifact, ...] = ()
    missing: tuple[str, ...] = ()


class PublicationTracker:
    """Multi-source, TTL-bounded publication state for artifacts and chats.

    Args:
        storage: Backend holding the rows being published.
        clock: Source of "now" for activation stamps and expiry checks.
    """

    def __init__(self, storage: Storage, clock: Clock = utc_now):
        self._storage = storage
        self._clock = clock

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self._clock())

    # Queries

    def is_published(self, artifact: Artifact, now: datetime | None = None) -> bool:
        return ops.is_published(artifact.publication_state, self._now(now))

    def is_published_as_site(self, artifact: Artifact, now: datetime | None = None) -> bool:
        return ops.is_published_as_site(artifact, self._now(now))

    def is_published_from_source(
        self,
        artifact: Artifact,
        source: PublicationSource,
        source_id: str | None = None,
        now: datetime | None = None,
    ) -> bool:
        return ops.is_published_from_source(
            artifact.publication_state, source, self._now(now), source_id
        )

    def is_chat_published(self, chat: Chat, now: datetime | None = None) -> bool:
        return ops.is_chat_published(chat, self._now(now))

    def active_publications(
        self, artifact: Artifact, now: datetime | None = None
    ) -> list[PublicationInfo]:
        """Entries still in effect, for display and audit. Not a visibility gate."""
        return ops.active_publications(artifact.publication_state, self._now(now))

    # Artifact mutations

    def _latest(
        self, artifact: Artifact | str, scope: WorldScope, include_deleted: bool = False
    ) -> Artifact:
        artifact_id = artifact if isinstance(artifact, str) else artifact.id
        latest = self._storage.latest_artifact(artifact_id, scope)
        if latest is None or (latest.is_deleted and not include_deleted):
            raise NotFoundError("Artifact", artifact_id)
        return latest

    def _entry(
        self, source: PublicationSource, source_id: str, expires_at: datetime | None
    ) -> PublicationInfo:
        return PublicationInfo(
            source=source,
            source_id=source_id,
            published_at=ensure_utc(self._clock()),
            expires_at=ensure_utc(expires_at) if expires_at is not None else None,
        )

    def _write(self, latest: Artifact, state: ops.PublicationState, scope: WorldScope) -> Artifact:
        return self._storage.update_artifact(latest.key, scope, publication_state=state)

    def add_publication(
        self,
        artifact: Artifact | str,
        source: PublicationSource,
        source_id: str,
        expires_at: datetime | None = None,
        *,
        scope: WorldScope,
    ) -> Artifact:
        """Append a publication entry to the artifact's latest row.

        Entries are not deduplicated: the same artifact may be published
        directly and through several conversations at once.

        Raises:
            NotFoundError: If the artifact has no row in scope or is deleted.
        """
        latest = self._latest(artifact, scope)
        entry = self._entry(source, source_id, expires_at)
        return self._write(latest, ops.add_publication(latest.publication_state, entry), scope)

    def revoke_publication(
        self,
        artifact: Artifact | str,
        source: PublicationSource,
        source_id: str,
        *,
        scope: WorldScope,
    ) -> Artifact:
        """Delete every entry matching ``(source, source_id)``.

        Deleted artifacts are accepted.

        Raises:
            NotFoundError: If the artifact has no row in scope.
        """
        latest = self._latest(artifact, scope, include_deleted=True)
        return self._write(
            latest, ops.revoke_publication(latest.publication_state, source, source_id), scope
        )

    # Chats

    def _owned_chat(
        self, chat_id: str, user_id: str, scope: WorldScope, include_deleted: bool = False
    ) -> Chat:
        chat = self._storage.get_chat(chat_id, scope, include_deleted)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        if chat.user_id != user_id:
            raise PermissionDeniedError("chat", chat_id, user_id)
        return chat

    def publish_chat(
        self,
        chat_id: str,
        user_id: str,
        artifact_ids: Iterable[str],
        expires_at: datetime | None = None,
        *,
        scope: WorldScope,
    ) -> ChatPublication:
        """Publish a conversation and every artifact it references.

        Each referenced artifact gets this chat's ``via-conversation`` entry,
        replacing one left by an earlier publish of the same chat.

        Raises:
            NotFoundError: If the chat is not in scope or is deleted.
            PermissionDeniedError: If ``user_id`` does not own the chat.
        """
        with self._storage.transaction():
            self._owned_chat(chat_id, user_id, scope)
            until = ensure_utc(expires_at) if expires_at is not None else NEVER_EXPIRES
            chat = self._storage.update_chat(chat_id, scope, published_until=until)

            entry = self._entry(PublicationSource.VIA_CONVERSATION, chat_id, expires_at)
            updated: list[Artifact] = []
            missing: list[str] = []
            for artifact_id in dict.fromkeys(artifact_ids):
                latest = self._storage.latest_artifact(artifact_id, scope)
                if latest is None or latest.is_deleted:
                    logger.warning(
                        "Chat %s references artifact %s missing or deleted in world %s",
                        chat_id,
                        artifact_id,
                        scope,
                    )
                    missing.append(artifact_id)
                    continue
                state = ops.replace_publication(latest.publication_state, entry)
                updated.append(self._write(latest, state, scope))

        logger.info("Published chat %s with %d artifacts", chat_id, len(updated))
        return ChatPublication(chat=chat, artifacts=tuple(updated), missing=tuple(missing))

    def unpublish_chat(
        self,
        chat_id: str,
        user_id: str,
        artifact_ids: Sequence[str] | None = None,
        *,
        scope: WorldScope,
    ) -> ChatPublication:
        """Clear the chat's publication and drop its entries from artifacts.

        Args:
            chat_id: Conversation to unpublish.
            user_id: Caller; must own the chat.
            artifact_ids: Artifacts to clean; None scans every live artifact in scope.
            scope: World of the chat.

        Raises:
            NotFoundError: If the chat is not in scope.
            PermissionDeniedError: If ``user_id`` does not own the chat.
        """
        with self._storage.transaction():
            self._owned_chat(chat_id, user_id, scope, include_deleted=True)
            chat = self._storage.update_chat(chat_id, scope, published_until=None)

            if artifact_ids is None:
                candidates, _ = self._storage.query_artifacts(ArtifactQuery(), scope)
            else:
                candidates = [
                    latest
                    for artifact_id in dict.fromkeys(artifact_ids)
                    if (latest := self._storage.latest_artifact(artifact_id, scope)) is not None
                ]

            updated: list[Artifact] = []
            for latest in candidates:
                state = ops.revoke_publication(
                    latest.publication_state, PublicationSource.VIA_CONVERSATION, chat_id
                )
                if len(state) != len(latest.publication_state):
                    updated.append(self._write(latest, state, scope))

        logger.info("Unpublished chat %s from %d artifacts", chat_id, len(updated))
        return ChatPublication(chat=chat, artifacts=tuple(updated))

    # Sites

    def _owned_site(
        self, site_id: str, user_id: str, scope: WorldScope, include_deleted: bool = False
    ) -> Artifact:
        latest = self._latest(site_id, scope, include_deleted)
        if latest.kind is not ArtifactKind.SITE:
            raise ValidationError(f"Artifact '{site_id}' is not a site")
        if latest.user_id != user_id:
            raise PermissionDeniedError("artifact", site_id, user_id)
        return latest

    def publish_site(
        self,
        site_id: str,
        user_id: str,
        expires_at: datetime | None = None,
        *,
        scope: WorldScope,
    ) -> Artifact:
        """Publish a site artifact, replacing an earlier ``as-site`` entry.

        Raises:
            NotFoundError: If the artifact is not in scope.
            ValidationError: If the artifact is not a site.
            PermissionDeniedError: If ``user_id`` does not own it.
        """
        latest = self._owned_site(site_id, user_id, scope)
        entry = self._entry(PublicationSource.AS_SITE, site_id, expires_at)
        return self._write(latest, ops.replace_publication(latest.publication_state, entry), scope)

    def unpublish_site(self, site_id: str, user_id: str, *, scope: WorldScope) -> Artifact:
        """Remove the site's own ``as-site`` entry, also from a deleted site."""
        latest = self._owned_site(site_id, user_id, scope, include_deleted=True)
        state = ops.revoke_publication(latest.publication_state, PublicationSource.AS_SITE, site_id)
        return self._write(latest, state, scope)
