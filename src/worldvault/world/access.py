"""World-bound content surface for collaborators (AI tools, UI handlers).

Every call is scoped to the context the access object was created with, so
callers never pass a world themselves and cannot forget the filter.

Usage:
    context = resolver.resolve(cookies=cookie_header)
    content = ScopedContent(context, store, tracker)

    saved = content.save_artifact("text", "# Plan", "Plan", owner="u1")
    content.get_artifact(saved.id, version=1)
    content.list_artifacts("u1", page=1, search="plan")
    content.publish(saved, "u1", PublicationSource.DIRECT, saved.id)
    content.list_chats("u1", limit=20)
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from worldvault.chats import ChatPage, ChatStore
from worldvault.chats.store import DEFAULT_CHAT_LIMIT
from worldvault.core.errors import PermissionDeniedError
from worldvault.core.models import Artifact, Chat, PublicationSource
from worldvault.core.types import ArtifactKind

if TYPE_CHECKING:
    from worldvault.core.content import ContentPayload
    from worldvault.publication.tracker import PublicationTracker
    from worldvault.versioning.models import Page, VersionedArtifact
    from worldvault.versioning.store import ArtifactVersionStore
    from worldvault.world.context import WorldContext, WorldScope


class ScopedContent:
    """Artifact, chat and publication operations bound to one resolved world.

    Args:
        context: Resolved world for every call made through this object.
        store: Artifact version store.
        tracker: Publication tracker sharing the store's storage.
        chats: Chat store; defaults to one over the store's storage.
    """

    def __init__(
        self,
        context: WorldContext,
        store: ArtifactVersionStore,
        tracker: PublicationTracker,
        chats: ChatStore | None = None,
    ):
        self._context = context
        self._store = store
        self._tracker = tracker
        self._chats = chats or ChatStore(store.storage)

    @property
    def context(self) -> WorldContext:
        return self._context

    @property
    def scope(self) -> WorldScope:
        return self._context.scope

    def get_artifact(
        self, artifact_id: str, version: int | datetime | None = None
    ) -> VersionedArtifact:
        """Latest version, or a specific one by 1-based index or exact timestamp."""
        if version is None:
            return self._store.get_latest(artifact_id, scope=self.scope)
        if isinstance(version, datetime):
            return self._store.get_version(artifact_id, timestamp=version, scope=self.scope)
        return self._store.get_version(artifact_id, index=version, scope=self.scope)

    def save_artifact(
        self,
        kind: ArtifactKind | str,
        content: str | Mapping[str, Any] | ContentPayload,
        title: str,
        owner: str,
        *,
        artifact_id: str | None = None,
        author_id: str | None = None,
    ) -> Artifact:
        return self._store.save(
            kind,
            content,
            title,
            owner,
            artifact_id=artifact_id,
            author_id=author_id,
            scope=self.scope,
        )

    def list_artifacts(
        self,
        owner: str | None,
        page: int = 1,
        *,
        page_size: int | None = None,
        search: str | None = None,
        kind: ArtifactKind | str | None = None,
        group_by_versions: bool = True,
    ) -> Page[Artifact]:
        return self._store.get_paged(
            owner,
            page=page,
            page_size=page_size,
            search=search,
            kind=kind,
            group_by_versions=group_by_versions,
            scope=self.scope,
        )

    def delete_artifact(self, artifact_id: str, owner: str) -> Artifact:
        return self._store.soft_delete(artifact_id, owner, scope=self.scope)

    def restore_artifact(self, artifact_id: str, owner: str) -> Artifact:
        return self._store.restore(artifact_id, owner, scope=self.scope)

    def rename_artifact(self, artifact_id: str, title: str, owner: str) -> Artifact:
        return self._store.rename(artifact_id, title, owner, scope=self.scope)

    # Chats

    def create_chat(self, owner: str, title: str, *, chat_id: str | None = None) -> Chat:
        return self._chats.create_chat(owner, title, chat_id=chat_id, scope=self.scope)

    def get_chat(self, chat_id: str) -> Chat:
        return self._chats.get_chat(chat_id, scope=self.scope)

    def list_chats(
        self,
        owner: str,
        *,
        limit: int = DEFAULT_CHAT_LIMIT,
        starting_after: datetime | None = None,
        ending_before: datetime | None = None,
    ) -> ChatPage:
        return self._chats.list_chats(
            owner,
            limit=limit,
            starting_after=starting_after,
            ending_before=ending_before,
            scope=self.scope,
        )

    def rename_chat(self, chat_id: str, title: str, owner: str) -> Chat:
        return self._chats.rename(chat_id, title, owner, scope=self.scope)

    def delete_chat(self, chat_id: str, owner: str) -> Chat:
        return self._chats.soft_delete(chat_id, owner, scope=self.scope)

    def restore_chat(self, chat_id: str, owner: str) -> Chat:
        return self._chats.restore(chat_id, owner, scope=self.scope)

    # Publication

    def publish(
        self,
        target: Artifact | Chat,
        user_id: str,
        source: PublicationSource,
        source_id: str,
        expires_at: datetime | None = None,
    ) -> Artifact | Chat:
        """Grant publication to an artifact, or publish a chat on its own.

        Chats use the single ``published_until`` value, so ``source`` and
        ``source_id`` only matter for artifacts.

        Raises:
            PermissionDeniedError: If ``user_id`` does not own ``target``.
        """
        if isinstance(target, Chat):
            return self._tracker.publish_chat(
                target.id, user_id, (), expires_at, scope=self.scope
            ).chat
        _check_owner(target, user_id)
        return self._tracker.add_publication(
            target, source, source_id, expires_at, scope=self.scope
        )

    def unpublish(
        self,
        target: Artifact | Chat,
        user_id: str,
        source: PublicationSource,
        source_id: str,
    ) -> Artifact | Chat:
        """Reverse of ``publish``, with the same ownership check."""
        if isinstance(target, Chat):
            return self._tracker.unpublish_chat(target.id, user_id, (), scope=self.scope).chat
        _check_owner(target, user_id)
        return self._tracker.revoke_publication(target, source, source_id, scope=self.scope)


def _check_owner(artifact: Artifact, user_id: str) -> None:
    if artifact.user_id != user_id:
        raise PermissionDeniedError("artifact", artifact.id, user_id)
