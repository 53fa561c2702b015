"""End-to-end isolation between worlds and production.

Focus: no operation reaches rows of another world, and every scoped storage
call carries an explicit WorldScope.
"""

import inspect

import pytest

from worldvault.chats import ChatStore
from worldvault.core.errors import NotFoundError, PermissionDeniedError
from worldvault.core.models import Chat, PublicationSource
from worldvault.core.types import ArtifactKind, Environment
from worldvault.publication.tracker import PublicationTracker
from worldvault.storage.local import LocalStorage
from worldvault.storage.protocol import Storage
from worldvault.versioning import ArtifactVersionStore
from worldvault.world import ScopedContent, WorldContext, can_access_record
from worldvault.world.context import WorldScope


class ScopeRecordingStorage:
    """Wraps a storage and asserts every scoped call receives a WorldScope."""

    def __init__(self, inner: Storage):
        self._inner = inner
        self.scopes: list[WorldScope] = []

    def __getattr__(self, name):
        attribute = getattr(self._inner, name)
        if not callable(attribute):
            return attribute
        parameters = inspect.signature(getattr(Storage, name)).parameters
        if "scope" not in parameters:
            return attribute
        position = list(parameters).index("scope") - 1

        def call(*args, **kwargs):
            scope = kwargs["scope"] if "scope" in kwargs else args[position]
            assert isinstance(scope, WorldScope), f"{name} called without a WorldScope"
            self.scopes.append(scope)
            return attribute(*args, **kwargs)

        return call


def test_world_scope_matches_exactly():
    assert WorldScope("w1").matches("w1")
    assert not WorldScope("w1").matches("w10")
    assert not WorldScope("w1").matches(None)
    assert WorldScope.PRODUCTION.matches(None)
    assert not WorldScope.PRODUCTION.matches("w1")
    assert str(WorldScope.PRODUCTION) == "production"
    assert str(WorldScope("w1")) == "w1"


def test_context_helpers(clock):
    test_context = WorldContext("w1", True, Environment.LOCAL_DEV)
    production = WorldContext.production(Environment.PRODUCTION)

    assert test_context.isolation_prefix == "test-w1"
    assert production.isolation_prefix is None
    assert can_access_record("w1", test_context)
    assert not can_access_record(None, test_context)
    assert production.can_access_record(None)


def test_worlds_and_production_never_see_each_other(storage, clock, world_a, world_b):
    """A row saved under one scope is invisible under every other scope.

    Why: This is the isolation guarantee test worlds exist for.
    """
    store = ArtifactVersionStore(storage, clock=clock)
    tracker = PublicationTracker(storage, clock)
    prod = WorldScope.PRODUCTION

    in_a = store.save(ArtifactKind.TEXT, "secret A", "A", "u1", scope=world_a)
    in_prod = store.save(ArtifactKind.TEXT, "prod", "P", "u1", scope=prod)

    for scope in (world_b, prod):
        with pytest.raises(NotFoundError):
            store.get_latest(in_a.id, scope=scope)
        with pytest.raises(NotFoundError):
            tracker.add_publication(in_a.id, PublicationSource.DIRECT, in_a.id, scope=scope)
        assert store.list_versions(in_a.id, scope=scope) == []
    with pytest.raises(NotFoundError):
        store.soft_delete(in_prod.id, "u1", scope=world_a)

    assert [row.id for row in store.get_paged("u1", scope=world_a).data] == [in_a.id]
    assert [row.id for row in store.get_paged("u1", scope=prod).data] == [in_prod.id]
    assert store.get_paged("u1", scope=world_b).total_count == 0


def test_every_scoped_storage_call_carries_a_scope(clock):
    recording = ScopeRecordingStorage(LocalStorage())
    store = ArtifactVersionStore(recording, clock=clock)
    tracker = PublicationTracker(recording, clock)
    scope = WorldScope("w1")
    recording.insert_chat(Chat("c1", clock.now, "Chat", "u1"), scope)

    row = store.save(ArtifactKind.TEXT, "x", "T", "u1", scope=scope)
    clock.advance(seconds=1)
    store.save(ArtifactKind.TEXT, "y", "T", "u1", artifact_id=row.id, scope=scope)
    store.get_version(row.id, index=1, scope=scope)
    store.get_paged("u1", scope=scope)
    tracker.publish_chat("c1", "u1", [row.id], scope=scope)
    tracker.unpublish_chat("c1", "u1", scope=scope)
    store.soft_delete(row.id, "u1", scope=scope)
    store.restore(row.id, "u1", scope=scope)
    store.rename(row.id, "Renamed", "u1", scope=scope)
    chats = ChatStore(recording, clock=clock)
    chats.list_chats("u1", scope=scope)
    chats.soft_delete("c1", "u1", scope=scope)
    chats.restore("c1", "u1", scope=scope)
    store.discard_versions_after(row.id, row.created_at, "u1", scope=scope)

    assert len(recording.scopes) > 10
    assert set(recording.scopes) == {scope}


def test_scoped_content_binds_every_call_to_its_world(storage, clock, world_a):
    store = ArtifactVersionStore(storage, clock=clock)
    tracker = PublicationTracker(storage, clock)
    content = ScopedContent(WorldContext("world-a", True, Environment.LOCAL_DEV), store, tracker)
    production = ScopedContent(WorldContext.production(Environment.LOCAL_DEV), store, tracker)

    saved = content.save_artifact("text", "# Plan", "Plan", owner="u1")
    clock.advance(seconds=1)
    content.save_artifact("text", "# Plan v2", "Plan", owner="u1", artifact_id=saved.id)

    assert saved.world_id == "world-a"
    assert content.scope == world_a
    assert content.get_artifact(saved.id).total_versions == 2
    assert content.get_artifact(saved.id, version=1).artifact.content.text == "# Plan"
    assert content.get_artifact(saved.id, version=saved.created_at).version_index == 1
    assert content.list_artifacts("u1", search="plan").total_count == 1
    assert production.list_artifacts("u1").total_count == 0
    with pytest.raises(NotFoundError):
        production.get_artifact(saved.id)

    published = content.publish(saved, "u1", PublicationSource.DIRECT, saved.id)
    assert tracker.is_published(published)
    unpublished = content.unpublish(saved, "u1", PublicationSource.DIRECT, saved.id)
    assert not tracker.is_published(unpublished)

    assert content.rename_artifact(saved.id, "Roadmap", "u1").title == "Roadmap"
    assert content.get_artifact(saved.id, version=1).artifact.title == "Roadmap"

    assert content.delete_artifact(saved.id, "u1").is_deleted
    assert not content.restore_artifact(saved.id, "u1").is_deleted


def test_scoped_content_publishes_chats(storage, clock, world_a):
    store = ArtifactVersionStore(storage, clock=clock)
    tracker = PublicationTracker(storage, clock)
    content = ScopedContent(WorldContext("world-a", True, Environment.LOCAL_DEV), store, tracker)
    chat = storage.insert_chat(Chat("c1", clock.now, "Chat", "u1"), world_a)

    published = content.publish(chat, "u1", PublicationSource.VIA_CONVERSATION, chat.id)
    assert tracker.is_chat_published(published)

    unpublished = content.unpublish(chat, "u1", PublicationSource.VIA_CONVERSATION, chat.id)
    assert not tracker.is_chat_published(unpublished)


def test_scoped_publish_checks_the_caller_not_the_owner_field(storage, clock, world_a):
    """Publishing through the scoped surface is authorized against the caller.

    Why: Passing the target's own owner id would let anyone publish anything.
    """
    store = ArtifactVersionStore(storage, clock=clock)
    tracker = PublicationTracker(storage, clock)
    content = ScopedContent(WorldContext("world-a", True, Environment.LOCAL_DEV), store, tracker)
    chat = storage.insert_chat(Chat("c1", clock.now, "Chat", "u1"), world_a)
    saved = content.save_artifact("text", "# Plan", "Plan", owner="u1")

    with pytest.raises(PermissionDeniedError):
        content.publish(chat, "intruder", PublicationSource.VIA_CONVERSATION, chat.id)
    with pytest.raises(PermissionDeniedError):
        content.unpublish(chat, "intruder", PublicationSource.VIA_CONVERSATION, chat.id)
    with pytest.raises(PermissionDeniedError):
        content.publish(saved, "intruder", PublicationSource.DIRECT, saved.id)

    assert not tracker.is_chat_published(storage.get_chat("c1", world_a))
    assert not tracker.is_published(store.get_latest(saved.id, scope=world_a).artifact)


def test_scoped_chat_lifecycle(storage, clock, world_a):
    store = ArtifactVersionStore(storage, clock=clock)
    tracker = PublicationTracker(storage, clock)
    chats = ChatStore(storage, clock=clock)
    content = ScopedContent(
        WorldContext("world-a", True, Environment.LOCAL_DEV), store, tracker, chats
    )
    production = ScopedContent(
        WorldContext.production(Environment.LOCAL_DEV), store, tracker, chats
    )

    chat = content.create_chat("u1", "Trip", chat_id="c1")
    clock.advance(seconds=1)
    content.create_chat("u1", "Budget", chat_id="c2")

    assert chat.world_id == "world-a"
    assert [row.id for row in content.list_chats("u1").chats] == ["c2", "c1"]
    assert production.list_chats("u1").chats == []
    with pytest.raises(NotFoundError):
        production.get_chat("c1")

    assert content.rename_chat("c1", "Trip to Rome", "u1").title == "Trip to Rome"
    assert content.delete_chat("c1", "u1").is_deleted
    assert [row.id for row in content.list_chats("u1").chats] == ["c2"]
    with pytest.raises(NotFoundError):
        content.get_chat("c1")
    assert content.restore_chat("c1", "u1").title == "Trip to Rome"
    assert content.get_chat("c1").id == "c1"
