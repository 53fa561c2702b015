"""Local in-memory storage implementation.

Simple dict-based storage suitable for single-process use and testing.
Records are immutable, so transactions roll back by restoring shallow copies
of the tables.

Usage:
    storage = LocalStorage()
    store = ArtifactVersionStore(storage)
"""

from __future__ import annotations

import dataclasses
import pickle  # nosec B403 - Used only for local testing/prototyping, not production
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from worldvault.core.content import searchable_text
from worldvault.core.errors import NotFoundError
from worldvault.core.identity import VersionKey
from worldvault.core.models import Artifact, Chat, User, WorldMeta
from worldvault.core.types import Environment
from worldvault.storage.models import ArtifactQuery, EntityType
from worldvault.world.context import WorldScope

MUTABLE_ARTIFACT_FIELDS = frozenset({"deleted_at", "summary", "publication_state", "title"})

type _LatestKey = tuple[str | None, str]


class LocalStorage:
    """In-memory storage keeping artifact rows in a version arena.

    Structure:
        _artifacts[VersionKey] = Artifact row
        _latest[(world_id, logical_id)] = VersionKey of the newest row

    ``_latest`` is an index maintained on every insert and delete; reads never
    scan history to find the current version.
    """

    def __init__(self) -> None:
        self._artifacts: dict[VersionKey, Artifact] = {}
        self._latest: dict[_LatestKey, VersionKey] = {}
        self._chats: dict[str, Chat] = {}
        self._users: dict[str, User] = {}
        self._worlds: dict[str, WorldMeta] = {}
        self._txn = threading.local()

    # Transactions

    def _tables(self) -> dict[str, dict[Any, Any]]:
        return {
            "artifacts": self._artifacts,
            "latest": self._latest,
            "chats": self._chats,
            "users": self._users,
            "worlds": self._worlds,
        }

    def _load_tables(self, tables: dict[str, dict[Any, Any]]) -> None:
        self._artifacts = tables["artifacts"]
        self._latest = tables["latest"]
        self._chats = tables["chats"]
        self._users = tables["users"]
        self._worlds = tables["worlds"]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Roll every table back if the block raises.

        Nesting is tracked per thread, so a block only joins an outer block
        opened by the same thread.
        """
        depth = getattr(self._txn, "depth", 0)
        if depth:
            self._txn.depth = depth + 1
            try:
                yield
            finally:
                self._txn.depth -= 1
            return

        self._txn.saved = {name: dict(table) for name, table in self._tables().items()}
        self._txn.depth = 1
        try:
            yield
        except BaseException:
            self._load_tables(self._txn.saved)
            raise
        finally:
            self._txn.depth = 0
            self._txn.saved = None

    # Artifacts

    def _reindex(self, world_id: str | None, logical_id: str) -> None:
        keys = [
            key
            for key, row in self._artifacts.items()
            if key.logical_id == logical_id and row.world_id == world_id
        ]
        if keys:
            self._latest[(world_id, logical_id)] = max(keys, key=VersionKey.sort_key)
        else:
            self._latest.pop((world_id, logical_id), None)

    def insert_artifact(self, artifact: Artifact, scope: WorldScope) -> Artifact:
        """Append a version row and advance the latest index.

        Raises:
            ValueError: If a row with the same version key already exists.
        """
        row = scope.tag(artifact)
        if row.key in self._artifacts:
            raise ValueError(f"Artifact version {row.key} already exists")
        self._artifacts[row.key] = row
        index_key = (row.world_id, row.id)
        current = self._latest.get(index_key)
        if current is None or row.key.sort_key() > current.sort_key():
            self._latest[index_key] = row.key
        return row

    def artifact_versions(self, artifact_id: str, scope: WorldScope) -> list[Artifact]:
        rows = [
            row
            for key, row in self._artifacts.items()
            if key.logical_id == artifact_id and scope.matches(row.world_id)
        ]
        return sorted(rows, key=lambda row: row.key.sort_key())

    def latest_artifact(self, artifact_id: str, scope: WorldScope) -> Artifact | None:
        key = self._latest.get((scope.world_id, artifact_id))
        return self._artifacts[key] if key is not None else None

    def update_artifact(self, key: VersionKey, scope: WorldScope, **changes: Any) -> Artifact:
        unknown = set(changes) - MUTABLE_ARTIFACT_FIELDS
        if unknown:
            raise ValueError(f"Artifact columns are immutable: {sorted(unknown)}")
        row = self._artifacts.get(key)
        if row is None or not scope.matches(row.world_id):
            raise NotFoundError("Artifact version", key.logical_id)
        if "publication_state" in changes:
            changes["publication_state"] = tuple(changes["publication_state"])
        updated = dataclasses.replace(row, **changes)
        self._artifacts[key] = updated
        return updated

    def query_artifacts(
        self, query: ArtifactQuery, scope: WorldScope
    ) -> tuple[list[Artifact], int]:
        live = {
            logical_id: self._artifacts[key]
            for (world_id, logical_id), key in self._latest.items()
            if scope.matches(world_id) and not self._artifacts[key].is_deleted
        }
        if query.group_by_versions:
            candidates: Iterable[Artifact] = live.values()
        else:
            candidates = (
                row
                for row in self._artifacts.values()
                if row.id in live and scope.matches(row.world_id)
            )
        matched = [row for row in candidates if _matches(row, query)]
        matched.sort(key=lambda row: (row.created_at, row.sequence, row.id), reverse=True)
        end = None if query.limit is None else query.offset + query.limit
        return matched[query.offset : end], len(matched)

    def delete_artifact_versions(
        self, artifact_id: str, scope: WorldScope, after: datetime
    ) -> int:
        doomed = [
            key
            for key, row in self._artifacts.items()
            if key.logical_id == artifact_id
            and scope.matches(row.world_id)
            and row.created_at > after
        ]
        for key in doomed:
            del self._artifacts[key]
        self._reindex(scope.world_id, artifact_id)
        return len(doomed)

    # Chats and users

    def insert_chat(self, chat: Chat, scope: WorldScope) -> Chat:
        row = scope.tag(chat)
        self._chats[row.id] = row
        return row

    def get_chat(
        self, chat_id: str, scope: WorldScope, include_deleted: bool = False
    ) -> Chat | None:
        chat = self._chats.get(chat_id)
        if chat is None or not scope.matches(chat.world_id):
            return None
        if chat.is_deleted and not include_deleted:
            return None
        return chat

    def update_chat(self, chat_id: str, scope: WorldScope, **changes: Any) -> Chat:
        chat = self.get_chat(chat_id, scope, include_deleted=True)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        updated = dataclasses.replace(chat, **changes)
        self._chats[chat_id] = updated
        return updated

    def query_chats(
        self,
        user_id: str,
        scope: WorldScope,
        *,
        newer_than: datetime | None = None,
        older_than: datetime | None = None,
        limit: int | None = None,
    ) -> list[Chat]:
        rows = [
            chat
            for chat in self._chats.values()
            if chat.user_id == user_id
            and scope.matches(chat.world_id)
            and not chat.is_deleted
            and (newer_than is None or chat.created_at > newer_than)
            and (older_than is None or chat.created_at < older_than)
        ]
        rows.sort(key=lambda chat: (chat.created_at, chat.id), reverse=True)
        return rows if limit is None else rows[:limit]

    def insert_user(self, user: User, scope: WorldScope) -> User:
        row = scope.tag(user)
        self._users[row.id] = row
        return row

    def get_user(self, user_id: str, scope: WorldScope) -> User | None:
        user = self._users.get(user_id)
        if user is None or not scope.matches(user.world_id):
            return None
        return user

    # World metadata

    def put_world(self, meta: WorldMeta) -> WorldMeta:
        self._worlds[meta.id] = meta
        return meta

    def get_world(self, world_id: str) -> WorldMeta | None:
        return self._worlds.get(world_id)

    def list_worlds(
        self,
        environment: Environment | None = None,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorldMeta]:
        worlds = [
            meta
            for meta in self._worlds.values()
            if (environment is None or meta.environment is environment)
            and (category is None or meta.category == category)
            and (not active_only or meta.is_active)
        ]
        return sorted(worlds, key=lambda meta: (meta.name, meta.id))

    def delete_world(self, world_id: str) -> bool:
        return self._worlds.pop(world_id, None) is not None

    def bump_world_usage(self, world_id: str, at: datetime) -> None:
        meta = self._worlds.get(world_id)
        if meta is None:
            raise NotFoundError("World", world_id)
        self._worlds[world_id] = dataclasses.replace(
            meta, usage_count=meta.usage_count + 1, last_used_at=at
        )

    # Seed pipeline helpers

    def find_existing_ids(self, entity: EntityType, ids: Iterable[str]) -> set[str]:
        return set(self.locate_ids(entity, ids))

    def locate_ids(self, entity: EntityType, ids: Iterable[str]) -> dict[str, set[str | None]]:
        wanted = set(ids)
        match entity:
            case EntityType.USERS:
                pairs: Iterable[tuple[str | None, str]] = (
                    (row.world_id, row.id) for row in self._users.values()
                )
            case EntityType.CHATS:
                pairs = ((row.world_id, row.id) for row in self._chats.values())
            case EntityType.ARTIFACTS:
                pairs = self._latest.keys()
            case _:
                raise ValueError(f"Unknown entity type {entity!r}")
        located: dict[str, set[str | None]] = {}
        for world_id, row_id in pairs:
            if row_id in wanted:
                located.setdefault(row_id, set()).add(world_id)
        return located

    def delete_entities(self, entity: EntityType, ids: Iterable[str], scope: WorldScope) -> int:
        doomed = set(ids)
        match entity:
            case EntityType.USERS:
                table: dict[Any, Any] = self._users
            case EntityType.CHATS:
                table = self._chats
            case EntityType.ARTIFACTS:
                keys = [
                    key
                    for key, row in self._artifacts.items()
                    if key.logical_id in doomed and scope.matches(row.world_id)
                ]
                for key in keys:
                    del self._artifacts[key]
                for index_key in [k for k in self._latest if k[1] in doomed]:
                    if scope.matches(index_key[0]):
                        del self._latest[index_key]
                return len(keys)
        removed = [
            key for key, row in table.items() if key in doomed and scope.matches(row.world_id)
        ]
        for key in removed:
            del table[key]
        return len(removed)

    def world_rows(self, entity: EntityType, world_id: str) -> Iterator[Any]:
        match entity:
            case EntityType.USERS:
                rows: Iterable[Any] = self._users.values()
            case EntityType.CHATS:
                rows = self._chats.values()
            case EntityType.ARTIFACTS:
                rows = sorted(
                    self._artifacts.values(), key=lambda row: (row.id, row.key.sort_key())
                )
        for row in list(rows):
            if row.world_id == world_id:
                yield row

    def purge_world(self, world_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for entity in EntityType:
            ids = {row.id for row in self.world_rows(entity, world_id)}
            if entity is EntityType.ARTIFACTS:
                keys = [k for k, row in self._artifacts.items() if row.world_id == world_id]
                for key in keys:
                    del self._artifacts[key]
                for index_key in [k for k in self._latest if k[0] == world_id]:
                    del self._latest[index_key]
                counts[entity.value] = len(keys)
            else:
                counts[entity.value] = self.delete_entities(entity, ids, WorldScope(world_id))
        return counts

    def count_world(self, world_id: str) -> dict[str, int]:
        return {
            entity.value: sum(1 for _ in self.world_rows(entity, world_id)) for entity in EntityType
        }

    def snapshot(self) -> bytes:
        """Pickle entire state for serialization.

        Not efficient - use only for testing/prototyping, not production.

        Returns:
            Pickled bytes of storage state.
        """
        return pickle.dumps(self._tables())

    def restore(self, data: bytes) -> None:
        """Restore from pickle snapshot.

        Args:
            data: Pickled bytes from previous snapshot() call.
        """
        state = pickle.loads(data)  # nosec B301 - Used only for local testing, not production
        self._load_tables(state)


def _matches(row: Artifact, query: ArtifactQuery) -> bool:
    if query.user_id is not None and row.user_id != query.user_id:
        return False
    if query.kind is not None and row.kind is not query.kind:
        return False
    if query.search:
        needle = query.search.casefold()
        haystacks = (row.title, row.summary, searchable_text(row.content) or "")
        if not any(needle in text.casefold() for text in haystacks):
            return False
    return True
