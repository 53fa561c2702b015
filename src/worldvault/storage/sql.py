"""SQL storage backend built on SQLAlchemy 2.0.

Tables mirror the product schema: artifacts are keyed by ``(id, created_at)``
with sparse content columns, users/chats carry a nullable ``world_id`` tag
and world metadata lives in ``world_meta``.

Usage:
    storage = SqlStorage("postgresql+psycopg://localhost/worldvault")
    storage = SqlStorage.in_memory()  # SQLite, shared across threads
"""

from __future__ import annotations

import logging
import pickle  # nosec B403 - Used only for trusted snapshots
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    ColumnElement,
    DateTime,
    Engine,
    Index,
    Integer,
    Select,
    String,
    Text,
    and_,
    create_engine,
    delete,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from worldvault.core.content import from_columns, to_columns
from worldvault.core.errors import NotFoundError, UpstreamUnavailableError
from worldvault.core.identity import VersionKey
from worldvault.core.models import Artifact, Chat, PublicationInfo, User, WorldMeta
from worldvault.core.types import ArtifactKind, Environment, ensure_utc
from worldvault.storage.local import MUTABLE_ARTIFACT_FIELDS
from worldvault.storage.models import ArtifactQuery, EntityType
from worldvault.world.context import WorldScope

if TYPE_CHECKING:
    from worldvault.config.settings import WorldVaultSettings

logger = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetimes on every dialect (SQLite drops the offset)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        return ensure_utc(value) if value is not None else None


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    world_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class ChatRow(Base):
    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    published_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    world_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class ArtifactRow(Base):
    __tablename__ = "artifacts"
    __table_args__ = (
        Index("ix_artifacts_world_user", "world_id", "user_id"),
        Index("ix_artifacts_id_created", "id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    content_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_site_definition: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    author_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    publication_state: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    world_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class WorldRow(Base):
    __tablename__ = "world_meta"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    environment: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="GENERAL")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    users: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    artifacts: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    chats: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_cleanup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cleanup_after_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    version: Mapped[str] = mapped_column(String(32), nullable=False, default="1.0.0")
    isolation_level: Mapped[str] = mapped_column(String(32), nullable=False, default="FULL")
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


_ROW_TYPES: dict[EntityType, type[UserRow] | type[ChatRow] | type[ArtifactRow]] = {
    EntityType.USERS: UserRow,
    EntityType.CHATS: ChatRow,
    EntityType.ARTIFACTS: ArtifactRow,
}


# Row <-> record conversion


def _artifact_row(artifact: Artifact) -> ArtifactRow:
    return ArtifactRow(
        id=artifact.id,
        created_at=artifact.created_at,
        sequence=artifact.sequence,
        title=artifact.title,
        kind=artifact.kind.value,
        summary=artifact.summary,
        user_id=artifact.user_id,
        author_id=artifact.author_id,
        deleted_at=artifact.deleted_at,
        publication_state=[entry.to_dict() for entry in artifact.publication_state],
        world_id=artifact.world_id,
        **to_columns(artifact.content),
    )


def _artifact_record(row: ArtifactRow) -> Artifact:
    kind = ArtifactKind.parse(row.kind)
    return Artifact(
        id=row.id,
        created_at=row.created_at,
        sequence=row.sequence,
        title=row.title,
        kind=kind,
        content=from_columns(
            kind,
            content_text=row.content_text,
            content_url=row.content_url,
            content_site_definition=row.content_site_definition,
        ),
        summary=row.summary or "",
        user_id=row.user_id,
        author_id=row.author_id,
        deleted_at=row.deleted_at,
        publication_state=tuple(
            PublicationInfo.from_dict(entry) for entry in row.publication_state or []
        ),
        world_id=row.world_id,
    )


def _chat_record(row: ChatRow) -> Chat:
    return Chat(
        id=row.id,
        created_at=row.created_at,
        title=row.title,
        user_id=row.user_id,
        published_until=row.published_until,
        deleted_at=row.deleted_at,
        world_id=row.world_id,
    )


def _user_record(row: UserRow) -> User:
    return User(id=row.id, email=row.email, name=row.name, world_id=row.world_id)


def _user_model(user: User) -> UserRow:
    return UserRow(id=user.id, email=user.email, name=user.name, world_id=user.world_id)


def _chat_model(chat: Chat) -> ChatRow:
    return ChatRow(
        id=chat.id,
        created_at=chat.created_at,
        title=chat.title,
        user_id=chat.user_id,
        published_until=chat.published_until,
        deleted_at=chat.deleted_at,
        world_id=chat.world_id,
    )


def _world_values(meta: WorldMeta) -> dict[str, Any]:
    return {
        "id": meta.id,
        "name": meta.name,
        "description": meta.description,
        "environment": meta.environment.value,
        "category": meta.category,
        "tags": list(meta.tags),
        "users": list(meta.users),
        "artifacts": list(meta.artifacts),
        "chats": list(meta.chats),
        "settings": dict(meta.settings),
        "is_template": meta.is_template,
        "is_active": meta.is_active,
        "auto_cleanup": meta.auto_cleanup,
        "cleanup_after_hours": meta.cleanup_after_hours,
        "usage_count": meta.usage_count,
        "last_used_at": meta.last_used_at,
        "version": meta.version,
        "isolation_level": meta.isolation_level,
        "created_by": meta.created_by,
        "created_at": meta.created_at,
        "updated_at": meta.updated_at,
    }


def _world_record(row: WorldRow) -> WorldMeta:
    return WorldMeta(
        id=row.id,
        name=row.name,
        description=row.description,
        environment=Environment(row.environment),
        category=row.category,
        tags=tuple(row.tags or ()),
        users=tuple(row.users or ()),
        artifacts=tuple(row.artifacts or ()),
        chats=tuple(row.chats or ()),
        settings=dict(row.settings or {}),
        is_template=row.is_template,
        is_active=row.is_active,
        auto_cleanup=row.auto_cleanup,
        cleanup_after_hours=row.cleanup_after_hours,
        usage_count=row.usage_count,
        last_used_at=row.last_used_at,
        version=row.version,
        isolation_level=row.isolation_level,
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _in_scope(column: Any, scope: WorldScope) -> ColumnElement[bool]:
    """World filter: ``IS NULL`` for production, equality otherwise."""
    if scope.world_id is None:
        return column.is_(None)
    return column == scope.world_id


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlStorage:
    """Relational storage using SQLAlchemy sessions.

    Each call runs in its own session unless a ``transaction()`` block is
    active on the calling thread, in which case it joins that session.

    Args:
        url_or_engine: Database URL or a ready engine.
        create_schema: Create missing tables on startup.
        **engine_options: Passed to ``create_engine`` when a URL is given.
    """

    def __init__(
        self,
        url_or_engine: str | Engine,
        *,
        create_schema: bool = True,
        **engine_options: Any,
    ):
        if isinstance(url_or_engine, str):
            self._engine = create_engine(url_or_engine, **engine_options)
        else:
            self._engine = url_or_engine
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)
        self._local = threading.local()
        if create_schema:
            with self._translate():
                Base.metadata.create_all(self._engine)

    @classmethod
    def in_memory(cls) -> SqlStorage:
        """SQLite database living as long as the storage object."""
        engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        return cls(engine)

    @classmethod
    def from_settings(cls, settings: WorldVaultSettings) -> SqlStorage:
        return cls(settings.database_url)

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _translate(self) -> Iterator[None]:
        try:
            yield
        except OperationalError as e:
            logger.error("Database unavailable: %s", e)
            raise UpstreamUnavailableError(f"Database unavailable: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success, roll back on error. Nested blocks join."""
        if getattr(self._local, "session", None) is not None:
            yield
            return
        with self._translate(), self._sessions.begin() as session:
            self._local.session = session
            try:
                yield
            finally:
                self._local.session = None

    @contextmanager
    def _session(self) -> Iterator[Session]:
        active = getattr(self._local, "session", None)
        if active is not None:
            yield active
            return
        with self._translate(), self._sessions.begin() as session:
            yield session

    # Artifacts

    def insert_artifact(self, artifact: Artifact, scope: WorldScope) -> Artifact:
        row = scope.tag(artifact)
        with self._session() as session:
            session.add(_artifact_row(row))
            session.flush()
        return row

    def artifact_versions(self, artifact_id: str, scope: WorldScope) -> list[Artifact]:
        stmt = (
            select(ArtifactRow)
            .where(ArtifactRow.id == artifact_id, _in_scope(ArtifactRow.world_id, scope))
            .order_by(ArtifactRow.created_at, ArtifactRow.sequence)
        )
        with self._session() as session:
            return [_artifact_record(row) for row in session.scalars(stmt)]

    def latest_artifact(self, artifact_id: str, scope: WorldScope) -> Artifact | None:
        stmt = (
            select(ArtifactRow)
            .where(ArtifactRow.id == artifact_id, _in_scope(ArtifactRow.world_id, scope))
            .order_by(ArtifactRow.created_at.desc(), ArtifactRow.sequence.desc())
            .limit(1)
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            return _artifact_record(row) if row is not None else None

    def update_artifact(self, key: VersionKey, scope: WorldScope, **changes: Any) -> Artifact:
        unknown = set(changes) - MUTABLE_ARTIFACT_FIELDS
        if unknown:
            raise ValueError(f"Artifact columns are immutable: {sorted(unknown)}")
        if "publication_state" in changes:
            changes["publication_state"] = [
                entry.to_dict() for entry in changes["publication_state"]
            ]
        stmt = select(ArtifactRow).where(
            ArtifactRow.id == key.logical_id,
            ArtifactRow.created_at == key.created_at,
            _in_scope(ArtifactRow.world_id, scope),
        )
        with self._session() as session:
            row = session.scalars(stmt).first()
            if row is None:
                raise NotFoundError("Artifact version", key.logical_id)
            for name, value in changes.items():
                setattr(row, name, value)
            session.flush()
            return _artifact_record(row)

    def _latest_live(self, scope: WorldScope) -> Any:
        """Subquery of ``(id, created_at)`` for live logical artifacts in scope."""
        ranked = (
            select(
                ArtifactRow.id.label("id"),
                ArtifactRow.created_at.label("created_at"),
                ArtifactRow.deleted_at.label("deleted_at"),
                func.row_number()
                .over(
                    partition_by=ArtifactRow.id,
                    order_by=(ArtifactRow.created_at.desc(), ArtifactRow.sequence.desc()),
                )
                .label("rn"),
            )
            .where(_in_scope(ArtifactRow.world_id, scope))
            .subquery()
        )
        return (
            select(ranked.c.id, ranked.c.created_at)
            .where(ranked.c.rn == 1, ranked.c.deleted_at.is_(None))
            .subquery()
        )

    def query_artifacts(
        self, query: ArtifactQuery, scope: WorldScope
    ) -> tuple[list[Artifact], int]:
        latest = self._latest_live(scope)
        stmt: Select[tuple[ArtifactRow]] = select(ArtifactRow).where(
            _in_scope(ArtifactRow.world_id, scope)
        )
        if query.group_by_versions:
            stmt = stmt.join(
                latest,
                and_(ArtifactRow.id == latest.c.id, ArtifactRow.created_at == latest.c.created_at),
            )
        else:
            stmt = stmt.where(ArtifactRow.id.in_(select(latest.c.id)))

        if query.user_id is not None:
            stmt = stmt.where(ArtifactRow.user_id == query.user_id)
        if query.kind is not None:
            stmt = stmt.where(ArtifactRow.kind == query.kind.value)
        if query.search:
            pattern = f"%{_escape_like(query.search)}%"
            stmt = stmt.where(
                or_(
                    ArtifactRow.title.ilike(pattern, escape="\\"),
                    ArtifactRow.summary.ilike(pattern, escape="\\"),
                    ArtifactRow.content_text.ilike(pattern, escape="\\"),
                )
            )

        count_stmt = select(func.count()).select_from(stmt.subquery())
        page_stmt = stmt.order_by(
            ArtifactRow.created_at.desc(), ArtifactRow.sequence.desc(), ArtifactRow.id.desc()
        ).offset(query.offset)
        if query.limit is not None:
            page_stmt = page_stmt.limit(query.limit)

        with self._session() as session:
            total = session.scalar(count_stmt) or 0
            rows = [_artifact_record(row) for row in session.scalars(page_stmt)]
        return rows, total

    def delete_artifact_versions(
        self, artifact_id: str, scope: WorldScope, after: datetime
    ) -> int:
        stmt = delete(ArtifactRow).where(
            ArtifactRow.id == artifact_id,
            _in_scope(ArtifactRow.world_id, scope),
            ArtifactRow.created_at > after,
        )
        with self._session() as session:
            return session.execute(stmt).rowcount

    # Chats and users

    def insert_chat(self, chat: Chat, scope: WorldScope) -> Chat:
        record = scope.tag(chat)
        with self._session() as session:
            session.add(_chat_model(record))
            session.flush()
        return record

    def _find_chat(
        self, session: Session, chat_id: str, scope: WorldScope, include_deleted: bool = True
    ) -> ChatRow | None:
        stmt = select(ChatRow).where(ChatRow.id == chat_id, _in_scope(ChatRow.world_id, scope))
        if not include_deleted:
            stmt = stmt.where(ChatRow.deleted_at.is_(None))
        return session.scalars(stmt).first()

    def get_chat(
        self, chat_id: str, scope: WorldScope, include_deleted: bool = False
    ) -> Chat | None:
        with self._session() as session:
            row = self._find_chat(session, chat_id, scope, include_deleted)
            return _chat_record(row) if row is not None else None

    def update_chat(self, chat_id: str, scope: WorldScope, **changes: Any) -> Chat:
        with self._session() as session:
            row = self._find_chat(session, chat_id, scope)
            if row is None:
                raise NotFoundError("Chat", chat_id)
            for name, value in changes.items():
                setattr(row, name, value)
            session.flush()
            return _chat_record(row)

    def query_chats(
        self,
        user_id: str,
        scope: WorldScope,
        *,
        newer_than: datetime | None = None,
        older_than: datetime | None = None,
        limit: int | None = None,
    ) -> list[Chat]:
        stmt = (
            select(ChatRow)
            .where(
                ChatRow.user_id == user_id,
                _in_scope(ChatRow.world_id, scope),
                ChatRow.deleted_at.is_(None),
            )
            .order_by(ChatRow.created_at.desc(), ChatRow.id.desc())
        )
        if newer_than is not None:
            stmt = stmt.where(ChatRow.created_at > newer_than)
        if older_than is not None:
            stmt = stmt.where(ChatRow.created_at < older_than)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [_chat_record(row) for row in session.scalars(stmt)]

    def insert_user(self, user: User, scope: WorldScope) -> User:
        record = scope.tag(user)
        with self._session() as session:
            session.add(_user_model(record))
            session.flush()
        return record

    def get_user(self, user_id: str, scope: WorldScope) -> User | None:
        stmt = select(UserRow).where(UserRow.id == user_id, _in_scope(UserRow.world_id, scope))
        with self._session() as session:
            row = session.scalars(stmt).first()
            return _user_record(row) if row is not None else None

    # World metadata

    def put_world(self, meta: WorldMeta) -> WorldMeta:
        with self._session() as session:
            session.merge(WorldRow(**_world_values(meta)))
            session.flush()
        return meta

    def get_world(self, world_id: str) -> WorldMeta | None:
        with self._session() as session:
            row = session.get(WorldRow, world_id)
            return _world_record(row) if row is not None else None

    def list_worlds(
        self,
        environment: Environment | None = None,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorldMeta]:
        stmt = select(WorldRow).order_by(WorldRow.name, WorldRow.id)
        if environment is not None:
            stmt = stmt.where(WorldRow.environment == environment.value)
        if category is not None:
            stmt = stmt.where(WorldRow.category == category)
        if active_only:
            stmt = stmt.where(WorldRow.is_active.is_(True))
        with self._session() as session:
            return [_world_record(row) for row in session.scalars(stmt)]

    def delete_world(self, world_id: str) -> bool:
        with self._session() as session:
            return session.execute(delete(WorldRow).where(WorldRow.id == world_id)).rowcount > 0

    def bump_world_usage(self, world_id: str, at: datetime) -> None:
        stmt = (
            update(WorldRow)
            .where(WorldRow.id == world_id)
            .values(usage_count=WorldRow.usage_count + 1, last_used_at=at)
        )
        with self._session() as session:
            if session.execute(stmt).rowcount == 0:
                raise NotFoundError("World", world_id)

    # Seed pipeline helpers

    def find_existing_ids(self, entity: EntityType, ids: Iterable[str]) -> set[str]:
        return set(self.locate_ids(entity, ids))

    def locate_ids(self, entity: EntityType, ids: Iterable[str]) -> dict[str, set[str | None]]:
        wanted = list(set(ids))
        if not wanted:
            return {}
        model = _ROW_TYPES[entity]
        stmt = select(model.id, model.world_id).where(model.id.in_(wanted)).distinct()
        located: dict[str, set[str | None]] = {}
        with self._session() as session:
            for row_id, world_id in session.execute(stmt):
                located.setdefault(row_id, set()).add(world_id)
        return located

    def delete_entities(self, entity: EntityType, ids: Iterable[str], scope: WorldScope) -> int:
        doomed = list(set(ids))
        if not doomed:
            return 0
        model = _ROW_TYPES[entity]
        stmt = delete(model).where(model.id.in_(doomed), _in_scope(model.world_id, scope))
        with self._session() as session:
            return session.execute(stmt).rowcount

    def world_rows(self, entity: EntityType, world_id: str) -> Iterator[Any]:
        model = _ROW_TYPES[entity]
        stmt = select(model).where(model.world_id == world_id)
        converter: Any
        match entity:
            case EntityType.USERS:
                stmt = stmt.order_by(UserRow.id)
                converter = _user_record
            case EntityType.CHATS:
                stmt = stmt.order_by(ChatRow.id)
                converter = _chat_record
            case EntityType.ARTIFACTS:
                stmt = stmt.order_by(ArtifactRow.id, ArtifactRow.created_at, ArtifactRow.sequence)
                converter = _artifact_record
        with self._session() as session:
            rows = [converter(row) for row in session.scalars(stmt)]
        yield from rows

    def purge_world(self, world_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._session() as session:
            for entity in EntityType:
                model = _ROW_TYPES[entity]
                result = session.execute(delete(model).where(model.world_id == world_id))
                counts[entity.value] = result.rowcount
        return counts

    def count_world(self, world_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._session() as session:
            for entity in EntityType:
                model = _ROW_TYPES[entity]
                stmt = select(func.count()).select_from(model).where(model.world_id == world_id)
                counts[entity.value] = session.scalar(stmt) or 0
        return counts

    def snapshot(self) -> bytes:
        """Pickle every record as domain objects."""
        with self._session() as session:
            state = {
                "artifacts": [_artifact_record(r) for r in session.scalars(select(ArtifactRow))],
                "chats": [_chat_record(r) for r in session.scalars(select(ChatRow))],
                "users": [_user_record(r) for r in session.scalars(select(UserRow))],
                "worlds": [_world_record(r) for r in session.scalars(select(WorldRow))],
            }
        return pickle.dumps(state)

    def restore(self, data: bytes) -> None:
        """Replace every table with a snapshot produced by ``snapshot``."""
        state = pickle.loads(data)  # nosec B301 - trusted snapshots only
        with self._session() as session:
            for model in (ArtifactRow, ChatRow, UserRow, WorldRow):
                session.execute(delete(model))
            for meta in state["worlds"]:
                session.add(WorldRow(**_world_values(meta)))
            for user in state["users"]:
                session.add(_user_model(user))
            for chat in state["chats"]:
                session.add(_chat_model(chat))
            for artifact in state["artifacts"]:
                session.add(_artifact_row(artifact))
