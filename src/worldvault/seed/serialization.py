"""Record <-> JSON dict conversion for snapshot manifests.

Entity dicts use camelCase keys and the sparse content column form, so a
manifest row reads like a database row. ``worldId`` is not written: rows
are tagged with the manifest's world when imported.

Usage:
    data = artifact_to_dict(artifact)
    artifact_from_dict(data, world_id="demo-1") == dataclasses.replace(artifact, world_id="demo-1")
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from worldvault.core.content import from_columns, to_columns
from worldvault.core.errors import ValidationError
from worldvault.core.models import Artifact, Chat, PublicationInfo, User, WorldMeta
from worldvault.core.types import ArtifactKind, Environment, ensure_utc


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _when(value: str | None) -> datetime | None:
    return ensure_utc(datetime.fromisoformat(value)) if value else None


def _required(data: dict[str, Any], key: str, entity: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValidationError(f"{entity} row is missing '{key}'") from None


def artifact_to_dict(artifact: Artifact) -> dict[str, Any]:
    columns = to_columns(artifact.content)
    return {
        "id": artifact.id,
        "createdAt": artifact.created_at.isoformat(),
        "sequence": artifact.sequence,
        "title": artifact.title,
        "kind": artifact.kind.value,
        "contentText": columns["content_text"],
        "contentUrl": columns["content_url"],
        "contentSiteDefinition": columns["content_site_definition"],
        "summary": artifact.summary,
        "userId": artifact.user_id,
        "authorId": artifact.author_id,
        "deletedAt": _iso(artifact.deleted_at),
        "publicationState": [entry.to_dict() for entry in artifact.publication_state],
    }


def artifact_from_dict(data: dict[str, Any], world_id: str | None = None) -> Artifact:
    """Rebuild one artifact version row.

    Raises:
        ValidationError: If a required key is missing or a value is malformed.
    """
    try:
        kind = ArtifactKind.parse(_required(data, "kind", "Artifact"))
        return Artifact(
            id=_required(data, "id", "Artifact"),
            created_at=ensure_utc(datetime.fromisoformat(_required(data, "createdAt", "Artifact"))),
            sequence=int(data.get("sequence", 1)),
            title=_required(data, "title", "Artifact"),
            kind=kind,
            content=from_columns(
                kind,
                content_text=data.get("contentText"),
                content_url=data.get("contentUrl"),
                content_site_definition=data.get("contentSiteDefinition"),
            ),
            summary=data.get("summary") or "",
            user_id=_required(data, "userId", "Artifact"),
            author_id=data.get("authorId"),
            deleted_at=_when(data.get("deletedAt")),
            publication_state=tuple(
                PublicationInfo.from_dict(entry) for entry in data.get("publicationState") or ()
            ),
            world_id=world_id,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid artifact row {data.get('id')!r}: {e}") from e


def chat_to_dict(chat: Chat) -> dict[str, Any]:
    return {
        "id": chat.id,
        "createdAt": chat.created_at.isoformat(),
        "title": chat.title,
        "userId": chat.user_id,
        "publishedUntil": _iso(chat.published_until),
        "deletedAt": _iso(chat.deleted_at),
    }


def chat_from_dict(data: dict[str, Any], world_id: str | None = None) -> Chat:
    try:
        return Chat(
            id=_required(data, "id", "Chat"),
            created_at=ensure_utc(datetime.fromisoformat(_required(data, "createdAt", "Chat"))),
            title=data.get("title") or "",
            user_id=_required(data, "userId", "Chat"),
            published_until=_when(data.get("publishedUntil")),
            deleted_at=_when(data.get("deletedAt")),
            world_id=world_id,
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid chat row {data.get('id')!r}: {e}") from e


def user_to_dict(user: User) -> dict[str, Any]:
    return {"id": user.id, "email": user.email, "name": user.name}


def user_from_dict(data: dict[str, Any], world_id: str | None = None) -> User:
    return User(
        id=_required(data, "id", "User"),
        email=_required(data, "email", "User"),
        name=data.get("name"),
        world_id=world_id,
    )


def world_to_dict(meta: WorldMeta) -> dict[str, Any]:
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
        "isTemplate": meta.is_template,
        "isActive": meta.is_active,
        "autoCleanup": meta.auto_cleanup,
        "cleanupAfterHours": meta.cleanup_after_hours,
        "usageCount": meta.usage_count,
        "lastUsedAt": _iso(meta.last_used_at),
        "version": meta.version,
        "isolationLevel": meta.isolation_level,
        "createdBy": meta.created_by,
        "createdAt": _iso(meta.created_at),
        "updatedAt": _iso(meta.updated_at),
    }


def world_from_dict(data: dict[str, Any]) -> WorldMeta:
    """Rebuild world metadata; absent optional keys take the record defaults."""
    defaults = WorldMeta(id="", name="", environment=Environment.LOCAL_DEV)
    try:
        return WorldMeta(
            id=_required(data, "id", "World"),
            name=_required(data, "name", "World"),
            environment=Environment(_required(data, "environment", "World")),
            description=data.get("description") or "",
            category=data.get("category") or defaults.category,
            tags=tuple(data.get("tags") or ()),
            users=tuple(data.get("users") or ()),
            artifacts=tuple(data.get("artifacts") or ()),
            chats=tuple(data.get("chats") or ()),
            settings=dict(data.get("settings") or {}),
            is_template=bool(data.get("isTemplate", defaults.is_template)),
            is_active=bool(data.get("isActive", defaults.is_active)),
            auto_cleanup=bool(data.get("autoCleanup", defaults.auto_cleanup)),
            cleanup_after_hours=int(data.get("cleanupAfterHours", defaults.cleanup_after_hours)),
            usage_count=int(data.get("usageCount", 0)),
            last_used_at=_when(data.get("lastUsedAt")),
            version=data.get("version") or defaults.version,
            isolation_level=data.get("isolationLevel") or defaults.isolation_level,
            created_by=data.get("createdBy"),
            created_at=_when(data.get("createdAt")),
            updated_at=_when(data.get("updatedAt")),
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid world metadata {data.get('id')!r}: {e}") from e
