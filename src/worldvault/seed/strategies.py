"""Pure conflict-resolution planning for seed imports.

Planning reads nothing and writes nothing: it turns snapshot ids, the ids
already present in the target and a resolution into a ``CategoryPlan``.
The manager builds every plan before the first mutation, so rename maps
from earlier categories (users, chats, blobs) are known when artifact rows
are rewritten.
"""

from __future__ import annotations

import dataclasses
import posixpath
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from worldvault.core.content import (
    ContentPayload,
    SiteContent,
    SiteDefinition,
    TextContent,
    UrlContent,
)
from worldvault.core.models import Artifact, Chat, PublicationSource, User
from worldvault.seed.models import EntityResolution


@dataclass(frozen=True, slots=True)
class CategoryPlan:
    """What one category does with each snapshot id.

    Attributes:
        insert: Ids absent from the target, written as-is.
        replace: Colliding ids deleted and then rewritten from the snapshot.
        overwrite: Colliding ids whose rows take the snapshot's values.
        skip: Colliding ids left untouched.
        rename: Colliding ids written under a fresh id (old -> new).
    """

    insert: tuple[str, ...] = ()
    replace: tuple[str, ...] = ()
    overwrite: tuple[str, ...] = ()
    skip: tuple[str, ...] = ()
    rename: Mapping[str, str] = field(default_factory=dict)

    @property
    def removals(self) -> tuple[str, ...]:
        """Existing ids deleted before the snapshot rows go in."""
        return self.replace + self.overwrite

    def target_id(self, snapshot_id: str) -> str | None:
        """Id a snapshot row is written under, or None when skipped."""
        if snapshot_id in self.rename:
            return self.rename[snapshot_id]
        if snapshot_id in self.skip:
            return None
        return snapshot_id


def unique_id(base: str, taken: set[str]) -> str:
    """``<base>_imported_<n>`` with the smallest ``n`` not in ``taken``."""
    counter = 1
    candidate = f"{base}_imported_{counter}"
    while candidate in taken:
        counter += 1
        candidate = f"{base}_imported_{counter}"
    return candidate


def unique_blob_key(key: str, taken: set[str]) -> str:
    """Like ``unique_id`` but keeps the key's directory and extension."""
    directory, name = posixpath.split(key)
    stem, ext = posixpath.splitext(name)
    counter = 1
    while True:
        candidate = posixpath.join(directory, f"{stem}_imported_{counter}{ext}")
        if candidate not in taken:
            return candidate
        counter += 1


def plan_category(
    snapshot_ids: Iterable[str],
    existing_ids: set[str],
    resolution: EntityResolution,
    *,
    rename_with: Callable[[str, set[str]], str] = unique_id,
    foreign_ids: Iterable[str] = (),
) -> CategoryPlan:
    """Decide the fate of every snapshot id.

    Args:
        snapshot_ids: Ids in the snapshot, duplicates ignored.
        existing_ids: Ids already present in the target.
        resolution: How colliding ids are handled.
        rename_with: ``(base, taken) -> new_id`` used for ``RENAME``.
        foreign_ids: Colliding ids held by rows outside the target world.
            ``REPLACE`` and ``OVERWRITE`` may only remove rows of the target
            world, so these are renamed instead.
    """
    ordered = list(dict.fromkeys(snapshot_ids))
    taken = set(existing_ids) | set(ordered)
    foreign = set(foreign_ids) & set(existing_ids)

    insert: list[str] = []
    colliding: list[str] = []
    for snapshot_id in ordered:
        (colliding if snapshot_id in existing_ids else insert).append(snapshot_id)

    def renamed(ids: Iterable[str]) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for snapshot_id in ids:
            new_id = rename_with(snapshot_id, taken)
            taken.add(new_id)
            mapping[snapshot_id] = new_id
        return mapping

    owned = tuple(snapshot_id for snapshot_id in colliding if snapshot_id not in foreign)
    moved = [snapshot_id for snapshot_id in colliding if snapshot_id in foreign]
    match resolution:
        case EntityResolution.REPLACE:
            return CategoryPlan(insert=tuple(insert), replace=owned, rename=renamed(moved))
        case EntityResolution.OVERWRITE:
            return CategoryPlan(insert=tuple(insert), overwrite=owned, rename=renamed(moved))
        case EntityResolution.MERGE | EntityResolution.SKIP:
            return CategoryPlan(insert=tuple(insert), skip=tuple(colliding))
        case EntityResolution.RENAME:
            return CategoryPlan(insert=tuple(insert), rename=renamed(colliding))
    raise ValueError(f"Unknown resolution {resolution!r}")


# Cross-reference rewriting for renamed rows


def remap_user(user: User, user_ids: Mapping[str, str]) -> User:
    return dataclasses.replace(user, id=user_ids.get(user.id, user.id))


def remap_chat(chat: Chat, user_ids: Mapping[str, str], chat_ids: Mapping[str, str]) -> Chat:
    return dataclasses.replace(
        chat,
        id=chat_ids.get(chat.id, chat.id),
        user_id=user_ids.get(chat.user_id, chat.user_id),
    )


def remap_artifact(
    artifact: Artifact,
    *,
    user_ids: Mapping[str, str],
    chat_ids: Mapping[str, str],
    artifact_ids: Mapping[str, str],
    blob_urls: Mapping[str, str],
) -> Artifact:
    """Rewrite ids and references of one artifact row.

    Owner and author follow renamed users. ``via-conversation`` entries
    follow renamed chats; ``direct`` and ``as-site`` entries follow renamed
    artifacts. Site slots follow renamed artifacts and binary URLs follow
    renamed blobs.
    """
    publication_state = tuple(
        dataclasses.replace(
            entry,
            source_id=(
                chat_ids if entry.source is PublicationSource.VIA_CONVERSATION else artifact_ids
            ).get(entry.source_id, entry.source_id),
        )
        for entry in artifact.publication_state
    )
    author_id = artifact.author_id
    if author_id is not None:
        author_id = user_ids.get(author_id, author_id)
    return dataclasses.replace(
        artifact,
        id=artifact_ids.get(artifact.id, artifact.id),
        user_id=user_ids.get(artifact.user_id, artifact.user_id),
        author_id=author_id,
        publication_state=publication_state,
        content=remap_content(artifact.content, artifact_ids, blob_urls),
    )


def remap_content(
    payload: ContentPayload,
    artifact_ids: Mapping[str, str],
    blob_urls: Mapping[str, str],
) -> ContentPayload:
    if not artifact_ids and not blob_urls:
        return payload
    match payload:
        case UrlContent(url=url):
            return UrlContent(blob_urls.get(url, url))
        case TextContent(text=text):
            return TextContent(_replace_all(text, blob_urls))
        case SiteContent(definition=definition):
            document = _rewrite(definition.to_json_dict(), artifact_ids, blob_urls)
            return SiteContent(SiteDefinition.model_validate(document))
    return payload


def _replace_all(text: str, replacements: Mapping[str, str]) -> str:
    for old, new in replacements.items():
        text = text.replace(old, new)
    return text


def _rewrite(value: Any, artifact_ids: Mapping[str, str], blob_urls: Mapping[str, str]) -> Any:
    if isinstance(value, dict):
        return {
            key: (
                artifact_ids.get(item, item)
                if key == "artifactId" and isinstance(item, str)
                else _rewrite(item, artifact_ids, blob_urls)
            )
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_rewrite(item, artifact_ids, blob_urls) for item in value]
    if isinstance(value, str):
        return _replace_all(value, blob_urls)
    return value
