"""Pure publication-state functions.

Every predicate takes one captured ``now`` and compares all entries against
it, so a boundary entry cannot flip state midway through an evaluation.
Expiry is strict: an entry expiring exactly at ``now`` is no longer active.

Usage:
    now = clock()
    if is_published(artifact.publication_state, now):
        ...
    state = replace_publication(artifact.publication_state, entry)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from worldvault.core.models import Artifact, Chat, PublicationInfo, PublicationSource
from worldvault.core.types import ArtifactKind

type PublicationState = tuple[PublicationInfo, ...]


def is_active(entry: PublicationInfo, now: datetime) -> bool:
    """Entry grants visibility at ``now``."""
    return entry.expires_at is None or entry.expires_at > now


def active_publications(state: Iterable[PublicationInfo], now: datetime) -> list[PublicationInfo]:
    return [entry for entry in state if is_active(entry, now)]


def is_published(state: Iterable[PublicationInfo], now: datetime) -> bool:
    return any(is_active(entry, now) for entry in state)


def is_published_from_source(
    state: Iterable[PublicationInfo],
    source: PublicationSource,
    now: datetime,
    source_id: str | None = None,
) -> bool:
    """Active entry from ``source`` (and ``source_id`` when given) exists."""
    return any(
        entry.source is source
        and (source_id is None or entry.source_id == source_id)
        and is_active(entry, now)
        for entry in state
    )


def is_published_as_site(artifact: Artifact, now: datetime) -> bool:
    """Only site artifacts can be published as a site."""
    if artifact.kind is not ArtifactKind.SITE:
        return False
    return is_published_from_source(artifact.publication_state, PublicationSource.AS_SITE, now)


def is_chat_published(chat: Chat, now: datetime) -> bool:
    return chat.published_until is not None and chat.published_until > now


def add_publication(state: Iterable[PublicationInfo], entry: PublicationInfo) -> PublicationState:
    """Append without deduplication; sources expire independently."""
    return (*state, entry)


def revoke_publication(
    state: Iterable[PublicationInfo], source: PublicationSource, source_id: str
) -> PublicationState:
    """Drop every entry matching ``(source, source_id)``."""
    return tuple(
        entry for entry in state if not (entry.source is source and entry.source_id == source_id)
    )


def replace_publication(
    state: Iterable[PublicationInfo], entry: PublicationInfo
) -> PublicationState:
    """Swap any entry with the same ``(source, source_id)`` for ``entry``."""
    return add_publication(revoke_publication(state, entry.source, entry.source_id), entry)
