"""Tests for pure publication-state functions.

Focus: strict expiry boundary, multi-source independence.
"""

from datetime import UTC, datetime, timedelta

import pytest

from worldvault.core.content import SiteContent, SiteDefinition, TextContent
from worldvault.core.models import Artifact, Chat, PublicationInfo, PublicationSource
from worldvault.core.types import ArtifactKind
from worldvault.publication import operations as ops

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def entry(source=PublicationSource.DIRECT, source_id="a1", expires_at=None):
    return PublicationInfo(source, source_id, NOW - timedelta(days=1), expires_at)


def site(state) -> Artifact:
    return Artifact(
        id="s1",
        created_at=NOW,
        title="Site",
        kind=ArtifactKind.SITE,
        content=SiteContent(SiteDefinition()),
        user_id="u1",
        publication_state=tuple(state),
    )


@pytest.mark.parametrize(
    ("expires_at", "active"),
    [
        (None, True),
        (NOW + timedelta(microseconds=1), True),
        (NOW, False),
        (NOW - timedelta(seconds=1), False),
    ],
)
def test_expiry_is_strict(expires_at, active):
    """An entry expiring exactly now no longer grants visibility.

    Why: Two evaluators at the boundary instant must agree.
    """
    assert ops.is_active(entry(expires_at=expires_at), NOW) is active
    assert ops.is_published([entry(expires_at=expires_at)], NOW) is active


def test_empty_state_is_unpublished():
    assert not ops.is_published((), NOW)
    assert ops.active_publications((), NOW) == []


def test_one_active_source_keeps_artifact_published():
    state = [
        entry(PublicationSource.VIA_CONVERSATION, "c1", expires_at=NOW - timedelta(hours=1)),
        entry(PublicationSource.VIA_CONVERSATION, "c2", expires_at=NOW + timedelta(hours=1)),
    ]

    assert ops.is_published(state, NOW)
    assert ops.is_published_from_source(state, PublicationSource.VIA_CONVERSATION, NOW, "c2")
    assert not ops.is_published_from_source(state, PublicationSource.VIA_CONVERSATION, NOW, "c1")
    assert not ops.is_published_from_source(state, PublicationSource.DIRECT, NOW)
    assert ops.active_publications(state, NOW) == [state[1]]


def test_add_keeps_duplicates_and_revoke_removes_all_matches():
    state = ops.add_publication((), entry())
    state = ops.add_publication(state, entry())
    state = ops.add_publication(state, entry(PublicationSource.AS_SITE, "s1"))

    assert len(state) == 3
    revoked = ops.revoke_publication(state, PublicationSource.DIRECT, "a1")
    assert [item.source for item in revoked] == [PublicationSource.AS_SITE]


def test_replace_swaps_same_source_entry():
    old = entry(PublicationSource.VIA_CONVERSATION, "c1", NOW + timedelta(days=1))
    new = entry(PublicationSource.VIA_CONVERSATION, "c1", NOW + timedelta(days=7))
    other = entry(PublicationSource.VIA_CONVERSATION, "c2")

    state = ops.replace_publication((old, other), new)

    assert state == (other, new)


def test_site_publication_requires_site_kind():
    published = [entry(PublicationSource.AS_SITE, "s1")]
    text = Artifact(
        id="t1",
        created_at=NOW,
        title="Text",
        kind=ArtifactKind.TEXT,
        content=TextContent("x"),
        user_id="u1",
        publication_state=tuple(published),
    )

    assert ops.is_published_as_site(site(published), NOW)
    assert not ops.is_published_as_site(site([entry()]), NOW)
    assert not ops.is_published_as_site(text, NOW)


def test_chat_publication_uses_published_until():
    chat = Chat("c1", NOW, "Chat", "u1")

    assert not ops.is_chat_published(chat, NOW)
    assert ops.is_chat_published(Chat("c1", NOW, "Chat", "u1", NOW + timedelta(seconds=1)), NOW)
    assert not ops.is_chat_published(Chat("c1", NOW, "Chat", "u1", NOW), NOW)
