"""Tests for core records, version keys and the error taxonomy."""

from datetime import UTC, datetime, timedelta

import pytest

from worldvault.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    SeedImportError,
    WorldVaultError,
)
from worldvault.core.identity import VersionKey, new_id
from worldvault.core.models import PublicationInfo, PublicationSource
from worldvault.core.types import ArtifactKind, Environment, ensure_utc

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def test_version_keys_order_by_timestamp_then_sequence():
    """Sequence only matters when timestamps tie.

    Why: Version index resolution sorts by this key.
    """
    keys = [
        VersionKey("a", T0 + timedelta(seconds=1), 1),
        VersionKey("a", T0, 2),
        VersionKey("a", T0, 1),
    ]

    assert sorted(keys, key=VersionKey.sort_key) == [keys[2], keys[1], keys[0]]


def test_new_id_is_unique():
    assert len({new_id() for _ in range(100)}) == 100


def test_ensure_utc_attaches_and_converts():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc(naive).tzinfo is UTC


def test_publication_source_accepts_legacy_tags():
    """Older rows carry ``chat``/``site`` instead of the current values."""
    assert PublicationSource.parse("chat") is PublicationSource.VIA_CONVERSATION
    assert PublicationSource.parse("site") is PublicationSource.AS_SITE
    assert PublicationSource.parse("direct") is PublicationSource.DIRECT
    with pytest.raises(ValueError):
        PublicationSource.parse("carrier-pigeon")


def test_publication_info_wire_shape():
    entry = PublicationInfo(
        source=PublicationSource.VIA_CONVERSATION,
        source_id="c1",
        published_at=T0,
        expires_at=T0 + timedelta(days=1),
    )

    data = entry.to_dict()

    assert data == {
        "source": "via-conversation",
        "sourceId": "c1",
        "publishedAt": "2026-01-01T00:00:00+00:00",
        "expiresAt": "2026-01-02T00:00:00+00:00",
    }
    assert PublicationInfo.from_dict(data) == entry


def test_kind_and_environment_parse():
    assert ArtifactKind.parse("faq-item") is ArtifactKind.FAQ_ITEM
    assert Environment.PRODUCTION.is_production
    assert not Environment("shared-test").is_production


def test_error_messages_name_the_entity():
    missing = NotFoundError("Artifact", "a1")
    denied = PermissionDeniedError("chat", "c1", "u2")

    assert str(missing) == "Artifact 'a1' not found"
    assert "u2" in str(denied) and "c1" in str(denied)
    assert isinstance(missing, WorldVaultError)


def test_seed_import_error_lists_committed_categories():
    error = SeedImportError("chats", ["world", "users"], RuntimeError("disk full"))

    assert error.category == "chats"
    assert error.committed == ("world", "users")
    assert "already committed: world, users" in str(error)
    assert "disk full" in str(error)
