"""Publication tracking: multi-source, TTL-bounded visibility."""

from worldvault.publication.operations import (
    active_publications,
    add_publication,
    is_active,
    is_chat_published,
    is_published,
    is_published_as_site,
    is_published_from_source,
    replace_publication,
    revoke_publication,
)
from worldvault.publication.tracker import NEVER_EXPIRES, ChatPublication, PublicationTracker

__all__ = [
    "PublicationTracker",
    "ChatPublication",
    "NEVER_EXPIRES",
    "is_active",
    "is_published",
    "is_published_as_site",
    "is_published_from_source",
    "is_chat_published",
    "active_publications",
    "add_publication",
    "revoke_publication",
    "replace_publication",
]
