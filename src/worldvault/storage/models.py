"""Query descriptors understood by every storage backend."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from worldvault.core.types import ArtifactKind


class EntityType(Enum):
    """World-tagged tables. Iteration order is the seed import order."""

    USERS = "users"
    CHATS = "chats"
    ARTIFACTS = "artifacts"


@dataclass(frozen=True, slots=True)
class ArtifactQuery:
    """Listing filter for ``Storage.query_artifacts``.

    Only live logical artifacts (latest row not soft-deleted) are listed. With
    ``group_by_versions`` filters apply to the latest row and one row per id is
    returned; without it every version row of a live artifact is matched on
    its own. Results are ordered newest first.

    Attributes:
        user_id: Owner filter; None lists every owner in scope.
        kind: Kind filter.
        search: Case-insensitive substring matched on title, summary and text.
        group_by_versions: Collapse versions to the latest row per id.
        offset: Rows to skip after ordering.
        limit: Maximum rows to return; None returns the rest.
    """

    user_id: str | None = None
    kind: ArtifactKind | None = None
    search: str | None = None
    group_by_versions: bool = True
    offset: int = 0
    limit: int | None = None
