"""Result types returned by the artifact version store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from worldvault.core.models import Artifact

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class VersionedArtifact:
    """A resolved artifact row plus its position in the version history.

    Attributes:
        artifact: The resolved row.
        version_index: 1-based position in ascending ``created_at`` order.
        total_versions: Number of rows sharing the logical id.
    """

    artifact: Artifact
    version_index: int
    total_versions: int

    @property
    def is_latest(self) -> bool:
        return self.version_index == self.total_versions


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    """One page of a listing.

    Attributes:
        data: Rows on this page, newest first.
        total_count: Matches across all pages.
        page: 1-based page number.
        page_size: Requested page size.
    """

    data: list[T] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total_count
