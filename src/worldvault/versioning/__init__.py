"""Artifact versioning: append-only rows with latest-wins resolution."""

from worldvault.versioning.models import Page, VersionedArtifact
from worldvault.versioning.store import ArtifactVersionStore
from worldvault.versioning.summary import SummaryDispatcher

__all__ = [
    "ArtifactVersionStore",
    "Page",
    "SummaryDispatcher",
    "VersionedArtifact",
]
