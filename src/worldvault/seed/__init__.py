"""World snapshots: export, conflict analysis and strategy-driven import."""

from worldvault.seed.blobs import BlobStore, LocalBlobStore
from worldvault.seed.manager import SeedConflictManager, default_snapshot_name
from worldvault.seed.models import (
    BlobReference,
    CategoryReport,
    ConflictReport,
    ConflictRisk,
    ConflictStrategy,
    EntityResolution,
    ImportReport,
    SeedManifest,
    WorldResolution,
    classify_risk,
)

__all__ = [
    "SeedConflictManager",
    "default_snapshot_name",
    "BlobStore",
    "LocalBlobStore",
    "BlobReference",
    "CategoryReport",
    "ConflictReport",
    "ConflictRisk",
    "ConflictStrategy",
    "EntityResolution",
    "ImportReport",
    "SeedManifest",
    "WorldResolution",
    "classify_risk",
]
