"""Snapshot manifest, conflict strategy and report models.

The manifest is the ``seed.json`` document written by export and read by
analysis, validation and import. Entity rows are kept as plain JSON dicts
here; ``worldvault.seed.serialization`` converts them to records.

Usage:
    strategy = ConflictStrategy.parse(
        {"world": "merge", "users": "skip", "artifacts": "rename",
         "chats": "overwrite", "blobs": "replace"}
    )
    report = manager.analyze_conflicts("demo-1_local-dev_2026-01-01T00-00-00")
    report.risk  # ConflictRisk.MEDIUM
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic import ValidationError as PydanticValidationError

from worldvault.core.errors import ValidationError

SEED_FORMAT_VERSION = "1.0.0"

HIGH_RISK_THRESHOLD = 3
"""More entity conflicts than this classify an import as high risk."""


class WorldResolution(Enum):
    """What to do with an existing world metadata row."""

    REPLACE = "replace"
    MERGE = "merge"
    SKIP = "skip"


class EntityResolution(Enum):
    """What to do with snapshot rows whose id already exists in the target."""

    REPLACE = "replace"
    MERGE = "merge"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"


class ConflictRisk(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConflictStrategy(BaseModel):
    """Per-category resolution chosen by the importer.

    Unknown categories and unknown values are rejected at construction, so a
    bad payload never reaches storage.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    world: WorldResolution = WorldResolution.MERGE
    users: EntityResolution = EntityResolution.SKIP
    artifacts: EntityResolution = EntityResolution.SKIP
    chats: EntityResolution = EntityResolution.SKIP
    blobs: EntityResolution = EntityResolution.SKIP

    @classmethod
    def parse(cls, value: ConflictStrategy | Mapping[str, Any]) -> ConflictStrategy:
        """Validate a raw strategy payload.

        Raises:
            ValidationError: On unknown categories or resolution values.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls.model_validate(dict(value))
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid conflict strategy: {e}") from e

    @classmethod
    def replace_all(cls) -> ConflictStrategy:
        """Every category replaces what it collides with."""
        return cls(
            world=WorldResolution.REPLACE,
            users=EntityResolution.REPLACE,
            artifacts=EntityResolution.REPLACE,
            chats=EntityResolution.REPLACE,
            blobs=EntityResolution.REPLACE,
        )


class SeedSource(BaseModel):
    """Where a snapshot was taken from."""

    model_config = ConfigDict(populate_by_name=True)

    world_id: str = Field(alias="worldId")
    environment: str
    timestamp: str


class BlobReference(BaseModel):
    """Pointer to one binary object used by the snapshot's rows.

    ``key`` is set for objects managed by the blob store; external URLs only
    carry ``url``. ``path`` is set when the bytes were copied beside the
    manifest (relative to the snapshot's ``blob/`` directory).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    filename: str
    key: str | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    size: int | None = None
    path: str | None = None
    artifact_id: str | None = Field(default=None, alias="artifactId")
    chat_id: str | None = Field(default=None, alias="chatId")


class SeedWorld(BaseModel):
    """World metadata and every row tagged with the world."""

    metadata: dict[str, Any]
    users: list[dict[str, Any]] = Field(default_factory=list)
    artifacts: list[dict[str, Any]] = Field(default_factory=list)
    chats: list[dict[str, Any]] = Field(default_factory=list)
    blobs: list[BlobReference] = Field(default_factory=list)

    @property
    def world_id(self) -> str:
        return str(self.metadata["id"])


class SeedManifest(BaseModel):
    """Contents of ``seed.json``."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = SEED_FORMAT_VERSION
    created_at: str = Field(alias="createdAt")
    source: SeedSource
    world: SeedWorld

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ConflictReport(BaseModel):
    """Result of comparing a snapshot against the current target store.

    Conflicts are ids present in the target whose stored rows differ from
    the snapshot's rows. Rows identical to the snapshot are not conflicts.
    """

    world_id: str
    world_exists: bool
    conflicting_users: list[str] = Field(default_factory=list)
    conflicting_artifacts: list[str] = Field(default_factory=list)
    conflicting_chats: list[str] = Field(default_factory=list)
    missing_blobs: list[str] = Field(default_factory=list)
    orphaned_blobs: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_conflicts(self) -> int:
        return (
            len(self.conflicting_users)
            + len(self.conflicting_artifacts)
            + len(self.conflicting_chats)
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def risk(self) -> ConflictRisk:
        return classify_risk(self.world_exists, self.total_conflicts)


def classify_risk(world_exists: bool, total_conflicts: int) -> ConflictRisk:
    """Risk of importing given the target's state.

    Low only for a fresh world without conflicts; high above
    ``HIGH_RISK_THRESHOLD`` conflicts regardless of the world.
    """
    if total_conflicts > HIGH_RISK_THRESHOLD:
        return ConflictRisk.HIGH
    if not world_exists and total_conflicts == 0:
        return ConflictRisk.LOW
    return ConflictRisk.MEDIUM


class CategoryReport(BaseModel):
    """Outcome of one import category.

    ``inserted`` includes ids written under a new name; ``renamed`` maps the
    snapshot id to that name.
    """

    inserted: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    renamed: dict[str, str] = Field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        return {
            "inserted": len(self.inserted),
            "updated": len(self.updated),
            "deleted": len(self.deleted),
            "skipped": len(self.skipped),
            "renamed": len(self.renamed),
        }


class ImportReport(BaseModel):
    """Per-category results of a completed import."""

    world_id: str
    world: str
    users: CategoryReport = Field(default_factory=CategoryReport)
    chats: CategoryReport = Field(default_factory=CategoryReport)
    artifacts: CategoryReport = Field(default_factory=CategoryReport)
    blobs: CategoryReport = Field(default_factory=CategoryReport)
