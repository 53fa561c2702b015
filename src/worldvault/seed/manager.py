"""SeedConflictManager: world export, conflict analysis and import.

A snapshot ("seed") is a directory:

    <seeds_directory>/<snapshot_name>/
        seed.json     manifest, see ``worldvault.seed.models.SeedManifest``
        README.md     human summary
        blob/<key>    copied binary objects (only when exported with blobs)

Import runs one storage transaction per category, in the order world,
users, chats, artifacts, blobs. A failing category is rolled back and
reported with the categories committed before it; those stay applied.
Imports into the same world must be serialized by the caller.

Usage:
    manager = SeedConflictManager(storage, LocalBlobStore("blobs"), Path("seeds"))
    path = manager.export_world("demo-1")
    report = manager.analyze_conflicts(path)
    if report.risk is not ConflictRisk.HIGH:
        manager.import_seed(path, {"world": "merge", "users": "skip",
                                   "artifacts": "rename", "chats": "skip",
                                   "blobs": "replace"})
"""

from __future__ import annotations

import dataclasses
import logging
import mimetypes
import posixpath
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from worldvault.core.content import extract_blob_urls
from worldvault.core.errors import NotFoundError, SeedImportError, ValidationError
from worldvault.core.models import Artifact, Chat, User, WorldMeta
from worldvault.core.types import Clock, Environment, ensure_utc, utc_now
from worldvault.seed.blobs import BlobStore, LocalBlobStore, world_prefix
from worldvault.seed.models import (
    SEED_FORMAT_VERSION,
    BlobReference,
    CategoryReport,
    ConflictReport,
    ConflictStrategy,
    EntityResolution,
    ImportReport,
    SeedManifest,
    SeedSource,
    SeedWorld,
    WorldResolution,
)
from worldvault.seed.serialization import (
    artifact_from_dict,
    artifact_to_dict,
    chat_from_dict,
    chat_to_dict,
    user_from_dict,
    user_to_dict,
    world_from_dict,
    world_to_dict,
)
from worldvault.seed.strategies import (
    CategoryPlan,
    plan_category,
    remap_artifact,
    remap_chat,
    remap_user,
    unique_blob_key,
    unique_id,
)
from worldvault.storage.models import EntityType
from worldvault.tracing import DiagnosticEvent, DiagnosticSink, EventKind, LoggingDiagnosticSink
from worldvault.world.context import WorldScope

if TYPE_CHECKING:
    from worldvault.config.settings import WorldVaultSettings
    from worldvault.storage.protocol import Storage

logger = logging.getLogger(__name__)

SEED_FILE = "seed.json"
README_FILE = "README.md"
BLOB_DIR = "blob"


def default_snapshot_name(world_id: str, environment: Environment, now: datetime) -> str:
    """``<world>_<environment>_<timestamp>`` with a filesystem-safe timestamp."""
    stamp = ensure_utc(now).isoformat().replace(":", "-").replace(".", "-")
    return f"{world_id}_{environment.value}_{stamp}"


@dataclasses.dataclass(frozen=True, slots=True)
class _SeedRecords:
    """Decoded snapshot rows, tagged with the snapshot's world."""

    meta: WorldMeta
    users: list[User]
    chats: list[Chat]
    artifacts: list[Artifact]
    blobs: list[BlobReference]


@dataclasses.dataclass(frozen=True, slots=True)
class _ImportPlan:
    users: CategoryPlan
    chats: CategoryPlan
    artifacts: CategoryPlan
    blobs: CategoryPlan
    blob_urls: Mapping[str, str]


class SeedConflictManager:
    """Exports worlds to snapshots and imports them under a conflict strategy.

    Args:
        storage: Target (and export source) store.
        blob_store: Binary object store; defaults to ``LocalBlobStore("blobs")``.
        seeds_directory: Directory holding snapshots.
        environment: Tier recorded in exported manifests.
        sink: Receives per-category import diagnostics.
        clock: Source of manifest and metadata timestamps.
    """

    def __init__(
        self,
        storage: Storage,
        blob_store: BlobStore | None = None,
        seeds_directory: Path | str = Path("seeds"),
        environment: Environment = Environment.LOCAL_DEV,
        *,
        sink: DiagnosticSink | None = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._blobs = blob_store if blob_store is not None else LocalBlobStore("blobs")
        self._seeds_directory = Path(seeds_directory)
        self._environment = environment
        self._sink = sink or LoggingDiagnosticSink()
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        storage: Storage,
        settings: WorldVaultSettings,
        *,
        sink: DiagnosticSink | None = None,
        clock: Clock = utc_now,
    ) -> SeedConflictManager:
        blobs = LocalBlobStore(settings.blob_root, settings.blob_base_url)
        return cls(
            storage,
            blobs,
            settings.seeds_directory,
            settings.environment,
            sink=sink,
            clock=clock,
        )

    @property
    def seeds_directory(self) -> Path:
        return self._seeds_directory

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _emit(self, kind: EventKind, **attributes: Any) -> None:
        self._sink.emit(DiagnosticEvent(kind=kind, timestamp=self._now(), attributes=attributes))

    def seed_path(self, seed: Path | str) -> Path:
        """Directory of a snapshot given its path or its name under ``seeds_directory``."""
        path = Path(seed)
        if path.is_absolute() or path.exists():
            return path
        return self._seeds_directory / path

    # Export

    def export_world(
        self,
        world_id: str,
        snapshot_name: str | None = None,
        include_blobs: bool = True,
    ) -> Path:
        """Write a self-contained snapshot of one world.

        Args:
            world_id: World to export.
            snapshot_name: Directory name; defaults to ``default_snapshot_name``.
            include_blobs: Copy binary objects referenced by the world's rows.

        Returns:
            Snapshot directory.

        Raises:
            NotFoundError: ``World '<id>' not found``.
        """
        meta = self._storage.get_world(world_id)
        if meta is None:
            raise NotFoundError("World", world_id)

        now = self._now()
        name = snapshot_name or default_snapshot_name(world_id, self._environment, now)
        seed_dir = self._seeds_directory / name
        seed_dir.mkdir(parents=True, exist_ok=True)

        users = list(self._storage.world_rows(EntityType.USERS, world_id))
        chats = list(self._storage.world_rows(EntityType.CHATS, world_id))
        artifacts = list(self._storage.world_rows(EntityType.ARTIFACTS, world_id))
        blobs = self._export_blobs(artifacts, seed_dir) if include_blobs else []

        manifest = SeedManifest(
            version=SEED_FORMAT_VERSION,
            created_at=now.isoformat(),
            source=SeedSource(
                world_id=world_id,
                environment=self._environment.value,
                timestamp=now.isoformat(),
            ),
            world=SeedWorld(
                metadata=world_to_dict(meta),
                users=[user_to_dict(user) for user in users],
                artifacts=[artifact_to_dict(artifact) for artifact in artifacts],
                chats=[chat_to_dict(chat) for chat in chats],
                blobs=blobs,
            ),
        )
        (seed_dir / SEED_FILE).write_text(manifest.to_json(), encoding="utf-8")
        (seed_dir / README_FILE).write_text(render_readme(manifest, name), encoding="utf-8")

        logger.info(
            "Exported world '%s' to %s (users=%d, artifacts=%d, chats=%d, blobs=%d)",
            world_id,
            seed_dir,
            len(users),
            len(artifacts),
            len(chats),
            len(blobs),
        )
        return seed_dir

    def _export_blobs(self, artifacts: Iterable[Artifact], seed_dir: Path) -> list[BlobReference]:
        refs: dict[str, BlobReference] = {}
        for artifact in artifacts:
            for url in extract_blob_urls(artifact.content):
                if url in refs:
                    continue
                key = self._blobs.key_for_url(url)
                filename = posixpath.basename(urlparse(url).path) or key or url
                ref = BlobReference(
                    id=key or url,
                    url=url,
                    filename=filename,
                    key=key,
                    content_type=mimetypes.guess_type(filename)[0],
                    artifact_id=artifact.id,
                )
                if key is not None and self._blobs.exists(key):
                    data = self._blobs.get(key)
                    target = seed_dir / BLOB_DIR / key
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(data)
                    ref = ref.model_copy(update={"size": len(data), "path": key})
                refs[url] = ref
        return list(refs.values())

    # Reading snapshots

    def load_manifest(self, seed: Path | str) -> SeedManifest:
        """Parse ``seed.json`` of a snapshot.

        Raises:
            NotFoundError: If the snapshot has no manifest.
            ValidationError: If the manifest is not valid JSON or has the wrong shape.
        """
        seed_file = self.seed_path(seed) / SEED_FILE
        if not seed_file.is_file():
            raise NotFoundError("Seed file", seed_file)
        try:
            return SeedManifest.model_validate_json(seed_file.read_text(encoding="utf-8"))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid seed manifest {seed_file}: {e}") from e

    def _decode(self, manifest: SeedManifest) -> _SeedRecords:
        world = manifest.world
        meta = world_from_dict(world.metadata)
        return _SeedRecords(
            meta=meta,
            users=[user_from_dict(row, meta.id) for row in world.users],
            chats=[chat_from_dict(row, meta.id) for row in world.chats],
            artifacts=[artifact_from_dict(row, meta.id) for row in world.artifacts],
            blobs=list(world.blobs),
        )

    def list_seeds(self) -> list[str]:
        """Names of snapshot directories under ``seeds_directory``."""
        if not self._seeds_directory.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._seeds_directory.iterdir()
            if entry.is_dir() and (entry / SEED_FILE).is_file()
        )

    def validate_seed(self, seed: Path | str) -> list[str]:
        """Problems found in a snapshot; an empty list means it is importable."""
        seed_dir = self.seed_path(seed)
        try:
            manifest = self.load_manifest(seed_dir)
        except (NotFoundError, ValidationError) as e:
            return [str(e)]

        problems: list[str] = []
        if manifest.version != SEED_FORMAT_VERSION:
            problems.append(f"Unsupported seed version '{manifest.version}'")
        try:
            meta = world_from_dict(manifest.world.metadata)
        except ValidationError as e:
            problems.append(str(e))
        else:
            if manifest.source.world_id != meta.id:
                problems.append(
                    f"Source world '{manifest.source.world_id}' does not match "
                    f"metadata id '{meta.id}'"
                )

        problems.extend(_row_problems("User", manifest.world.users, user_from_dict, _record_id))
        problems.extend(_row_problems("Chat", manifest.world.chats, chat_from_dict, _record_id))
        problems.extend(
            _row_problems(
                "Artifact", manifest.world.artifacts, artifact_from_dict, _artifact_version
            )
        )

        blob_dir = seed_dir / BLOB_DIR
        for ref in manifest.world.blobs:
            if ref.path and not (blob_dir / ref.path).is_file():
                problems.append(f"Missing blob file: {ref.path}")
        return problems

    # Conflict analysis

    def analyze_conflicts(self, seed: Path | str) -> ConflictReport:
        """Compare a snapshot with the current target store.

        Raises:
            NotFoundError: If the snapshot has no manifest.
            ValidationError: If the manifest or one of its rows is malformed.
        """
        return self._analyze(self._decode(self.load_manifest(seed)))

    def _analyze(self, records: _SeedRecords) -> ConflictReport:
        world_id = records.meta.id
        referenced = {ref.key for ref in records.blobs if ref.key}
        return ConflictReport(
            world_id=world_id,
            world_exists=self._storage.get_world(world_id) is not None,
            conflicting_users=self._conflicts(
                EntityType.USERS, world_id, records.users, user_to_dict
            ),
            conflicting_artifacts=self._conflicts(
                EntityType.ARTIFACTS, world_id, records.artifacts, artifact_to_dict
            ),
            conflicting_chats=self._conflicts(
                EntityType.CHATS, world_id, records.chats, chat_to_dict
            ),
            missing_blobs=[
                ref.id for ref in records.blobs if ref.key and not self._blobs.exists(ref.key)
            ],
            orphaned_blobs=[
                key
                for key in self._blobs.list_keys(world_prefix(world_id))
                if key not in referenced
            ],
        )

    def _conflicts(
        self,
        entity: EntityType,
        world_id: str,
        incoming: list[Any],
        to_dict: Callable[[Any], dict[str, Any]],
    ) -> list[str]:
        """Snapshot ids present in the target with different rows.

        An id only present in another world always conflicts. Artifacts are
        compared across their whole version history.
        """
        snapshot = _group_rows(incoming, to_dict)
        existing = self._storage.find_existing_ids(entity, snapshot)
        if not existing:
            return []
        current = _group_rows(self._storage.world_rows(entity, world_id), to_dict)
        return [
            entity_id
            for entity_id, rows in snapshot.items()
            if entity_id in existing and current.get(entity_id) != rows
        ]

    # Import

    def import_seed(
        self, seed: Path | str, strategy: ConflictStrategy | Mapping[str, Any]
    ) -> ImportReport:
        """Apply a snapshot to the target store.

        The strategy and every snapshot row are validated before the first
        write.

        Raises:
            ValidationError: Invalid strategy or malformed snapshot; nothing was written.
            NotFoundError: If the snapshot has no manifest.
            SeedImportError: A category failed; earlier categories stay committed.
        """
        strategy = ConflictStrategy.parse(strategy)
        seed_dir = self.seed_path(seed)
        records = self._decode(self.load_manifest(seed_dir))
        world_id = records.meta.id

        analysis = self._analyze(records)
        logger.info(
            "Importing seed %s into world '%s' (exists=%s, conflicts=%d, risk=%s)",
            seed_dir,
            world_id,
            analysis.world_exists,
            analysis.total_conflicts,
            analysis.risk.value,
        )

        plan = self._plan(records, strategy)
        scope = WorldScope(world_id)
        committed: list[str] = []

        world_action = self._run_category(
            "world",
            world_id,
            committed,
            lambda: self._import_world(records.meta, strategy.world),
        )
        users = self._run_category(
            "users", world_id, committed, lambda: self._import_users(records, plan, scope)
        )
        chats = self._run_category(
            "chats", world_id, committed, lambda: self._import_chats(records, plan, scope)
        )
        artifacts = self._run_category(
            "artifacts", world_id, committed, lambda: self._import_artifacts(records, plan, scope)
        )
        blobs = self._run_category(
            "blobs", world_id, committed, lambda: self._import_blobs(records, plan, seed_dir)
        )

        logger.info("Seed import into world '%s' completed", world_id)
        return ImportReport(
            world_id=world_id,
            world=world_action,
            users=users,
            chats=chats,
            artifacts=artifacts,
            blobs=blobs,
        )

    def _plan(self, records: _SeedRecords, strategy: ConflictStrategy) -> _ImportPlan:
        world_id = records.meta.id

        def plan_entities(
            entity: EntityType, ids: list[str], resolution: EntityResolution
        ) -> CategoryPlan:
            def in_use(candidate: str) -> bool:
                return bool(self._storage.find_existing_ids(entity, [candidate]))

            located = self._storage.locate_ids(entity, ids)
            foreign = {entity_id for entity_id, worlds in located.items() if worlds - {world_id}}
            if foreign and resolution in (EntityResolution.REPLACE, EntityResolution.OVERWRITE):
                logger.warning(
                    "Renaming %d %s id(s) held outside world '%s'",
                    len(foreign),
                    entity.value,
                    world_id,
                )
            return plan_category(
                ids,
                set(located),
                resolution,
                rename_with=_avoiding(unique_id, in_use),
                foreign_ids=foreign,
            )

        blob_keys = [ref.key for ref in records.blobs if ref.key and ref.path]
        blobs = plan_category(
            blob_keys,
            {key for key in blob_keys if self._blobs.exists(key)},
            strategy.blobs,
            rename_with=_avoiding(unique_blob_key, self._blobs.exists),
        )
        blob_urls = {
            ref.url: self._blobs.url_for(blobs.rename[ref.key])
            for ref in records.blobs
            if ref.key in blobs.rename
        }
        return _ImportPlan(
            users=plan_entities(
                EntityType.USERS, [user.id for user in records.users], strategy.users
            ),
            chats=plan_entities(
                EntityType.CHATS, [chat.id for chat in records.chats], strategy.chats
            ),
            artifacts=plan_entities(
                EntityType.ARTIFACTS,
                [artifact.id for artifact in records.artifacts],
                strategy.artifacts,
            ),
            blobs=blobs,
            blob_urls=blob_urls,
        )

    def _run_category[T](
        self, category: str, world_id: str, committed: list[str], apply: Callable[[], T]
    ) -> T:
        try:
            with self._storage.transaction():
                result = apply()
        except Exception as e:
            logger.error(
                "Seed import category '%s' failed for world '%s': %s", category, world_id, e
            )
            self._emit(
                EventKind.SEED_CATEGORY_FAILED,
                category=category,
                world_id=world_id,
                committed=list(committed),
                error=str(e),
            )
            raise SeedImportError(category, committed, e) from e

        committed.append(category)
        counts = result.counts() if isinstance(result, CategoryReport) else {"action": result}
        self._emit(
            EventKind.SEED_CATEGORY_COMMITTED, category=category, world_id=world_id, **counts
        )
        return result

    def _import_world(self, meta: WorldMeta, resolution: WorldResolution) -> str:
        now = self._now()
        existing = self._storage.get_world(meta.id)
        if existing is None:
            self._storage.put_world(
                dataclasses.replace(meta, created_at=meta.created_at or now, updated_at=now)
            )
            return "created"

        match resolution:
            case WorldResolution.REPLACE:
                self._storage.delete_world(meta.id)
                self._storage.put_world(dataclasses.replace(meta, updated_at=now))
                return "replaced"
            case WorldResolution.MERGE:
                self._storage.put_world(_merge_world(existing, meta, now))
                return "merged"
            case WorldResolution.SKIP:
                return "skipped"
        raise ValueError(f"Unknown world resolution {resolution!r}")

    def _import_users(
        self, records: _SeedRecords, plan: _ImportPlan, scope: WorldScope
    ) -> CategoryReport:
        category = plan.users
        self._storage.delete_entities(EntityType.USERS, category.removals, scope)
        for user in records.users:
            if category.target_id(user.id) is not None:
                self._storage.insert_user(remap_user(user, category.rename), scope)
        return _category_report(category)

    def _import_chats(
        self, records: _SeedRecords, plan: _ImportPlan, scope: WorldScope
    ) -> CategoryReport:
        category = plan.chats
        self._storage.delete_entities(EntityType.CHATS, category.removals, scope)
        for chat in records.chats:
            if category.target_id(chat.id) is not None:
                self._storage.insert_chat(
                    remap_chat(chat, plan.users.rename, category.rename), scope
                )
        return _category_report(category)

    def _import_artifacts(
        self, records: _SeedRecords, plan: _ImportPlan, scope: WorldScope
    ) -> CategoryReport:
        category = plan.artifacts
        self._storage.delete_entities(EntityType.ARTIFACTS, category.removals, scope)
        for artifact in sorted(records.artifacts, key=lambda row: (row.id, row.key.sort_key())):
            if category.target_id(artifact.id) is None:
                continue
            row = remap_artifact(
                artifact,
                user_ids=plan.users.rename,
                chat_ids=plan.chats.rename,
                artifact_ids=category.rename,
                blob_urls=plan.blob_urls,
            )
            self._storage.insert_artifact(row, scope)
        return _category_report(category)

    def _import_blobs(
        self, records: _SeedRecords, plan: _ImportPlan, seed_dir: Path
    ) -> CategoryReport:
        """Copy snapshot blobs into the store, undoing every write on failure."""
        category = plan.blobs
        blob_dir = seed_dir / BLOB_DIR
        previous: dict[str, bytes | None] = {}
        try:
            for ref in records.blobs:
                if not ref.key or not ref.path:
                    continue
                key = category.target_id(ref.key)
                if key is None or key in previous:
                    continue
                data = (blob_dir / ref.path).read_bytes()
                previous[key] = self._blobs.get(key) if self._blobs.exists(key) else None
                self._blobs.put(key, data)
        except Exception:
            for key, data in previous.items():
                if data is None:
                    self._blobs.delete(key)
                else:
                    self._blobs.put(key, data)
            raise
        return _category_report(category)


def _avoiding(
    generate: Callable[[str, set[str]], str], in_use: Callable[[str], bool]
) -> Callable[[str, set[str]], str]:
    """Wrap an id generator so it also skips ids the target already uses."""

    def rename(base: str, taken: set[str]) -> str:
        taken = set(taken)
        candidate = generate(base, taken)
        while in_use(candidate):
            taken.add(candidate)
            candidate = generate(base, taken)
        return candidate

    return rename


def _category_report(plan: CategoryPlan) -> CategoryReport:
    return CategoryReport(
        inserted=[*plan.insert, *plan.replace, *plan.rename.values()],
        updated=list(plan.overwrite),
        deleted=list(plan.replace),
        skipped=list(plan.skip),
        renamed=dict(plan.rename),
    )


def _merge_world(existing: WorldMeta, incoming: WorldMeta, now: datetime) -> WorldMeta:
    """Snapshot name and description win; collections are unioned."""
    return dataclasses.replace(
        existing,
        name=incoming.name,
        description=incoming.description,
        settings={**existing.settings, **incoming.settings},
        tags=tuple(dict.fromkeys((*existing.tags, *incoming.tags))),
        users=_merge_embedded(existing.users, incoming.users),
        artifacts=_merge_embedded(existing.artifacts, incoming.artifacts),
        chats=_merge_embedded(existing.chats, incoming.chats),
        updated_at=now,
    )


def _merge_embedded(
    existing: tuple[dict[str, Any], ...], incoming: tuple[dict[str, Any], ...]
) -> tuple[dict[str, Any], ...]:
    known = {item.get("id") for item in existing}
    return existing + tuple(item for item in incoming if item.get("id") not in known)


def _group_rows(
    rows: Iterable[Any], to_dict: Callable[[Any], dict[str, Any]]
) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[tuple[Any, dict[str, Any]]]] = {}
    for row in rows:
        order = row.key.sort_key() if isinstance(row, Artifact) else 0
        grouped.setdefault(row.id, []).append((order, to_dict(row)))
    return {
        entity_id: [data for _, data in sorted(items, key=lambda item: item[0])]
        for entity_id, items in grouped.items()
    }


def _record_id(record: Any) -> object:
    return record.id


def _artifact_version(record: Artifact) -> object:
    return record.key


def _row_problems(
    entity: str,
    rows: list[dict[str, Any]],
    decode: Callable[[dict[str, Any]], Any],
    identity: Callable[[Any], object],
) -> list[str]:
    problems: list[str] = []
    seen: set[object] = set()
    for position, row in enumerate(rows):
        try:
            record = decode(row)
        except ValidationError as e:
            problems.append(f"{entity} #{position}: {e}")
            continue
        marker = identity(record)
        if marker in seen:
            problems.append(f"{entity} #{position}: duplicate {marker}")
        seen.add(marker)
    return problems


def render_readme(manifest: SeedManifest, snapshot_name: str) -> str:
    """Human-readable summary written beside ``seed.json``."""
    world = manifest.world
    name = world.metadata.get("name", world.world_id)
    return (
        f"# Seed Data: {name}\n"
        "\n"
        f"**Generated:** {manifest.created_at}\n"
        f"**Source World:** {manifest.source.world_id} ({manifest.source.environment})\n"
        f"**Version:** {manifest.version}\n"
        "\n"
        "## Contents\n"
        "\n"
        f"- **Users:** {len(world.users)}\n"
        f"- **Artifact versions:** {len(world.artifacts)}\n"
        f"- **Chats:** {len(world.chats)}\n"
        f"- **Blob Files:** {sum(1 for ref in world.blobs if ref.path)}"
        f" of {len(world.blobs)} references\n"
        "\n"
        "## Usage\n"
        "\n"
        "```python\n"
        f'manager.validate_seed("{snapshot_name}")\n'
        f'manager.analyze_conflicts("{snapshot_name}")\n'
        f'manager.import_seed("{snapshot_name}", ConflictStrategy.replace_all())\n'
        "```\n"
        "\n"
        "## Structure\n"
        "\n"
        "- `seed.json` - world metadata and rows\n"
        "- `blob/` - copied binary objects\n"
        "- `README.md` - this file\n"
    )
