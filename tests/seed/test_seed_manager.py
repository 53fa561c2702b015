"""Tests for SeedConflictManager.

Focus: snapshot layout, conflict analysis against a target store, strategy
application, renames that keep references intact, per-category atomicity.
"""

import json

import pytest

from worldvault.core.content import UrlContent
from worldvault.core.errors import NotFoundError, SeedImportError, ValidationError
from worldvault.core.models import Chat, PublicationSource, User
from worldvault.core.types import ArtifactKind, Environment
from worldvault.publication.tracker import PublicationTracker
from worldvault.seed import (
    ConflictRisk,
    ConflictStrategy,
    LocalBlobStore,
    SeedConflictManager,
    default_snapshot_name,
)
from worldvault.storage.local import LocalStorage
from worldvault.storage.models import EntityType
from worldvault.storage.sql import SqlStorage
from worldvault.tracing import EventKind
from worldvault.versioning import ArtifactVersionStore
from worldvault.world.context import WorldScope
from worldvault.world.registry import WorldRegistry

WORLD = "demo-1"
SCOPE = WorldScope(WORLD)


def populate(storage, blobs, clock):
    """A world with one user, one published chat, an image and a two-version note."""
    WorldRegistry(storage, clock).create_world(
        "Demo",
        Environment.LOCAL_DEV,
        world_id=WORLD,
        tags=("demo",),
        settings={"theme": "dark"},
    )
    storage.insert_user(User("u1", "ada@example.com", "Ada"), SCOPE)
    storage.insert_chat(Chat("c1", clock.now, "Launch chat", "u1"), SCOPE)

    store = ArtifactVersionStore(storage, clock=clock)
    url = blobs.put(f"{WORLD}/cat.png", b"png-bytes")
    store.save(ArtifactKind.IMAGE, url, "Cat", "u1", artifact_id="img", scope=SCOPE)
    store.save(ArtifactKind.TEXT, "v1", "Note", "u1", artifact_id="note", scope=SCOPE)
    clock.advance(seconds=1)
    store.save(ArtifactKind.TEXT, "v2", "Note", "u1", artifact_id="note", scope=SCOPE)
    PublicationTracker(storage, clock).publish_chat("c1", "u1", ["note"], scope=SCOPE)


def empty_like(storage):
    return LocalStorage() if isinstance(storage, LocalStorage) else SqlStorage.in_memory()


def save_production_note(storage, clock):
    store = ArtifactVersionStore(storage, clock=clock)
    production = WorldScope.PRODUCTION
    store.save(ArtifactKind.TEXT, "prod", "Prod note", "u9", artifact_id="note", scope=production)


@pytest.fixture
def source_blobs(tmp_path):
    return LocalBlobStore(tmp_path / "source-blobs")


@pytest.fixture
def target_blobs(tmp_path):
    return LocalBlobStore(tmp_path / "target-blobs")


@pytest.fixture
def exporter(storage, source_blobs, tmp_path, clock, sink):
    populate(storage, source_blobs, clock)
    return SeedConflictManager(storage, source_blobs, tmp_path / "seeds", sink=sink, clock=clock)


@pytest.fixture
def target(storage):
    return empty_like(storage)


@pytest.fixture
def importer(target, target_blobs, tmp_path, clock, sink):
    return SeedConflictManager(target, target_blobs, tmp_path / "seeds", sink=sink, clock=clock)


@pytest.fixture
def seed(exporter):
    return exporter.export_world(WORLD, "demo")


# Export


def test_export_writes_manifest_readme_and_blobs(exporter, tmp_path):
    path = exporter.export_world(WORLD, "demo")

    assert path == tmp_path / "seeds" / "demo"
    manifest = exporter.load_manifest("demo")
    assert manifest.version == "1.0.0"
    assert manifest.source.world_id == WORLD
    assert manifest.source.environment == "local-dev"
    assert manifest.world.metadata["name"] == "Demo"
    assert [row["id"] for row in manifest.world.users] == ["u1"]
    assert [row["id"] for row in manifest.world.chats] == ["c1"]
    assert sorted(row["id"] for row in manifest.world.artifacts) == ["img", "note", "note"]

    [ref] = manifest.world.blobs
    assert (ref.id, ref.path, ref.size) == (f"{WORLD}/cat.png", f"{WORLD}/cat.png", 9)
    assert (ref.content_type, ref.artifact_id) == ("image/png", "img")
    assert (path / "blob" / WORLD / "cat.png").read_bytes() == b"png-bytes"

    readme = (path / "README.md").read_text(encoding="utf-8")
    assert readme.startswith("# Seed Data: Demo")
    assert "**Artifact versions:** 3" in readme


def test_manifest_json_uses_camel_case(exporter, seed):
    """Manifest keys match the database column naming.

    Why: Snapshots are exchanged with tools reading the same rows.
    """
    raw = json.loads((seed / "seed.json").read_text(encoding="utf-8"))

    assert raw["source"]["worldId"] == WORLD
    assert "createdAt" in raw
    assert raw["world"]["blobs"][0]["contentType"] == "image/png"
    note = next(row for row in raw["world"]["artifacts"] if row["contentText"] == "v2")
    assert note["publicationState"][0]["sourceId"] == "c1"
    assert "worldId" not in note


def test_export_uses_default_snapshot_name(exporter, clock):
    path = exporter.export_world(WORLD)

    assert path.name == default_snapshot_name(WORLD, Environment.LOCAL_DEV, clock.now)
    assert path.name == "demo-1_local-dev_2026-01-01T12-00-01+00-00"
    assert exporter.list_seeds() == [path.name]


def test_export_without_blobs(exporter):
    path = exporter.export_world(WORLD, "light", include_blobs=False)

    assert exporter.load_manifest(path).world.blobs == []
    assert not (path / "blob").exists()


def test_export_unknown_world_fails(exporter):
    with pytest.raises(NotFoundError, match="World 'missing' not found"):
        exporter.export_world("missing")


def test_list_seeds_only_lists_snapshot_directories(exporter, tmp_path):
    exporter.export_world(WORLD, "b-snap")
    exporter.export_world(WORLD, "a-snap")
    (tmp_path / "seeds" / "scratch").mkdir()

    assert exporter.list_seeds() == ["a-snap", "b-snap"]
    assert SeedConflictManager(LocalStorage(), seeds_directory=tmp_path / "none").list_seeds() == []


# Validation


def test_valid_snapshot_has_no_problems(exporter, seed):
    assert exporter.validate_seed(seed) == []


def test_validate_reports_every_problem(exporter, seed):
    seed_file = seed / "seed.json"
    raw = json.loads(seed_file.read_text(encoding="utf-8"))
    raw["version"] = "9.9"
    raw["source"]["worldId"] = "other"
    raw["world"]["users"] += [dict(raw["world"]["users"][0]), {"email": "x@example.com"}]
    raw["world"]["artifacts"][0]["kind"] = "hologram"
    seed_file.write_text(json.dumps(raw), encoding="utf-8")
    (seed / "blob" / WORLD / "cat.png").unlink()

    problems = exporter.validate_seed(seed)

    assert "Unsupported seed version '9.9'" in problems
    assert "Source world 'other' does not match metadata id 'demo-1'" in problems
    assert "User #1: duplicate u1" in problems
    assert any(problem.startswith("User #2:") for problem in problems)
    assert any(problem.startswith("Artifact #0:") for problem in problems)
    assert f"Missing blob file: {WORLD}/cat.png" in problems


def test_validate_unreadable_snapshots(exporter, tmp_path):
    broken = tmp_path / "seeds" / "broken"
    broken.mkdir(parents=True)
    (broken / "seed.json").write_text("{", encoding="utf-8")

    [missing] = exporter.validate_seed(tmp_path / "nowhere")
    [invalid] = exporter.validate_seed("broken")

    assert "not found" in missing
    assert invalid.startswith("Invalid seed manifest")


# Conflict analysis


def test_own_export_has_no_conflicts(exporter, seed):
    report = exporter.analyze_conflicts(seed)

    assert report.world_exists
    assert report.total_conflicts == 0
    assert report.missing_blobs == []
    assert report.orphaned_blobs == []
    assert report.risk is ConflictRisk.MEDIUM


def test_empty_target_is_low_risk(importer, seed):
    report = importer.analyze_conflicts(seed)

    assert not report.world_exists
    assert report.total_conflicts == 0
    assert report.risk is ConflictRisk.LOW
    assert report.missing_blobs == [f"{WORLD}/cat.png"]


def test_changed_rows_conflict(storage, exporter, clock):
    """Ids whose rows changed since the export count as conflicts.

    Why: Importing over them would lose the newer target data.
    """
    store = ArtifactVersionStore(storage, clock=clock)
    for artifact_id in ("a1", "a2"):
        store.save(ArtifactKind.TEXT, "x", artifact_id, "u1", artifact_id=artifact_id, scope=SCOPE)
    path = exporter.export_world(WORLD, "four")

    clock.advance(seconds=1)
    for artifact_id in ("a1", "a2", "note"):
        store.save(ArtifactKind.TEXT, "y", artifact_id, "u1", artifact_id=artifact_id, scope=SCOPE)
    report = exporter.analyze_conflicts(path)
    assert sorted(report.conflicting_artifacts) == ["a1", "a2", "note"]
    assert report.risk is ConflictRisk.MEDIUM

    dog = "https://cdn.example.com/dog.png"
    store.save(ArtifactKind.IMAGE, dog, "Dog", "u1", artifact_id="img", scope=SCOPE)
    report = exporter.analyze_conflicts(path)

    assert sorted(report.conflicting_artifacts) == ["a1", "a2", "img", "note"]
    assert report.risk is ConflictRisk.HIGH


def test_ids_in_other_worlds_conflict(importer, target, clock, seed):
    target.insert_user(User("u1", "someone@example.com"), WorldScope("other"))
    save_production_note(target, clock)

    report = importer.analyze_conflicts(seed)

    assert not report.world_exists
    assert report.conflicting_users == ["u1"]
    assert report.conflicting_artifacts == ["note"]
    assert report.conflicting_chats == []
    assert report.risk is ConflictRisk.MEDIUM


def test_blob_drift_is_reported(importer, target_blobs, seed):
    target_blobs.put(f"{WORLD}/old.png", b"stale")
    target_blobs.put("demo-10/other.png", b"not ours")

    report = importer.analyze_conflicts(seed)

    assert report.missing_blobs == [f"{WORLD}/cat.png"]
    assert report.orphaned_blobs == [f"{WORLD}/old.png"]


# Import


def test_round_trip_into_empty_target(importer, target, target_blobs, clock, sink, seed):
    """Export then import with replace reproduces the world exactly.

    Why: Snapshots are how worlds move between environments.
    """
    report = importer.import_seed("demo", ConflictStrategy.replace_all())

    assert report.world == "created"
    assert report.users.inserted == ["u1"]
    assert report.chats.inserted == ["c1"]
    assert sorted(report.artifacts.inserted) == ["img", "note"]
    assert report.blobs.inserted == [f"{WORLD}/cat.png"]

    after = importer.analyze_conflicts(seed)
    assert after.world_exists
    assert after.total_conflicts == 0
    assert after.missing_blobs == []
    assert after.orphaned_blobs == []

    store = ArtifactVersionStore(target, clock=clock)
    latest = store.get_latest("note", scope=SCOPE)
    assert latest.artifact.content.text == "v2"
    assert latest.total_versions == 2
    tracker = PublicationTracker(target, clock)
    assert tracker.is_published(latest.artifact)
    assert tracker.is_chat_published(target.get_chat("c1", SCOPE))
    assert target_blobs.get(f"{WORLD}/cat.png") == b"png-bytes"
    assert target.get_world(WORLD).tags == ("demo",)

    committed = [event for event in sink.events if event.kind is EventKind.SEED_CATEGORY_COMMITTED]
    assert [event.attributes["category"] for event in committed] == [
        "world",
        "users",
        "chats",
        "artifacts",
        "blobs",
    ]


def test_invalid_strategy_rejected_before_any_write(importer, target, target_blobs, sink, seed):
    with pytest.raises(ValidationError, match="Invalid conflict strategy"):
        importer.import_seed(seed, {"artifacts": "explode"})
    with pytest.raises(ValidationError):
        importer.import_seed(seed, {"widgets": "skip"})

    assert target.get_world(WORLD) is None
    assert target.find_existing_ids(EntityType.USERS, ["u1"]) == set()
    assert target_blobs.list_keys() == []
    assert sink.events == ()


def test_rename_keeps_references_intact(importer, target, target_blobs, clock, seed):
    """Renamed users, artifacts and blobs are rewritten everywhere they are referenced.

    Why: A renamed row that still points at the old id would point into another world.
    """
    target.insert_user(User("u1", "someone@example.com"), WorldScope("other"))
    save_production_note(target, clock)
    target_blobs.put(f"{WORLD}/cat.png", b"old")

    report = importer.import_seed(
        seed, {"users": "rename", "artifacts": "rename", "chats": "rename", "blobs": "rename"}
    )

    assert report.users.renamed == {"u1": "u1_imported_1"}
    assert report.artifacts.renamed == {"note": "note_imported_1"}
    assert sorted(report.artifacts.inserted) == ["img", "note_imported_1"]
    assert report.chats.renamed == {}
    assert report.blobs.renamed == {f"{WORLD}/cat.png": f"{WORLD}/cat_imported_1.png"}

    assert target.get_user("u1_imported_1", SCOPE).email == "ada@example.com"
    assert target.get_chat("c1", SCOPE).user_id == "u1_imported_1"
    image = target.latest_artifact("img", SCOPE)
    assert image.content == UrlContent(f"blob://{WORLD}/cat_imported_1.png")
    assert image.user_id == "u1_imported_1"
    note = target.latest_artifact("note_imported_1", SCOPE)
    assert [(entry.source, entry.source_id) for entry in note.publication_state] == [
        (PublicationSource.VIA_CONVERSATION, "c1")
    ]

    assert target.latest_artifact("note", WorldScope.PRODUCTION).content.text == "prod"
    assert target.get_user("u1", WorldScope("other")).email == "someone@example.com"
    assert target_blobs.get(f"{WORLD}/cat.png") == b"old"
    assert target_blobs.get(f"{WORLD}/cat_imported_1.png") == b"png-bytes"


def test_skip_then_overwrite_existing_artifacts(importer, target, clock, seed):
    importer.import_seed(seed, ConflictStrategy.replace_all())
    store = ArtifactVersionStore(target, clock=clock)
    clock.advance(seconds=1)
    store.save(ArtifactKind.TEXT, "v3", "Note", "u1", artifact_id="note", scope=SCOPE)

    skipped = importer.import_seed(seed, {"artifacts": "skip"})

    assert skipped.world == "merged"
    assert sorted(skipped.artifacts.skipped) == ["img", "note"]
    assert skipped.users.skipped == ["u1"]
    assert skipped.blobs.skipped == [f"{WORLD}/cat.png"]
    assert store.get_latest("note", scope=SCOPE).artifact.content.text == "v3"

    overwritten = importer.import_seed(seed, {"artifacts": "overwrite"})

    assert sorted(overwritten.artifacts.updated) == ["img", "note"]
    latest = store.get_latest("note", scope=SCOPE)
    assert latest.artifact.content.text == "v2"
    assert latest.total_versions == 2


@pytest.mark.parametrize(
    "strategy",
    [
        ConflictStrategy.replace_all(),
        {"users": "overwrite", "chats": "overwrite", "artifacts": "overwrite"},
    ],
    ids=["replace", "overwrite"],
)
def test_replace_and_overwrite_never_touch_other_worlds(
    importer, target, clock, seed, strategy
):
    """Ids held by another world are imported under a fresh id instead of removed.

    Why: Destructive resolutions only apply to the world being imported into.
    """
    target.insert_user(User("u1", "someone@example.com"), WorldScope("other"))
    save_production_note(target, clock)

    report = importer.import_seed(seed, strategy)

    assert report.users.renamed == {"u1": "u1_imported_1"}
    assert report.artifacts.renamed == {"note": "note_imported_1"}
    assert report.users.deleted == report.artifacts.deleted == []
    assert report.users.updated == report.artifacts.updated == []

    production_note = target.latest_artifact("note", WorldScope.PRODUCTION)
    assert production_note is not None
    assert production_note.content.text == "prod"
    assert target.get_user("u1", WorldScope("other")).email == "someone@example.com"
    assert target.count_world("other") == {"users": 1, "chats": 0, "artifacts": 0}

    assert target.get_chat("c1", SCOPE).user_id == "u1_imported_1"
    imported = ArtifactVersionStore(target, clock=clock).get_latest("note_imported_1", scope=SCOPE)
    assert imported.artifact.content.text == "v2"
    assert imported.total_versions == 2
    assert target.latest_artifact("note", SCOPE) is None


@pytest.mark.parametrize(
    ("resolution", "action", "name", "tags", "settings"),
    [
        ("merge", "merged", "Demo", ("local", "demo"), {"keep": True, "theme": "dark"}),
        ("skip", "skipped", "Target", ("local",), {"keep": True}),
        ("replace", "replaced", "Demo", ("demo",), {"theme": "dark"}),
    ],
)
def test_world_resolutions(importer, target, clock, seed, resolution, action, name, tags, settings):
    """World metadata follows the world resolution; entity categories still run.

    Why: Skipping the metadata must not silently drop the world's rows.
    """
    WorldRegistry(target, clock).create_world(
        "Target", Environment.LOCAL_DEV, world_id=WORLD, tags=("local",), settings={"keep": True}
    )

    report = importer.import_seed(seed, {"world": resolution})

    meta = target.get_world(WORLD)
    assert report.world == action
    assert (meta.name, meta.tags, meta.settings) == (name, tags, settings)
    assert report.users.inserted == ["u1"]
    assert target.get_user("u1", SCOPE) is not None


class FailingArtifactStorage(LocalStorage):
    """Fails on the second artifact row it is asked to insert."""

    def __init__(self):
        super().__init__()
        self.artifact_inserts = 0

    def insert_artifact(self, artifact, scope):
        self.artifact_inserts += 1
        if self.artifact_inserts > 1:
            raise RuntimeError("disk full")
        return super().insert_artifact(artifact, scope)


def test_failed_category_rolls_back_and_reports_committed(
    seed, target_blobs, tmp_path, clock, sink
):
    """A failing category leaves no partial rows; earlier categories stay committed.

    Why: Operators resume from the reported category instead of re-importing blind.
    """
    target = FailingArtifactStorage()
    manager = SeedConflictManager(target, target_blobs, tmp_path / "seeds", sink=sink, clock=clock)

    with pytest.raises(SeedImportError) as info:
        manager.import_seed(seed, ConflictStrategy.replace_all())

    assert info.value.category == "artifacts"
    assert info.value.committed == ("world", "users", "chats")
    assert target.get_world(WORLD) is not None
    assert target.get_user("u1", SCOPE) is not None
    assert target.get_chat("c1", SCOPE) is not None
    assert target.find_existing_ids(EntityType.ARTIFACTS, ["img", "note"]) == set()
    assert target_blobs.list_keys() == []

    failed = sink.events[-1]
    assert failed.kind is EventKind.SEED_CATEGORY_FAILED
    assert failed.attributes["category"] == "artifacts"
    assert failed.attributes["committed"] == ["world", "users", "chats"]
    assert "disk full" in failed.attributes["error"]
