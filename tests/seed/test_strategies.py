"""Tests for pure conflict-resolution planning and reference rewriting."""

from datetime import UTC, datetime

import pytest

from worldvault.core.content import SiteContent, SiteDefinition, TextContent, UrlContent
from worldvault.core.errors import ValidationError
from worldvault.core.models import Artifact, Chat, PublicationInfo, PublicationSource, User
from worldvault.core.types import ArtifactKind
from worldvault.seed.models import (
    ConflictRisk,
    ConflictStrategy,
    EntityResolution,
    WorldResolution,
    classify_risk,
)
from worldvault.seed.strategies import (
    plan_category,
    remap_artifact,
    remap_chat,
    remap_user,
    unique_blob_key,
    unique_id,
)

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def test_strategy_defaults_and_parsing():
    default = ConflictStrategy()
    parsed = ConflictStrategy.parse({"world": "replace", "artifacts": "rename"})

    assert default.world is WorldResolution.MERGE
    assert default.users is EntityResolution.SKIP
    assert parsed.world is WorldResolution.REPLACE
    assert parsed.artifacts is EntityResolution.RENAME
    assert ConflictStrategy.parse(parsed) is parsed


@pytest.mark.parametrize(
    "payload",
    [
        {"artifacts": "explode"},
        {"widgets": "skip"},
        {"world": "rename"},
        "replace",
    ],
)
def test_invalid_strategy_is_a_validation_error(payload):
    with pytest.raises(ValidationError, match="Invalid conflict strategy"):
        ConflictStrategy.parse(payload)


@pytest.mark.parametrize(
    ("world_exists", "total", "risk"),
    [
        (False, 0, ConflictRisk.LOW),
        (True, 0, ConflictRisk.MEDIUM),
        (False, 1, ConflictRisk.MEDIUM),
        (True, 3, ConflictRisk.MEDIUM),
        (False, 4, ConflictRisk.HIGH),
        (True, 4, ConflictRisk.HIGH),
    ],
)
def test_risk_classification(world_exists, total, risk):
    assert classify_risk(world_exists, total) is risk


def test_unique_id_skips_taken_names():
    assert unique_id("a1", set()) == "a1_imported_1"
    assert unique_id("a1", {"a1_imported_1", "a1_imported_2"}) == "a1_imported_3"


def test_unique_blob_key_keeps_directory_and_extension():
    assert unique_blob_key("w1/img/cat.png", set()) == "w1/img/cat_imported_1.png"
    assert unique_blob_key("w1/cat.png", {"w1/cat_imported_1.png"}) == "w1/cat_imported_2.png"


@pytest.mark.parametrize(
    ("resolution", "field"),
    [
        (EntityResolution.REPLACE, "replace"),
        (EntityResolution.OVERWRITE, "overwrite"),
        (EntityResolution.SKIP, "skip"),
        (EntityResolution.MERGE, "skip"),
    ],
)
def test_plan_routes_colliding_ids(resolution, field):
    plan = plan_category(["a", "b", "a"], {"b"}, resolution)

    assert plan.insert == ("a",)
    assert getattr(plan, field) == ("b",)


def test_plan_rename_avoids_snapshot_and_existing_ids():
    """New names collide neither with target ids nor with other snapshot ids.

    Why: A rename landing on another imported id would overwrite it.
    """
    plan = plan_category(["x", "x_imported_1"], {"x"}, EntityResolution.RENAME)

    assert plan.insert == ("x_imported_1",)
    assert plan.rename == {"x": "x_imported_2"}
    assert plan.target_id("x") == "x_imported_2"
    assert plan.target_id("x_imported_1") == "x_imported_1"


def test_plan_removals_and_skipped_target():
    plan = plan_category(["a", "b"], {"a", "b"}, EntityResolution.OVERWRITE)
    skipped = plan_category(["a"], {"a"}, EntityResolution.SKIP)

    assert plan.removals == ("a", "b")
    assert skipped.target_id("a") is None


@pytest.mark.parametrize("resolution", [EntityResolution.REPLACE, EntityResolution.OVERWRITE])
def test_plan_renames_ids_held_by_other_worlds(resolution):
    """Destructive resolutions rename ids that live outside the target world.

    Why: Removing them would delete rows belonging to another world.
    """
    plan = plan_category(["a", "b", "c"], {"a", "b"}, resolution, foreign_ids={"b", "z"})

    assert plan.insert == ("c",)
    assert plan.removals == ("a",)
    assert plan.rename == {"b": "b_imported_1"}
    assert plan.target_id("b") == "b_imported_1"


def test_foreign_ids_do_not_change_skip_or_rename():
    skipped = plan_category(["a"], {"a"}, EntityResolution.SKIP, foreign_ids={"a"})
    renamed = plan_category(["a"], {"a"}, EntityResolution.RENAME, foreign_ids={"a"})

    assert skipped.skip == ("a",)
    assert renamed.rename == {"a": "a_imported_1"}


def test_remap_user_and_chat():
    user = User("u1", "one@example.com")
    chat = Chat("c1", T0, "Chat", "u1")

    assert remap_user(user, {"u1": "u9"}).id == "u9"
    remapped = remap_chat(chat, {"u1": "u9"}, {"c1": "c9"})
    assert (remapped.id, remapped.user_id) == ("c9", "u9")


def test_remap_artifact_follows_every_reference():
    """Owner, author, publication sources, site slots and blob URLs are rewritten.

    Why: A renamed row must keep pointing at the rows it was exported with.
    """
    site = SiteDefinition.model_validate(
        {
            "blocks": [
                {
                    "type": "hero",
                    "slots": {"image": {"artifactId": "img"}},
                    "background": "blob://w1/bg.png",
                }
            ]
        }
    )
    artifact = Artifact(
        id="site",
        created_at=T0,
        title="Home",
        kind=ArtifactKind.SITE,
        content=SiteContent(site),
        user_id="u1",
        author_id="u1",
        publication_state=(
            PublicationInfo(PublicationSource.VIA_CONVERSATION, "c1", T0),
            PublicationInfo(PublicationSource.AS_SITE, "site", T0),
        ),
    )

    remapped = remap_artifact(
        artifact,
        user_ids={"u1": "u9"},
        chat_ids={"c1": "c9"},
        artifact_ids={"site": "site_2", "img": "img_2"},
        blob_urls={"blob://w1/bg.png": "blob://w1/bg_imported_1.png"},
    )

    assert remapped.id == "site_2"
    assert (remapped.user_id, remapped.author_id) == ("u9", "u9")
    assert [entry.source_id for entry in remapped.publication_state] == ["c9", "site_2"]
    document = remapped.content.definition.to_json_dict()
    assert document["blocks"][0]["slots"]["image"]["artifactId"] == "img_2"
    assert document["blocks"][0]["background"] == "blob://w1/bg_imported_1.png"


def test_remap_content_rewrites_urls_in_text_and_images():
    image = Artifact("i", T0, "Img", ArtifactKind.IMAGE, UrlContent("blob://w1/a.png"), "u1")
    text = Artifact("t", T0, "Txt", ArtifactKind.TEXT, TextContent("see blob://w1/a.png"), "u1")
    urls = {"blob://w1/a.png": "blob://w1/a_imported_1.png"}

    def remap(row):
        return remap_artifact(row, user_ids={}, chat_ids={}, artifact_ids={}, blob_urls=urls)

    assert remap(image).content == UrlContent("blob://w1/a_imported_1.png")
    assert remap(text).content == TextContent("see blob://w1/a_imported_1.png")
    assert remap(image).author_id is None
