"""Typed artifact content.

Content is a tagged union keyed by the artifact kind. Each variant maps to
exactly one storage slot, so "exactly one slot populated" holds by
construction.

Usage:
    TextContent("# Notes")
    UrlContent("https://cdn.example.com/cat.png")
    SiteContent(SiteDefinition(blocks=[SiteBlock(type="hero", slots={...})]))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ContentSlot(Enum):
    """Storage slot a payload occupies."""

    TEXT = "content_text"
    URL = "content_url"
    SITE = "content_site_definition"


class SiteSlot(BaseModel):
    """Reference from a site block slot to an artifact."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    artifact_id: str = Field(alias="artifactId")


class SiteBlock(BaseModel):
    """One block of a site, e.g. ``hero`` or ``useful-links``."""

    model_config = ConfigDict(extra="allow")

    type: str
    slots: dict[str, SiteSlot] = Field(default_factory=dict)


class SiteDefinition(BaseModel):
    """Structured definition stored in the site slot."""

    model_config = ConfigDict(extra="allow")

    theme: str = "default"
    blocks: list[SiteBlock] = Field(default_factory=list)
    reasoning: str | None = None

    def artifact_ids(self) -> list[str]:
        """Artifact ids referenced by block slots, first occurrence order."""
        seen: list[str] = []
        for block in self.blocks:
            for slot in block.slots.values():
                if slot.artifact_id not in seen:
                    seen.append(slot.artifact_id)
        return seen

    def to_json_dict(self) -> dict:
        """JSON-ready dict using wire aliases (``artifactId``)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(frozen=True, slots=True)
class TextContent:
    """Plain text, code, tabular text, or a structured sub-kind's JSON document."""

    text: str

    slot = ContentSlot.TEXT


@dataclass(frozen=True, slots=True)
class UrlContent:
    """Pointer to binary content such as an image. Never the bytes."""

    url: str

    slot = ContentSlot.URL


@dataclass(frozen=True, slots=True, eq=True)
class SiteContent:
    """Validated site definition."""

    definition: SiteDefinition

    slot = ContentSlot.SITE


type ContentPayload = TextContent | UrlContent | SiteContent
