"""Typed artifact content: the payload union and its pure operations."""

from worldvault.core.content.models import (
    ContentPayload,
    ContentSlot,
    SiteBlock,
    SiteContent,
    SiteDefinition,
    SiteSlot,
    TextContent,
    UrlContent,
)
from worldvault.core.content.operations import (
    SLOT_BY_KIND,
    build_payload,
    display_text,
    extract_blob_urls,
    from_columns,
    is_structured,
    searchable_text,
    slot_for,
    to_columns,
)

__all__ = [
    "ContentPayload",
    "ContentSlot",
    "TextContent",
    "UrlContent",
    "SiteContent",
    "SiteDefinition",
    "SiteBlock",
    "SiteSlot",
    "SLOT_BY_KIND",
    "build_payload",
    "display_text",
    "extract_blob_urls",
    "from_columns",
    "is_structured",
    "searchable_text",
    "slot_for",
    "to_columns",
]
