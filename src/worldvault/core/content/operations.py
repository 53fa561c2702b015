"""Pure functions routing raw content into typed payloads and back.

Stateless helpers used by the version store, both storage backends and the
seed pipeline. All validation failures raise ``ValidationError`` so a bad
payload fails only the save it belongs to.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Mapping
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError as PydanticValidationError

from worldvault.core.content.models import (
    ContentPayload,
    ContentSlot,
    SiteContent,
    SiteDefinition,
    TextContent,
    UrlContent,
)
from worldvault.core.errors import ValidationError
from worldvault.core.types import ArtifactKind

_STRUCTURED_KINDS = frozenset(
    {
        ArtifactKind.ADDRESS,
        ArtifactKind.PERSON,
        ArtifactKind.LINK,
        ArtifactKind.FAQ_ITEM,
        ArtifactKind.SET,
        ArtifactKind.SET_DEFINITION,
    }
)

SLOT_BY_KIND: dict[ArtifactKind, ContentSlot] = {
    ArtifactKind.TEXT: ContentSlot.TEXT,
    ArtifactKind.CODE: ContentSlot.TEXT,
    ArtifactKind.SHEET: ContentSlot.TEXT,
    ArtifactKind.IMAGE: ContentSlot.URL,
    ArtifactKind.SITE: ContentSlot.SITE,
    **{kind: ContentSlot.TEXT for kind in _STRUCTURED_KINDS},
}

_BLOB_URL_PATTERN = re.compile(r"blob://[^\s\"'()<>]+")


def slot_for(kind: ArtifactKind) -> ContentSlot:
    """Storage slot used by a kind."""
    return SLOT_BY_KIND[kind]


def is_structured(kind: ArtifactKind) -> bool:
    """True for sub-kinds whose text slot holds a JSON object document."""
    return kind in _STRUCTURED_KINDS


def build_payload(
    kind: ArtifactKind, raw: str | Mapping[str, Any] | ContentPayload
) -> ContentPayload:
    """Validate raw content for a kind and wrap it in the matching variant.

    Args:
        kind: Artifact kind; selects the slot and its validation.
        raw: Text as received from a collaborator, a mapping for structured
            kinds, or an already-typed payload.

    Returns:
        Typed payload for the kind's slot.

    Raises:
        ValidationError: If the content does not fit the kind. Only free-text
            kinds (text, code, sheet) accept an empty string.
    """
    if isinstance(raw, TextContent | UrlContent | SiteContent):
        if raw.slot is not slot_for(kind):
            raise ValidationError(
                f"{type(raw).__name__} cannot hold content for kind '{kind.value}'"
            )
        return raw

    slot = slot_for(kind)
    if slot is ContentSlot.SITE:
        return SiteContent(_parse_site(raw))

    if isinstance(raw, Mapping):
        if not is_structured(kind):
            raise ValidationError(f"Kind '{kind.value}' expects text content, got a mapping")
        raw = json.dumps(raw, ensure_ascii=False)

    if not isinstance(raw, str):
        raise ValidationError(f"Content is required for kind '{kind.value}'")
    if not raw.strip() and (slot is ContentSlot.URL or is_structured(kind)):
        raise ValidationError(f"Content is required for kind '{kind.value}'")

    if slot is ContentSlot.URL:
        if not _is_url(raw):
            raise ValidationError("Image content must be a valid URL or data URI")
        return UrlContent(raw)

    if is_structured(kind):
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Kind '{kind.value}' content must be valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise ValidationError(f"Kind '{kind.value}' content must be a JSON object")
    return TextContent(raw)


def _parse_site(raw: str | Mapping[str, Any]) -> SiteDefinition:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Site content must be valid JSON: {e}") from e
    if not isinstance(raw, Mapping):
        raise ValidationError("Site content must be a JSON object")
    try:
        return SiteDefinition.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid site definition: {e}") from e


def _is_url(value: str) -> bool:
    if value.startswith("data:image/"):
        return True
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def display_text(payload: ContentPayload) -> str:
    """Single string rendering of any payload (API and summary input)."""
    match payload:
        case TextContent(text=text):
            return text
        case UrlContent(url=url):
            return url
        case SiteContent(definition=definition):
            return json.dumps(definition.to_json_dict(), ensure_ascii=False)
    raise TypeError(f"Unknown content payload {payload!r}")


def searchable_text(payload: ContentPayload) -> str | None:
    """Text matched by listing search; only the text slot is searchable."""
    if isinstance(payload, TextContent):
        return payload.text
    return None


def to_columns(payload: ContentPayload) -> dict[str, Any]:
    """Sparse column form: exactly one key is non-null."""
    columns: dict[str, Any] = {slot.value: None for slot in ContentSlot}
    match payload:
        case TextContent(text=text):
            columns[ContentSlot.TEXT.value] = text
        case UrlContent(url=url):
            columns[ContentSlot.URL.value] = url
        case SiteContent(definition=definition):
            columns[ContentSlot.SITE.value] = definition.to_json_dict()
    return columns


def from_columns(
    kind: ArtifactKind,
    content_text: str | None = None,
    content_url: str | None = None,
    content_site_definition: Mapping[str, Any] | None = None,
) -> ContentPayload:
    """Rebuild a payload from sparse columns.

    Raises:
        ValidationError: If the kind's slot is empty.
    """
    slot = slot_for(kind)
    if slot is ContentSlot.TEXT and content_text is not None:
        return TextContent(content_text)
    if slot is ContentSlot.URL and content_url is not None:
        return UrlContent(content_url)
    if slot is ContentSlot.SITE and content_site_definition is not None:
        return SiteContent(_parse_site(content_site_definition))
    raise ValidationError(f"Slot '{slot.value}' is empty for kind '{kind.value}'")


def extract_blob_urls(payload: ContentPayload) -> list[str]:
    """Binary references held by a payload, first occurrence order.

    Image URLs are always references. Text and site definitions are scanned
    for ``blob://`` pointers.
    """
    found: list[str] = []

    def add(url: str) -> None:
        if url not in found:
            found.append(url)

    match payload:
        case UrlContent(url=url):
            if not url.startswith("data:"):
                add(url)
        case TextContent(text=text):
            for url in _BLOB_URL_PATTERN.findall(text):
                add(url)
        case SiteContent(definition=definition):
            for value in _walk_strings(definition.to_json_dict()):
                for url in _BLOB_URL_PATTERN.findall(value):
                    add(url)
    return found


def _walk_strings(value: Any) -> Iterator[str]:
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _walk_strings(item)
    elif isinstance(value, list):
        for item in value:
            yield from _walk_strings(item)
