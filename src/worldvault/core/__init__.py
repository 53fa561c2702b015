"""Core primitives: stateless types, records and pure content operations.

Architecture Note:
    core/ holds immutable records and pure functions. Stateful services live
    in storage/, world/, versioning/, publication/ and seed/.
"""

from worldvault.core.content import (
    ContentPayload,
    ContentSlot,
    SiteContent,
    SiteDefinition,
    TextContent,
    UrlContent,
    build_payload,
    display_text,
)
from worldvault.core.errors import (
    NotFoundError,
    PermissionDeniedError,
    SeedImportError,
    UpstreamUnavailableError,
    ValidationError,
    WorldVaultError,
)
from worldvault.core.identity import VersionKey, new_id
from worldvault.core.models import (
    Artifact,
    Chat,
    PublicationInfo,
    PublicationSource,
    User,
    WorldMeta,
)
from worldvault.core.types import ArtifactKind, Clock, Environment, ensure_utc, utc_now

__all__ = [
    # Types
    "ArtifactKind",
    "Environment",
    "Clock",
    "utc_now",
    "ensure_utc",
    # Identity
    "VersionKey",
    "new_id",
    # Records
    "Artifact",
    "Chat",
    "User",
    "WorldMeta",
    "PublicationInfo",
    "PublicationSource",
    # Content
    "ContentPayload",
    "ContentSlot",
    "TextContent",
    "UrlContent",
    "SiteContent",
    "SiteDefinition",
    "build_payload",
    "display_text",
    # Errors
    "WorldVaultError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
    "UpstreamUnavailableError",
    "SeedImportError",
]
