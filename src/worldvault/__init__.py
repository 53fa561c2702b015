"""WorldVault: versioned artifacts, publication tracking and world isolation.

Usage:
    from worldvault import (
        ArtifactVersionStore, LocalStorage, PublicationTracker,
        WorldContextResolver, Environment,
    )

    storage = LocalStorage()
    resolver = WorldContextResolver(storage, Environment.LOCAL_DEV)
    context = resolver.resolve(world_id=None)

    store = ArtifactVersionStore(storage)
    saved = store.save("text", "# Plan", "Plan", "u1", scope=context.scope)
    store.get_latest(saved.id, scope=context.scope)

    tracker = PublicationTracker(storage)
    tracker.add_publication(saved, PublicationSource.DIRECT, saved.id, scope=context.scope)
"""

__version__ = "0.1.0"

# Chats
from worldvault.chats import ChatPage, ChatStore

# Core primitives
from worldvault.core import (
    Artifact,
    ArtifactKind,
    Chat,
    Environment,
    NotFoundError,
    PermissionDeniedError,
    PublicationInfo,
    PublicationSource,
    SeedImportError,
    UpstreamUnavailableError,
    User,
    ValidationError,
    WorldMeta,
    WorldVaultError,
)

# Publication
from worldvault.publication import PublicationTracker

# Seeds
from worldvault.seed import ConflictStrategy, LocalBlobStore, SeedConflictManager

# Storage
from worldvault.storage import LocalStorage, SqlStorage, Storage

# Versioning
from worldvault.versioning import ArtifactVersionStore, Page, VersionedArtifact

# World isolation
from worldvault.world import (
    ScopedContent,
    WorldContext,
    WorldContextResolver,
    WorldRegistry,
    WorldScope,
    WorldTokenCodec,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "Artifact",
    "ArtifactKind",
    "Chat",
    "User",
    "WorldMeta",
    "Environment",
    "PublicationInfo",
    "PublicationSource",
    # Errors
    "WorldVaultError",
    "NotFoundError",
    "PermissionDeniedError",
    "ValidationError",
    "UpstreamUnavailableError",
    "SeedImportError",
    # Storage
    "Storage",
    "LocalStorage",
    "SqlStorage",
    # Versioning
    "ArtifactVersionStore",
    "VersionedArtifact",
    "Page",
    # Chats
    "ChatStore",
    "ChatPage",
    # Publication
    "PublicationTracker",
    # World
    "WorldScope",
    "WorldContext",
    "WorldContextResolver",
    "WorldRegistry",
    "WorldTokenCodec",
    "ScopedContent",
    # Seeds
    "SeedConflictManager",
    "ConflictStrategy",
    "LocalBlobStore",
]
