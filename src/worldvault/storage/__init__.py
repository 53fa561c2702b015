"""Storage backends for artifact, chat, user and world rows."""

from worldvault.storage.allocator import VersionAllocator
from worldvault.storage.local import LocalStorage
from worldvault.storage.models import ArtifactQuery, EntityType
from worldvault.storage.protocol import Storage
from worldvault.storage.sql import SqlStorage

__all__ = [
    "Storage",
    "LocalStorage",
    "SqlStorage",
    "VersionAllocator",
    "ArtifactQuery",
    "EntityType",
]
