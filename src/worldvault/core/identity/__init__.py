"""Identity primitives."""

from worldvault.core.identity.models import VersionKey, new_id

__all__ = ["VersionKey", "new_id"]
