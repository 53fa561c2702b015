"""Error taxonomy shared by every worldvault component.

Usage:
    try:
        store.soft_delete(artifact_id, user_id, scope)
    except NotFoundError:
        ...  # render "not found"
    except PermissionDeniedError:
        ...  # render "forbidden"

Conflicts found by seed analysis are reported values (see
``worldvault.seed.models.ConflictReport``), not exceptions.
"""

from __future__ import annotations

from collections.abc import Sequence


class WorldVaultError(Exception):
    """Base class for all worldvault failures."""


class NotFoundError(WorldVaultError):
    """Entity, version or world is absent in the requested scope."""

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} '{identifier}' not found")
        self.entity = entity
        self.identifier = identifier


class PermissionDeniedError(WorldVaultError):
    """Caller does not own the entity it tries to mutate."""

    def __init__(self, entity: str, identifier: object, user_id: str) -> None:
        super().__init__(f"User '{user_id}' may not modify {entity} '{identifier}'")
        self.entity = entity
        self.identifier = identifier
        self.user_id = user_id


class ValidationError(WorldVaultError):
    """Payload does not match the shape its kind or schema requires."""


class UpstreamUnavailableError(WorldVaultError):
    """Database or binary store could not be reached."""


class SeedImportError(WorldVaultError):
    """A seed import category failed and was rolled back.

    Attributes:
        category: Category whose transaction was rolled back.
        committed: Categories committed before the failure. They stay applied.
    """

    def __init__(self, category: str, committed: Sequence[str], cause: BaseException) -> None:
        super().__init__(
            f"Seed import failed in category '{category}' "
            f"(already committed: {', '.join(committed) or 'none'}): {cause}"
        )
        self.category = category
        self.committed = tuple(committed)
