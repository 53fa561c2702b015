"""World management: metadata CRUD plus the separately-run data cascade.

Deleting a world removes only its metadata row. Rows tagged with the world
are removed by ``purge_world_data`` (or ``cleanup_expired``), which callers
schedule on their own.

Usage:
    registry = WorldRegistry(storage)
    meta = registry.create_world("Checkout demo", Environment.SHARED_TEST, world_id="demo-1")
    registry.isolation_stats("demo-1")   # {"users": 0, "chats": 0, "artifacts": 0}
    registry.delete_world("demo-1")
    registry.purge_world_data("demo-1")
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from worldvault.core.errors import NotFoundError, ValidationError
from worldvault.core.identity import new_id
from worldvault.core.models import WorldMeta
from worldvault.core.types import Clock, Environment, ensure_utc, utc_now

if TYPE_CHECKING:
    from worldvault.storage.protocol import Storage

logger = logging.getLogger(__name__)

_PROTECTED_FIELDS = frozenset({"id", "created_at"})


class WorldRegistry:
    """Creates, lists and removes worlds.

    Args:
        storage: Backend holding world metadata and world-tagged rows.
        clock: Source of ``created_at``/``updated_at``.
    """

    def __init__(self, storage: Storage, clock: Clock = utc_now):
        self._storage = storage
        self._clock = clock

    def create_world(
        self,
        name: str,
        environment: Environment,
        *,
        world_id: str | None = None,
        created_by: str | None = None,
        **options: Any,
    ) -> WorldMeta:
        """Register a new active world.

        Args:
            name: Display name.
            environment: Tier the world may be resolved in.
            world_id: Identifier; generated when omitted.
            created_by: Operator or importer id.
            **options: Any other ``WorldMeta`` field (``category``, ``tags``...).

        Raises:
            ValidationError: If the id is taken or an option is unknown.
        """
        if not name or not name.strip():
            raise ValidationError("World name is required")
        world_id = world_id or new_id()
        if self._storage.get_world(world_id) is not None:
            raise ValidationError(f"World '{world_id}' already exists")

        now = ensure_utc(self._clock())
        try:
            meta = WorldMeta(
                id=world_id,
                name=name.strip(),
                environment=environment,
                created_by=created_by,
                created_at=now,
                updated_at=now,
                **options,
            )
        except TypeError as e:
            raise ValidationError(f"Invalid world options: {e}") from e

        self._storage.put_world(meta)
        logger.info("Created world '%s' (%s) in %s", world_id, meta.name, environment.value)
        return meta

    def get_world(self, world_id: str) -> WorldMeta:
        """Raises NotFoundError when absent."""
        meta = self._storage.get_world(world_id)
        if meta is None:
            raise NotFoundError("World", world_id)
        return meta

    def list_worlds(
        self,
        environment: Environment | None = None,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[WorldMeta]:
        return self._storage.list_worlds(environment, category, active_only)

    def update_world(self, world_id: str, **changes: Any) -> WorldMeta:
        """Change metadata fields other than ``id`` and ``created_at``."""
        protected = sorted(_PROTECTED_FIELDS & changes.keys())
        if protected:
            raise ValidationError(f"Fields cannot change: {protected}")
        meta = self.get_world(world_id)
        try:
            updated = dataclasses.replace(meta, updated_at=ensure_utc(self._clock()), **changes)
        except TypeError as e:
            raise ValidationError(f"Invalid world fields: {e}") from e
        return self._storage.put_world(updated)

    def delete_world(self, world_id: str) -> None:
        """Remove metadata only; tagged rows stay until purged.

        Raises:
            NotFoundError: If the world does not exist.
        """
        if not self._storage.delete_world(world_id):
            raise NotFoundError("World", world_id)
        logger.info("Deleted world metadata '%s'", world_id)

    def purge_world_data(self, world_id: str) -> dict[str, int]:
        """Delete every row tagged ``world_id`` in one transaction.

        Returns:
            Rows removed per table.
        """
        with self._storage.transaction():
            counts = self._storage.purge_world(world_id)
        logger.info("Purged world '%s': %s", world_id, counts)
        return counts

    def isolation_stats(self, world_id: str) -> dict[str, int]:
        """Rows currently tagged ``world_id`` per table."""
        return self._storage.count_world(world_id)

    def expired_worlds(self, now: datetime | None = None) -> list[WorldMeta]:
        """Auto-cleanup worlds idle longer than their ``cleanup_after_hours``.

        Templates never expire. Idle time counts from ``last_used_at``, or
        from ``created_at`` for worlds never resolved.
        """
        now = ensure_utc(now) if now is not None else ensure_utc(self._clock())
        expired = []
        for meta in self._storage.list_worlds():
            if meta.is_template or not meta.auto_cleanup:
                continue
            reference = meta.last_used_at or meta.created_at
            if reference is None:
                continue
            if reference + timedelta(hours=meta.cleanup_after_hours) <= now:
                expired.append(meta)
        return expired

    def cleanup_expired(self, now: datetime | None = None) -> dict[str, dict[str, int]]:
        """Purge data and metadata of every expired world.

        Returns:
            Per-world purge counts.
        """
        results: dict[str, dict[str, int]] = {}
        for meta in self.expired_worlds(now):
            results[meta.id] = self.purge_world_data(meta.id)
            self._storage.delete_world(meta.id)
        return results
