"""WorldContextResolver: decides which world an operation runs in.

Resolution order:
    1. An explicit ``world_id`` argument wins in every environment.
    2. In production nothing else is consulted; the result is production.
    3. Otherwise a signed token (given directly or found in cookies) names
       the world. A token that fails verification counts as absent.
    4. A named world must exist, be active and belong to this environment.
       Anything else falls back to production with a warning and a
       ``world.fallback`` event; resolution itself never fails.

Usage:
    resolver = WorldContextResolver(storage, Environment.LOCAL_DEV, codec=codec)
    context = resolver.resolve(cookies=request.headers.get("cookie"))
    store.get_paged(user_id, scope=context.scope)
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from worldvault.core.errors import NotFoundError, UpstreamUnavailableError
from worldvault.core.models import WorldMeta
from worldvault.core.types import Clock, Environment, ensure_utc, utc_now
from worldvault.tracing import DiagnosticEvent, DiagnosticSink, EventKind, LoggingDiagnosticSink
from worldvault.world.context import WorldContext
from worldvault.world.token import TokenError, WorldTokenCodec, token_from_cookies

if TYPE_CHECKING:
    from worldvault.config.settings import WorldVaultSettings
    from worldvault.storage.protocol import Storage

logger = logging.getLogger(__name__)


class WorldContextResolver:
    """Per-operation world resolution with fail-open fallback.

    Args:
        storage: Backend holding world metadata.
        environment: Deployment tier, passed explicitly by the caller.
        codec: Verifies world tokens; without one every token is rejected.
        sink: Receives resolution and fallback diagnostics.
        clock: Source of ``last_used_at`` and event timestamps.
    """

    def __init__(
        self,
        storage: Storage,
        environment: Environment,
        *,
        codec: WorldTokenCodec | None = None,
        sink: DiagnosticSink | None = None,
        clock: Clock = utc_now,
    ):
        self._storage = storage
        self._environment = environment
        self._codec = codec
        self._sink = sink or LoggingDiagnosticSink()
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        storage: Storage,
        settings: WorldVaultSettings,
        *,
        sink: DiagnosticSink | None = None,
        clock: Clock = utc_now,
    ) -> WorldContextResolver:
        codec = WorldTokenCodec.from_settings(settings, clock)
        return cls(storage, settings.environment, codec=codec, sink=sink, clock=clock)

    @property
    def environment(self) -> Environment:
        return self._environment

    def _emit(self, kind: EventKind, **attributes: Any) -> None:
        self._sink.emit(
            DiagnosticEvent(kind=kind, timestamp=ensure_utc(self._clock()), attributes=attributes)
        )

    def production(self) -> WorldContext:
        return WorldContext.production(self._environment)

    def resolve(
        self,
        *,
        world_id: str | None = None,
        token: str | None = None,
        cookies: Mapping[str, str] | str | None = None,
    ) -> WorldContext:
        """Resolve the world for one operation.

        Args:
            world_id: Explicit override; honored in every environment.
            token: Signed world token.
            cookies: Cookie mapping or raw header searched when ``token`` is None.

        Returns:
            World context; production when nothing valid names a world.
        """
        if world_id is None:
            if self._environment.is_production:
                return self.production()
            world_id = self._world_from_token(token or token_from_cookies(cookies))
        if not world_id:
            return self.production()
        return self._lookup(world_id)

    def _world_from_token(self, token: str | None) -> str | None:
        if not token:
            return None
        if self._codec is None:
            logger.warning("World token ignored: no token codec configured")
            self._emit(EventKind.WORLD_TOKEN_REJECTED, reason="unverifiable")
            return None
        try:
            return self._codec.decode(token).world_id
        except TokenError as e:
            logger.warning("World token rejected (%s)", e.reason)
            self._emit(EventKind.WORLD_TOKEN_REJECTED, reason=e.reason)
            return None

    def _fallback(self, world_id: str, reason: str) -> WorldContext:
        logger.warning(
            "World '%s' unavailable (%s) in %s; falling back to production",
            world_id,
            reason,
            self._environment.value,
        )
        self._emit(
            EventKind.WORLD_FALLBACK,
            world_id=world_id,
            reason=reason,
            environment=self._environment.value,
        )
        return self.production()

    def _lookup(self, world_id: str) -> WorldContext:
        try:
            meta = self._storage.get_world(world_id)
        except UpstreamUnavailableError:
            return self._fallback(world_id, "upstream_unavailable")

        if meta is None:
            return self._fallback(world_id, "not_found")
        if not meta.is_active:
            return self._fallback(world_id, "inactive")
        if meta.environment is not self._environment:
            return self._fallback(world_id, "environment_mismatch")

        meta = self._bump_usage(meta)
        self._emit(EventKind.WORLD_RESOLVED, world_id=world_id)
        return WorldContext(
            world_id=world_id,
            is_test_mode=True,
            environment=self._environment,
            meta=meta,
        )

    def _bump_usage(self, meta: WorldMeta) -> WorldMeta:
        now = ensure_utc(self._clock())
        try:
            self._storage.bump_world_usage(meta.id, now)
        except (UpstreamUnavailableError, NotFoundError) as e:
            logger.warning("Usage update failed for world '%s': %s", meta.id, e)
            self._emit(EventKind.WORLD_USAGE_BUMP_FAILED, world_id=meta.id, error=str(e))
            return meta
        return dataclasses.replace(meta, usage_count=meta.usage_count + 1, last_used_at=now)
