"""Signed world-context tokens and cookie lookup.

A token is an HS256 JWT carrying ``{"wid": world_id | None, "exp": epoch}``.
Callers hand the resolver the raw token (from a cookie or header); the
resolver treats a token it cannot verify as absent.

Usage:
    codec = WorldTokenCodec(secret="...", ttl_seconds=4 * 3600)
    cookie_value = codec.issue("demo-1")
    token = token_from_cookies(request_cookie_header)
    codec.decode(token).world_id  # "demo-1"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from http.cookies import CookieError, SimpleCookie
from typing import TYPE_CHECKING, Any

from jose import jwt
from jose.exceptions import JWTError

from worldvault.core.errors import ValidationError
from worldvault.core.types import Clock, ensure_utc, utc_now

if TYPE_CHECKING:
    from worldvault.config.settings import WorldVaultSettings

COOKIE_NAMES = ("world_id", "world_id_fallback", "test-world-id")
"""Cookie names checked in order; ``test-world-id`` is the legacy name."""

DEFAULT_TTL_SECONDS = 4 * 60 * 60


class TokenError(ValidationError):
    """Token failed verification.

    Attributes:
        reason: ``"invalid"`` (bad signature or shape) or ``"expired"``.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"World token {reason}{': ' + detail if detail else ''}")
        self.reason = reason


@dataclass(frozen=True, slots=True)
class WorldToken:
    """Verified token contents."""

    world_id: str | None
    expires_at: datetime


class WorldTokenCodec:
    """Issues and verifies world-context tokens.

    Expiry is checked against the injected clock rather than wall time, and
    is strict: a token expiring exactly now is rejected.

    Args:
        secret: HMAC key.
        ttl_seconds: Lifetime of issued tokens.
        clock: Source of "now".
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Clock = utc_now,
    ):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: WorldVaultSettings, clock: Clock = utc_now) -> WorldTokenCodec:
        return cls(settings.token_secret.get_secret_value(), settings.token_ttl_seconds, clock)

    def issue(self, world_id: str | None, ttl_seconds: int | None = None) -> str:
        """Signed token for ``world_id`` (None selects production)."""
        ttl = self._ttl if ttl_seconds is None else timedelta(seconds=ttl_seconds)
        expires_at = ensure_utc(self._clock()) + ttl
        claims: dict[str, Any] = {"wid": world_id, "exp": int(expires_at.timestamp())}
        return jwt.encode(claims, self._secret, algorithm=self.ALGORITHM)

    def decode(self, token: str) -> WorldToken:
        """Verify a token.

        Raises:
            TokenError: If the signature, shape or expiry is wrong.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise TokenError("invalid", str(e)) from e

        world_id = claims.get("wid")
        exp = claims.get("exp")
        if (world_id is not None and not isinstance(world_id, str)) or not isinstance(exp, int):
            raise TokenError("invalid", "malformed claims")

        expires_at = datetime.fromtimestamp(exp, tz=UTC)
        if expires_at <= ensure_utc(self._clock()):
            raise TokenError("expired", expires_at.isoformat())
        return WorldToken(world_id=world_id or None, expires_at=expires_at)


def token_from_cookies(cookies: Mapping[str, str] | str | None) -> str | None:
    """First non-empty world token among ``COOKIE_NAMES``.

    Args:
        cookies: A parsed cookie mapping or a raw ``Cookie`` header value.
    """
    if cookies is None:
        return None
    if isinstance(cookies, str):
        jar = SimpleCookie()
        try:
            jar.load(cookies)
        except CookieError:
            return None
        cookies = {name: morsel.value for name, morsel in jar.items()}
    for name in COOKIE_NAMES:
        value = cookies.get(name)
        if value:
            return value
    return None
