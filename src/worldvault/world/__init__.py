"""World isolation: context resolution, tokens, registry and scoped access.

Usage:
    from worldvault.world import WorldContextResolver, ScopedContent

    context = resolver.resolve(cookies=cookie_header)
    content = ScopedContent(context, store, tracker)
"""

from worldvault.world.access import ScopedContent
from worldvault.world.context import WorldContext, WorldScope, can_access_record
from worldvault.world.registry import WorldRegistry
from worldvault.world.resolver import WorldContextResolver
from worldvault.world.token import (
    COOKIE_NAMES,
    TokenError,
    WorldToken,
    WorldTokenCodec,
    token_from_cookies,
)

__all__ = [
    "WorldScope",
    "WorldContext",
    "can_access_record",
    "WorldContextResolver",
    "WorldRegistry",
    "ScopedContent",
    "WorldTokenCodec",
    "WorldToken",
    "TokenError",
    "COOKIE_NAMES",
    "token_from_cookies",
]
