"""Tests for WorldContextResolver.

Focus: resolution order per environment and fail-open fallback to production.
"""

from unittest.mock import MagicMock

import pytest

from worldvault.core.errors import NotFoundError, UpstreamUnavailableError
from worldvault.core.types import Environment
from worldvault.tracing import EventKind
from worldvault.world import WorldContextResolver, WorldTokenCodec
from worldvault.world.context import WorldScope


@pytest.fixture
def codec(clock):
    return WorldTokenCodec("secret", ttl_seconds=3600, clock=clock)


def resolver_for(storage, environment, codec, sink, clock):
    return WorldContextResolver(storage, environment, codec=codec, sink=sink, clock=clock)


def test_token_selects_world_in_non_production(storage, registry, codec, sink, clock):
    registry.create_world("Demo", Environment.LOCAL_DEV, world_id="demo-1")
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)

    context = resolver.resolve(cookies={"world_id": codec.issue("demo-1")})

    assert context.world_id == "demo-1"
    assert context.is_test_mode
    assert context.scope == WorldScope("demo-1")
    assert context.meta.usage_count == 1
    assert storage.get_world("demo-1").last_used_at == clock.now
    assert sink.kinds() == [EventKind.WORLD_RESOLVED]


def test_no_token_means_production(storage, codec, sink, clock):
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)

    context = resolver.resolve()

    assert context.world_id is None
    assert not context.is_test_mode
    assert context.scope is WorldScope.PRODUCTION
    assert sink.events == ()


def test_production_ignores_tokens(storage, registry, codec, sink, clock):
    """Production never infers a world from cookies.

    Why: A leaked test cookie must not redirect production traffic.
    """
    registry.create_world("Prod demo", Environment.PRODUCTION, world_id="demo-1")
    resolver = resolver_for(storage, Environment.PRODUCTION, codec, sink, clock)

    context = resolver.resolve(token=codec.issue("demo-1"))

    assert context.world_id is None
    assert storage.get_world("demo-1").usage_count == 0


def test_explicit_world_id_wins_everywhere(storage, registry, codec, sink, clock):
    registry.create_world("Prod demo", Environment.PRODUCTION, world_id="demo-1")
    resolver = resolver_for(storage, Environment.PRODUCTION, codec, sink, clock)

    assert resolver.resolve(world_id="demo-1").world_id == "demo-1"


@pytest.mark.parametrize(
    ("setup", "reason"),
    [
        ({}, "not_found"),
        ({"is_active": False}, "inactive"),
        ({"environment": Environment.SHARED_TEST}, "environment_mismatch"),
    ],
)
def test_unusable_world_falls_back_to_production(
    storage, registry, codec, sink, clock, setup, reason, caplog
):
    if setup:
        options = dict(setup)
        environment = options.pop("environment", Environment.LOCAL_DEV)
        registry.create_world("Demo", environment, world_id="demo-1", **options)
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)

    context = resolver.resolve(token=codec.issue("demo-1"))

    assert context.world_id is None
    (event,) = sink.of_kind(EventKind.WORLD_FALLBACK)
    assert event.attributes == {
        "world_id": "demo-1",
        "reason": reason,
        "environment": "local-dev",
    }
    assert "falling back to production" in caplog.text


def test_upstream_failure_falls_back(codec, sink, clock):
    storage = MagicMock()
    storage.get_world.side_effect = UpstreamUnavailableError("db down")
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)

    context = resolver.resolve(world_id="demo-1")

    assert context.world_id is None
    assert sink.of_kind(EventKind.WORLD_FALLBACK)[0].attributes["reason"] == "upstream_unavailable"


def test_bad_tokens_count_as_absent(storage, registry, codec, sink, clock):
    registry.create_world("Demo", Environment.LOCAL_DEV, world_id="demo-1")
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)
    token = codec.issue("demo-1")

    assert resolver.resolve(token="garbage").world_id is None
    clock.advance(hours=2)
    assert resolver.resolve(token=token).world_id is None

    reasons = [e.attributes["reason"] for e in sink.of_kind(EventKind.WORLD_TOKEN_REJECTED)]
    assert reasons == ["invalid", "expired"]


def test_tokens_without_codec_are_unverifiable(storage, registry, sink, clock):
    registry.create_world("Demo", Environment.LOCAL_DEV, world_id="demo-1")
    resolver = resolver_for(storage, Environment.LOCAL_DEV, None, sink, clock)

    assert resolver.resolve(token="anything").world_id is None
    assert sink.of_kind(EventKind.WORLD_TOKEN_REJECTED)[0].attributes == {
        "reason": "unverifiable"
    }


def test_usage_bump_failure_does_not_fail_resolution(codec, sink, clock):
    storage = MagicMock()
    storage.get_world.return_value = MagicMock(
        id="demo-1", is_active=True, environment=Environment.LOCAL_DEV, usage_count=0
    )
    storage.bump_world_usage.side_effect = NotFoundError("World", "demo-1")
    resolver = resolver_for(storage, Environment.LOCAL_DEV, codec, sink, clock)

    context = resolver.resolve(world_id="demo-1")

    assert context.world_id == "demo-1"
    assert sink.of_kind(EventKind.WORLD_USAGE_BUMP_FAILED)
