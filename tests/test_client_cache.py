"""Per-tenant client cache: identity, isolation, invalidation and eviction."""

import asyncio
import threading

import pytest

from marketplace.core.config import Settings
from marketplace.core.credentials import ClientKind
from marketplace.core.exceptions import ConfigurationError
from marketplace.models.base import utcnow
from marketplace.models.tenant import Tenant, TenantCredentials
from marketplace.services.client_cache import ClientCache


class StubClient:
    def __init__(self, client_id: str, client_secret: str, kind: ClientKind) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.kind = kind
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


def _tenant(tenant_id: str, client_id: str | None = None) -> Tenant:
    now = utcnow()
    creds = TenantCredentials(client_id=client_id, client_secret=f"{client_id}-secret") if client_id else None
    return Tenant(
        id=tenant_id,
        subdomain=None if tenant_id == "default" else tenant_id,
        name=tenant_id,
        display_name=tenant_id,
        credentials=creds,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def cache(settings):
    return ClientCache(settings, factory=StubClient)


def test_same_tenant_returns_same_instance(cache):
    harvard = _tenant("harvard", "harvard-id")
    first = cache.get_client(harvard)
    assert cache.get_client(harvard) is first
    assert cache.stats.builds == 1
    assert cache.stats.hits == 1


def test_distinct_tenants_with_identical_credentials_get_distinct_clients(cache):
    a = cache.get_client(_tenant("harvard", "shared-id"))
    b = cache.get_client(_tenant("mit", "shared-id"))
    assert a is not b
    assert a.client_id == b.client_id == "shared-id"


def test_client_kinds_cached_separately(cache):
    harvard = _tenant("harvard", "harvard-id")
    integ = cache.get_client(harvard, ClientKind.INTEGRATION)
    user = cache.get_client(harvard, ClientKind.MARKETPLACE)
    assert integ is not user
    assert len(cache) == 2


def test_default_tenant_and_missing_credentials_use_process_defaults(cache):
    assert cache.get_client(None).client_id == "default-integ"
    assert cache.get_client(_tenant("default")).client_id == "default-integ"
    assert cache.get_client(_tenant("harvard")).client_id == "default-integ"
    assert cache.get_client(_tenant("harvard"), ClientKind.MARKETPLACE).client_id == "default-client"
    # None and the default tenant share one entry
    assert cache.stats.builds == 3


def test_resolve_credentials_reports_source(cache):
    assert cache.resolve_credentials(_tenant("harvard", "harvard-id")).from_tenant is True
    assert cache.resolve_credentials(_tenant("harvard")).from_tenant is False


@pytest.mark.asyncio
async def test_invalidate_forces_rebuild_with_new_credentials(cache):
    old = cache.get_client(_tenant("harvard", "old-id"))
    other = cache.get_client(_tenant("mit", "mit-id"))

    assert cache.invalidate("harvard") == 1
    assert "harvard" not in cache
    fresh = cache.get_client(_tenant("harvard", "new-id"))

    assert fresh is not old
    assert fresh.client_id == "new-id"
    assert cache.get_client(_tenant("mit", "mit-id")) is other
    await cache.aclose()
    assert old.closed


def test_invalidate_unknown_tenant_is_noop(cache):
    assert cache.invalidate("nobody") == 0


def test_invalidate_all(cache):
    cache.get_client(_tenant("harvard", "h"))
    cache.get_client(_tenant("mit", "m"))
    assert cache.invalidate_all() == 2
    assert len(cache) == 0


def test_lru_eviction(settings):
    cache = ClientCache(settings, factory=StubClient, max_size=2)
    a = cache.get_client(_tenant("a-tenant", "a"))
    cache.get_client(_tenant("b-tenant", "b"))
    cache.get_client(_tenant("a-tenant", "a"))  # a is now most recent
    cache.get_client(_tenant("c-tenant", "c"))

    assert "b-tenant" not in cache
    assert cache.get_client(_tenant("a-tenant", "a")) is a
    assert cache.stats.evictions == 1


def test_missing_default_credentials_raise_configuration_error():
    bare = Settings(_env_file=None, client_id="", client_secret="", integration_client_id="", integration_client_secret="")
    cache = ClientCache(bare, factory=StubClient)
    with pytest.raises(ConfigurationError):
        cache.get_client(None)
    assert len(cache) == 0


def test_concurrent_first_use_builds_one_entry(settings):
    barrier = threading.Barrier(8)

    def slow_factory(client_id, client_secret, kind):
        barrier.wait(timeout=5)
        return StubClient(client_id, client_secret, kind)

    cache = ClientCache(settings, factory=slow_factory)
    harvard = _tenant("harvard", "harvard-id")
    results = []
    threads = [threading.Thread(target=lambda: results.append(cache.get_client(harvard))) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len({id(r) for r in results}) == 1
    assert len(cache) == 1


def test_rebuild_uses_current_tenant_not_callers_snapshot(settings):
    current = {"harvard": _tenant("harvard", "old-id")}
    cache = ClientCache(settings, factory=StubClient, lookup=current.get)
    snapshot = current["harvard"]
    assert cache.get_client(snapshot).client_id == "old-id"

    # Credentials rotate while a request still holds the old snapshot
    current["harvard"] = _tenant("harvard", "new-id")
    cache.invalidate("harvard")

    assert cache.get_client(snapshot).client_id == "new-id"
    assert cache.get_client(current["harvard"]).client_id == "new-id"


def test_build_invalidated_midway_is_not_cached(settings):
    current = {"harvard": _tenant("harvard", "old-id")}
    cache = ClientCache(settings, lookup=current.get)

    def rotating_factory(client_id, client_secret, kind):
        if client_id == "old-id":
            # Rotation lands while this build is in progress
            current["harvard"] = _tenant("harvard", "new-id")
            cache.invalidate("harvard")
        return StubClient(client_id, client_secret, kind)

    cache._factory = rotating_factory
    client = cache.get_client(current["harvard"])

    assert client.client_id == "new-id"
    assert cache.get_client(current["harvard"]) is client
    assert cache.stats.builds == 1


@pytest.mark.asyncio
async def test_leased_client_survives_invalidation_until_released(cache):
    harvard = _tenant("harvard", "harvard-id")
    with cache.lease(harvard) as client:
        cache.invalidate("harvard")
        await asyncio.sleep(0)
        assert not client.closed
        assert cache.get_client(harvard) is not client
    await asyncio.sleep(0)
    assert client.closed


@pytest.mark.asyncio
async def test_leased_client_survives_lru_eviction(settings):
    cache = ClientCache(settings, factory=StubClient, max_size=1)
    with cache.lease(_tenant("a-tenant", "a")) as a:
        cache.get_client(_tenant("b-tenant", "b"))
        await asyncio.sleep(0)
        assert "a-tenant" not in cache
        assert not a.closed
    await asyncio.sleep(0)
    assert a.closed


@pytest.mark.asyncio
async def test_unleased_client_closed_on_invalidate(cache):
    client = cache.get_client(_tenant("harvard", "harvard-id"))
    cache.invalidate("harvard")
    await asyncio.sleep(0)
    assert client.closed
