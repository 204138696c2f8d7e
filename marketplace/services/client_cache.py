"""Per-tenant cache of credential-bound backend clients.

Entries are keyed by tenant identity (plus client kind), never by
credential value, so two tenants with identical credentials still get
distinct client instances. Entries live until explicitly invalidated; an
optional ``max_size`` turns the cache into an LRU whose evictions are
logged and simply force a rebuild from current credentials on next use.

Clients handed out through ``lease`` stay open until released, even if
they are invalidated or evicted in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.core.config import Settings
from marketplace.core.credentials import ClientKind, default_credentials
from marketplace.models.tenant import DEFAULT_TENANT_ID, Tenant

logger = logging.getLogger(__name__)

CacheKey = tuple[str, ClientKind]
ClientFactory = Callable[[str, str, ClientKind], MarketplaceClient]
TenantLookup = Callable[[str], Tenant | None]


@dataclass(frozen=True)
class ResolvedCredentials:
    client_id: str
    client_secret: str
    from_tenant: bool


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    builds: int = 0
    evictions: int = 0


class ClientCache:
    """Lazily builds and reuses one backend client per tenant.

    ``lookup`` returns the current version of a tenant by id. On a miss the
    client is built from that version rather than from the (possibly older)
    snapshot the caller holds, so a rebuild after ``invalidate`` always uses
    current credentials.

    Example:
        >>> cache = ClientCache(settings, lookup=registry.resolve_by_id)
        >>> client = cache.get_client(tenant)
        >>> cache.get_client(tenant) is client
        True
        >>> cache.invalidate(tenant.id)
    """

    def __init__(
        self,
        settings: Settings,
        factory: ClientFactory | None = None,
        max_size: int | None = None,
        lookup: TenantLookup | None = None,
    ) -> None:
        self._settings = settings
        self._factory = factory or self._default_factory
        self._max_size = max_size if max_size is not None else settings.client_cache_max_size
        self._lookup = lookup
        self._entries: OrderedDict[CacheKey, MarketplaceClient] = OrderedDict()
        # Bumped by invalidate(); a build that started under an older
        # generation is handed to its caller but never cached.
        self._generations: dict[str, int] = {}
        self._leases: dict[int, int] = {}
        self._retired: dict[int, MarketplaceClient] = {}
        self._lock = threading.Lock()
        self._pending_closes: set[asyncio.Task] = set()
        self.stats = CacheStats()

    def _default_factory(self, client_id: str, client_secret: str, kind: ClientKind) -> MarketplaceClient:
        return MarketplaceClient(
            client_id,
            client_secret,
            base_url=self._settings.marketplace_api_base_url,
            timeout=self._settings.marketplace_api_timeout,
            scope="integ" if kind == ClientKind.INTEGRATION else "public-read",
        )

    # ── Lookup ────────────────────────────────────────────────

    def resolve_credentials(
        self,
        tenant: Tenant | None,
        kind: ClientKind = ClientKind.INTEGRATION,
    ) -> ResolvedCredentials:
        """Tenant's own pair when present, else the process defaults."""
        if tenant is not None and tenant.credentials is not None:
            client_id, secret = tenant.credentials.pair(integration=kind == ClientKind.INTEGRATION)
            return ResolvedCredentials(client_id, secret, from_tenant=True)
        client_id, secret = default_credentials(self._settings, kind)
        if tenant is not None and not tenant.is_default:
            logger.info("Tenant %s has no credentials; using process defaults", tenant.id)
        return ResolvedCredentials(client_id, secret, from_tenant=False)

    def get_client(
        self,
        tenant: Tenant | None = None,
        kind: ClientKind = ClientKind.INTEGRATION,
    ) -> MarketplaceClient:
        return self._checkout(tenant, kind, lease=False)

    @contextmanager
    def lease(
        self,
        tenant: Tenant | None = None,
        kind: ClientKind = ClientKind.INTEGRATION,
    ) -> Iterator[MarketplaceClient]:
        """Hold a client for the duration of a request; it is not closed underneath you."""
        client = self._checkout(tenant, kind, lease=True)
        try:
            yield client
        finally:
            self._release(client)

    def _checkout(self, tenant: Tenant | None, kind: ClientKind, *, lease: bool) -> MarketplaceClient:
        tenant_id = tenant.id if tenant is not None else DEFAULT_TENANT_ID
        key: CacheKey = (tenant_id, kind)

        while True:
            with self._lock:
                client = self._entries.get(key)
                if client is not None:
                    self.stats.hits += 1
                    self._entries.move_to_end(key)
                    if lease:
                        self._hold(client)
                    return client
                self.stats.misses += 1
                generation = self._generations.get(tenant_id, 0)

            # Build outside the lock so a cold tenant never stalls the others.
            current = self._lookup(tenant_id) if self._lookup is not None else None
            creds = self.resolve_credentials(current or tenant, kind)
            candidate = self._factory(creds.client_id, creds.client_secret, kind)

            evicted: list[tuple[CacheKey, MarketplaceClient]] = []
            with self._lock:
                stale = self._generations.get(tenant_id, 0) != generation
                existing = None if stale else self._entries.get(key)
                if not stale and existing is None:
                    self._entries[key] = candidate
                    self.stats.builds += 1
                    if lease:
                        self._hold(candidate)
                    if self._max_size is not None:
                        while len(self._entries) > self._max_size:
                            evicted.append(self._entries.popitem(last=False))
                            self.stats.evictions += 1
                elif existing is not None and lease:
                    self._hold(existing)

            if stale:
                # Invalidated while building; credentials may have changed.
                self._close_later(candidate)
                continue
            if existing is not None:
                # Lost the race; keep the first entry.
                self._close_later(candidate)
                return existing

            logger.info("Built %s client for tenant %s", kind, tenant_id)
            for old_key, old_client in evicted:
                logger.info("Evicted %s client for tenant %s (LRU)", old_key[1], old_key[0])
                self._retire(old_client)
            return candidate

    # ── Invalidation ──────────────────────────────────────────

    def invalidate(self, tenant_id: str) -> int:
        """Drop every cached client of one tenant. Returns how many were removed."""
        with self._lock:
            self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1
            keys = [key for key in self._entries if key[0] == tenant_id]
            removed = [self._entries.pop(key) for key in keys]
        for client in removed:
            self._retire(client)
        if removed:
            logger.info("Invalidated %d cached client(s) for tenant %s", len(removed), tenant_id)
        return len(removed)

    def invalidate_all(self) -> int:
        with self._lock:
            for tenant_id, _ in self._entries:
                self._generations[tenant_id] = self._generations.get(tenant_id, 0) + 1
            removed = list(self._entries.values())
            self._entries.clear()
        for client in removed:
            self._retire(client)
        logger.info("Flushed client cache (%d entries)", len(removed))
        return len(removed)

    async def aclose(self) -> None:
        """Close every client, leased or not; used at application shutdown."""
        with self._lock:
            clients = [*self._entries.values(), *self._retired.values()]
            self._entries.clear()
            self._retired.clear()
            self._leases.clear()
        for client in clients:
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        if self._pending_closes:
            await asyncio.gather(*self._pending_closes, return_exceptions=True)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tenant_id: object) -> bool:
        return any(key[0] == tenant_id for key in list(self._entries))

    # ── Leases and closing ────────────────────────────────────

    def _hold(self, client: MarketplaceClient) -> None:
        """Caller must hold ``self._lock``."""
        self._leases[id(client)] = self._leases.get(id(client), 0) + 1

    def _release(self, client: MarketplaceClient) -> None:
        with self._lock:
            remaining = self._leases.get(id(client), 0) - 1
            if remaining > 0:
                self._leases[id(client)] = remaining
                return
            self._leases.pop(id(client), None)
            retired = self._retired.pop(id(client), None)
        if retired is not None:
            self._close_later(retired)

    def _retire(self, client: MarketplaceClient) -> None:
        """Close a dropped client now, or once its last lease is released."""
        with self._lock:
            if self._leases.get(id(client)):
                self._retired[id(client)] = client
                return
        self._close_later(client)

    def _close_later(self, client: MarketplaceClient) -> None:
        close = getattr(client, "aclose", None)
        if close is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(close())
        self._pending_closes.add(task)
        task.add_done_callback(self._pending_closes.discard)
