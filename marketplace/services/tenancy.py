"""Application-scoped wiring of the tenancy components."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine

from marketplace.core.config import Settings
from marketplace.core.database import build_engine, build_session_factory, init_db
from marketplace.core.exceptions import StoreUnavailableError
from marketplace.core.security import CredentialCipher
from marketplace.services.client_cache import ClientCache
from marketplace.services.tenant_registry import TenantRegistry
from marketplace.services.tenant_store import TenantStore

logger = logging.getLogger(__name__)


@dataclass
class Tenancy:
    """One registry and one client cache shared by every request."""

    settings: Settings
    registry: TenantRegistry
    clients: ClientCache
    engine: AsyncEngine | None = None

    async def aclose(self) -> None:
        await self.clients.aclose()
        if self.engine is not None:
            await self.engine.dispose()


async def build_tenancy(settings: Settings, engine: AsyncEngine | None = None) -> Tenancy:
    """Create tables if needed, load the registry and seed the default tenant."""
    engine = engine or build_engine(settings.database_url)
    try:
        async with asyncio.timeout(settings.store_timeout_seconds):
            await init_db(engine)
    except TimeoutError as exc:
        logger.error("Tenant store did not answer within %.1fs at startup", settings.store_timeout_seconds)
        raise StoreUnavailableError("init") from exc
    except (OperationalError, InterfaceError, OSError) as exc:
        logger.error("Tenant store unreachable at startup: %s", exc)
        raise StoreUnavailableError("init") from exc

    store = TenantStore(
        build_session_factory(engine),
        CredentialCipher(settings.encryption_key),
        timeout=settings.store_timeout_seconds,
    )
    registry = TenantRegistry(store, settings)
    await registry.bootstrap()
    clients = ClientCache(settings, lookup=registry.resolve_by_id)
    return Tenancy(settings=settings, registry=registry, clients=clients, engine=engine)
