"""FastAPI dependencies for tenant context, scoped clients and admin auth."""

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.core.security import admin_token_matches
from marketplace.models.tenant import Tenant
from marketplace.services.scope import TenantScope, derive_scope
from marketplace.services.tenancy import Tenancy

bearer_scheme = HTTPBearer(auto_error=False)


def get_tenancy(request: Request) -> Tenancy:
    return request.app.state.tenancy


def get_current_tenant(request: Request) -> Tenant:
    """The tenant attached by the resolver middleware. Never re-derived here."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tenant context not established",
        )
    return tenant


async def get_tenant_client(
    tenant: Annotated[Tenant, Depends(get_current_tenant)],
    tenancy: Annotated[Tenancy, Depends(get_tenancy)],
) -> AsyncIterator[MarketplaceClient]:
    """The tenant's client, held open until the request finishes."""
    with tenancy.clients.lease(tenant) as client:
        yield client


def get_scope(tenant: Annotated[Tenant, Depends(get_current_tenant)]) -> TenantScope | None:
    return derive_scope(tenant)


def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    tenancy: Annotated[Tenancy, Depends(get_tenancy)],
) -> None:
    expected = tenancy.settings.admin_api_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrative API is disabled",
        )
    if credentials is None or not admin_token_matches(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Typed shorthand for use in route signatures
TenancyDep = Annotated[Tenancy, Depends(get_tenancy)]
CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]
TenantClient = Annotated[MarketplaceClient, Depends(get_tenant_client)]
Scope = Annotated[TenantScope | None, Depends(get_scope)]
AdminAuth = Depends(require_admin)
