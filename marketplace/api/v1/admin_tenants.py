"""Tenant management endpoints for system administrators."""

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from marketplace.api.deps import AdminAuth, TenancyDep
from marketplace.core.exceptions import NotFoundError
from marketplace.models.tenant import TenantCreate, TenantRead, TenantUpdate

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[AdminAuth])


class PartnerAdd(BaseModel):
    partner_id: str = Field(min_length=1, max_length=255)


class InvalidationResult(BaseModel):
    invalidated: int


@router.get("/tenants", response_model=list[TenantRead])
async def list_tenants(tenancy: TenancyDep) -> list[TenantRead]:
    return [TenantRead.from_tenant(t) for t in tenancy.registry.list_tenants()]


@router.get("/tenants/{tenant_id}", response_model=TenantRead)
async def get_tenant(tenant_id: str, tenancy: TenancyDep) -> TenantRead:
    tenant = tenancy.registry.resolve_by_id(tenant_id)
    if tenant is None:
        raise NotFoundError(tenant_id)
    return TenantRead.from_tenant(tenant)


@router.post("/tenants", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
async def create_tenant(body: TenantCreate, tenancy: TenancyDep) -> TenantRead:
    tenant = await tenancy.registry.create(body)
    return TenantRead.from_tenant(tenant)


@router.patch("/tenants/{tenant_id}", response_model=TenantRead)
async def update_tenant(tenant_id: str, body: TenantUpdate, tenancy: TenancyDep) -> TenantRead:
    tenant = await tenancy.registry.update(tenant_id, body)
    # Rotated credentials must not keep serving through a stale client
    if "credentials" in body.model_fields_set:
        tenancy.clients.invalidate(tenant_id)
    return TenantRead.from_tenant(tenant)


@router.delete("/tenants/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(tenant_id: str, tenancy: TenancyDep) -> None:
    await tenancy.registry.delete(tenant_id)
    tenancy.clients.invalidate(tenant_id)


@router.post("/tenants/{tenant_id}/partners", response_model=TenantRead)
async def add_partner(tenant_id: str, body: PartnerAdd, tenancy: TenancyDep) -> TenantRead:
    tenant = await tenancy.registry.add_partner(tenant_id, body.partner_id)
    return TenantRead.from_tenant(tenant)


@router.delete("/tenants/{tenant_id}/partners/{partner_id}", response_model=TenantRead)
async def remove_partner(tenant_id: str, partner_id: str, tenancy: TenancyDep) -> TenantRead:
    tenant = await tenancy.registry.remove_partner(tenant_id, partner_id)
    return TenantRead.from_tenant(tenant)


@router.post("/tenants/{tenant_id}/activate", response_model=TenantRead)
async def activate_tenant(tenant_id: str, tenancy: TenancyDep) -> TenantRead:
    return TenantRead.from_tenant(await tenancy.registry.activate(tenant_id))


@router.post("/tenants/{tenant_id}/deactivate", response_model=TenantRead)
async def deactivate_tenant(tenant_id: str, tenancy: TenancyDep) -> TenantRead:
    return TenantRead.from_tenant(await tenancy.registry.deactivate(tenant_id))


@router.post("/tenants/{tenant_id}/invalidate-client", response_model=InvalidationResult)
async def invalidate_tenant_client(tenant_id: str, tenancy: TenancyDep) -> InvalidationResult:
    if tenancy.registry.resolve_by_id(tenant_id) is None:
        raise NotFoundError(tenant_id)
    return InvalidationResult(invalidated=tenancy.clients.invalidate(tenant_id))


@router.post("/clients/invalidate", response_model=InvalidationResult)
async def invalidate_all_clients(tenancy: TenancyDep) -> InvalidationResult:
    return InvalidationResult(invalidated=tenancy.clients.invalidate_all())
