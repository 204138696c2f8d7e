"""Import all models so SQLModel.metadata picks them up."""

from marketplace.models.tenant import (
    DEFAULT_TENANT_ID,
    Tenant,
    TenantCreate,
    TenantCredentials,
    TenantCredentialsInput,
    TenantPublic,
    TenantRead,
    TenantRecord,
    TenantStatus,
    TenantUpdate,
)

__all__ = [
    "DEFAULT_TENANT_ID",
    "Tenant",
    "TenantCreate",
    "TenantCredentials",
    "TenantCredentialsInput",
    "TenantPublic",
    "TenantRead",
    "TenantRecord",
    "TenantStatus",
    "TenantUpdate",
]
