"""Tenant model, the unit of isolation between marketplaces."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from sqlmodel import Field, SQLModel

from marketplace.models.base import TimestampMixin

DEFAULT_TENANT_ID = "default"


class TenantStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class TenantRecord(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(primary_key=True, max_length=64)
    # NULL only for the default tenant (matches the bare domain)
    subdomain: str | None = Field(default=None, max_length=30, unique=True, index=True)
    name: str = Field(max_length=255, nullable=False)
    display_name: str = Field(max_length=255, nullable=False)
    status: str = Field(default=TenantStatus.ACTIVE, max_length=20)

    # Fernet-encrypted JSON blob with client id/secret pairs.
    # NULL means "use process-default credentials".
    encrypted_credentials: str | None = Field(default=None)

    institution_domain: str | None = Field(default=None, max_length=255)
    corporate_partner_ids: str = Field(default="[]")  # JSON list
    branding: str = Field(default="{}")  # JSON object
    features: str = Field(default="{}")  # JSON object


# ── Domain snapshots (immutable, shared between requests) ────


class TenantCredentials(BaseModel):
    """A user-facing client pair plus an optional privileged integration pair."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    integration_client_id: str | None = None
    integration_client_secret: str | None = None

    def pair(self, integration: bool = True) -> tuple[str, str]:
        if integration and self.integration_client_id and self.integration_client_secret:
            return self.integration_client_id, self.integration_client_secret
        return self.client_id, self.client_secret


class Tenant(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    subdomain: str | None
    name: str
    display_name: str
    status: TenantStatus = TenantStatus.ACTIVE
    credentials: TenantCredentials | None = None
    institution_domain: str | None = None
    corporate_partner_ids: tuple[str, ...] = ()
    branding: dict[str, Any] = {}
    features: dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    @property
    def is_default(self) -> bool:
        return self.id == DEFAULT_TENANT_ID

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE


# ── Pydantic schemas (create / update / read) ────────────────
# Shape checks live in the registry so rejections name the offending field.


class TenantCredentialsInput(BaseModel):
    client_id: str | None = None
    client_secret: str | None = None
    integration_client_id: str | None = None
    integration_client_secret: str | None = None


class TenantCreate(BaseModel):
    subdomain: str | None = None
    name: str | None = None
    display_name: str | None = None
    status: str | None = None
    credentials: TenantCredentialsInput | None = None
    institution_domain: str | None = None
    corporate_partner_ids: list[str] | None = None
    branding: dict[str, Any] | None = None
    features: dict[str, Any] | None = None


class TenantUpdate(BaseModel):
    subdomain: str | None = None
    name: str | None = None
    display_name: str | None = None
    status: str | None = None
    credentials: TenantCredentialsInput | None = None
    institution_domain: str | None = None
    corporate_partner_ids: list[str] | None = None
    branding: dict[str, Any] | None = None
    features: dict[str, Any] | None = None


class TenantRead(BaseModel):
    """Admin view of a tenant. Secrets are never included."""

    id: str
    subdomain: str | None
    name: str
    display_name: str
    status: TenantStatus
    client_id: str | None
    has_client_secret: bool
    has_integration_credentials: bool
    uses_default_credentials: bool
    institution_domain: str | None
    corporate_partner_ids: list[str]
    branding: dict[str, Any]
    features: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantRead":
        creds = tenant.credentials
        return cls(
            id=tenant.id,
            subdomain=tenant.subdomain,
            name=tenant.name,
            display_name=tenant.display_name,
            status=tenant.status,
            client_id=creds.client_id if creds else None,
            has_client_secret=bool(creds and creds.client_secret),
            has_integration_credentials=bool(
                creds and creds.integration_client_id and creds.integration_client_secret
            ),
            uses_default_credentials=creds is None,
            institution_domain=tenant.institution_domain,
            corporate_partner_ids=list(tenant.corporate_partner_ids),
            branding=tenant.branding,
            features=tenant.features,
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


class TenantPublic(BaseModel):
    """Fields safe to show to anonymous visitors of a tenant's marketplace."""

    id: str
    subdomain: str | None
    name: str
    display_name: str
    status: TenantStatus
    branding: dict[str, Any]
    features: dict[str, Any]

    @classmethod
    def from_tenant(cls, tenant: Tenant) -> "TenantPublic":
        return cls(
            id=tenant.id,
            subdomain=tenant.subdomain,
            name=tenant.name,
            display_name=tenant.display_name,
            status=tenant.status,
            branding=tenant.branding,
            features=tenant.features,
        )
