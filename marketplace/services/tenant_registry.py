"""Tenant registry: in-process view over the tenant store.

Reads are served from an immutable snapshot that is swapped wholesale
after each successful write, so a reader always observes either the
pre-mutation or the post-mutation state. Mutations are serialized by a
single write lock and persisted before the snapshot is swapped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel

from marketplace.core.config import Settings
from marketplace.core.exceptions import NotFoundError, ValidationError
from marketplace.models.base import utcnow
from marketplace.models.tenant import (
    DEFAULT_TENANT_ID,
    Tenant,
    TenantCreate,
    TenantStatus,
    TenantUpdate,
)
from marketplace.services.tenant_store import TenantStore
from marketplace.services.tenant_validation import (
    build_credentials,
    deep_merge,
    normalize_institution_domain,
    normalize_partner_ids,
    normalize_status,
    normalize_subdomain,
    require_mapping,
    require_text,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    by_id: Mapping[str, Tenant] = field(default_factory=lambda: MappingProxyType({}))
    by_subdomain: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def of(cls, tenants: list[Tenant]) -> "_Snapshot":
        by_id = {t.id: t for t in tenants}
        by_subdomain = {t.subdomain: t.id for t in tenants if t.subdomain}
        return cls(MappingProxyType(by_id), MappingProxyType(by_subdomain))

    def with_tenant(self, tenant: Tenant) -> "_Snapshot":
        tenants = [t for t in self.by_id.values() if t.id != tenant.id]
        tenants.append(tenant)
        return _Snapshot.of(tenants)

    def without(self, tenant_id: str) -> "_Snapshot":
        return _Snapshot.of([t for t in self.by_id.values() if t.id != tenant_id])


class TenantRegistry:
    """Lookup, lifecycle and bootstrap of tenants.

    Example:
        >>> registry = TenantRegistry(store, settings)
        >>> await registry.bootstrap()
        >>> registry.resolve_by_subdomain(None).id
        'default'
    """

    def __init__(self, store: TenantStore, settings: Settings) -> None:
        self._store = store
        self._platform_name = settings.marketplace_name
        self._snapshot = _Snapshot()
        self._write_lock = asyncio.Lock()

    # ── Startup ───────────────────────────────────────────────

    async def bootstrap(self) -> Tenant:
        """Load every tenant and seed the default one if it is missing.

        Safe to call on every restart: existing rows are never touched.
        """
        async with self._write_lock:
            tenants = await self._store.list_all()
            if not any(t.id == DEFAULT_TENANT_ID for t in tenants):
                default = self._build_default_tenant()
                try:
                    await self._store.insert(default)
                    logger.info("Seeded default tenant (store had %d other tenants)", len(tenants))
                except ValidationError:
                    # Another process seeded it first
                    tenants = await self._store.list_all()
                else:
                    tenants.append(default)
            self._snapshot = _Snapshot.of(tenants)
            logger.info("Tenant registry loaded %d tenants", len(tenants))
            return self._snapshot.by_id[DEFAULT_TENANT_ID]

    def _build_default_tenant(self) -> Tenant:
        now = utcnow()
        return Tenant(
            id=DEFAULT_TENANT_ID,
            subdomain=None,
            name=self._platform_name,
            display_name=self._platform_name,
            status=TenantStatus.ACTIVE,
            credentials=None,
            branding={"marketplaceName": self._platform_name},
            created_at=now,
            updated_at=now,
        )

    # ── Reads (lock-free) ─────────────────────────────────────

    def resolve_by_subdomain(self, subdomain: str | None) -> Tenant | None:
        """Case-insensitive lookup; an absent subdomain means the default tenant."""
        snapshot = self._snapshot
        if not subdomain:
            return snapshot.by_id.get(DEFAULT_TENANT_ID)
        tenant_id = snapshot.by_subdomain.get(subdomain.strip().lower())
        return snapshot.by_id.get(tenant_id) if tenant_id else None

    def resolve_by_id(self, tenant_id: str) -> Tenant | None:
        return self._snapshot.by_id.get(tenant_id)

    @property
    def default_tenant(self) -> Tenant | None:
        return self._snapshot.by_id.get(DEFAULT_TENANT_ID)

    def list_tenants(self) -> list[Tenant]:
        return sorted(self._snapshot.by_id.values(), key=lambda t: (not t.is_default, t.created_at))

    def __len__(self) -> int:
        return len(self._snapshot.by_id)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._snapshot.by_id

    # ── Mutations ─────────────────────────────────────────────

    async def create(self, data: TenantCreate | Mapping[str, Any]) -> Tenant:
        values = _as_dict(data)
        subdomain = normalize_subdomain(values.get("subdomain"))
        name = require_text("name", values.get("name"), "Tenant name")
        credentials = build_credentials(_as_dict(values.get("credentials")))

        display_name = values.get("display_name")
        display_name = (
            require_text("display_name", display_name, "Display name")
            if display_name is not None
            else f"{name} on {self._platform_name}"
        )
        status = normalize_status(values.get("status") or TenantStatus.ACTIVE)
        branding = values.get("branding")
        branding = (
            dict(require_mapping("branding", branding))
            if branding is not None
            else {"marketplaceName": display_name}
        )
        features = dict(require_mapping("features", values.get("features") or {}))

        async with self._write_lock:
            snapshot = self._snapshot
            if subdomain in snapshot.by_subdomain or subdomain in snapshot.by_id:
                raise ValidationError(
                    "subdomain",
                    "A tenant with this subdomain already exists.",
                    conflict=True,
                )
            now = utcnow()
            tenant = Tenant(
                id=subdomain,
                subdomain=subdomain,
                name=name,
                display_name=display_name,
                status=status,
                credentials=credentials,
                institution_domain=normalize_institution_domain(values.get("institution_domain")),
                corporate_partner_ids=normalize_partner_ids(values.get("corporate_partner_ids")),
                branding=branding,
                features=features,
                created_at=now,
                updated_at=now,
            )
            await self._store.insert(tenant)
            self._snapshot = snapshot.with_tenant(tenant)

        logger.info("Tenant created: id=%s name=%s", tenant.id, tenant.name)
        return tenant

    async def update(self, tenant_id: str, patch: TenantUpdate | Mapping[str, Any]) -> Tenant:
        """Apply a partial update; nested credentials/branding/features merge."""
        changes = _as_dict(patch)
        async with self._write_lock:
            tenant = await self._apply_locked(tenant_id, changes)
        logger.info("Tenant updated: id=%s fields=%s", tenant.id, sorted(changes))
        return tenant

    async def delete(self, tenant_id: str) -> None:
        if tenant_id == DEFAULT_TENANT_ID:
            raise ValidationError("id", "Cannot delete the default tenant.")
        async with self._write_lock:
            if tenant_id not in self._snapshot.by_id:
                raise NotFoundError(tenant_id)
            await self._store.delete(tenant_id)
            self._snapshot = self._snapshot.without(tenant_id)
        logger.info("Tenant deleted: id=%s", tenant_id)

    async def activate(self, tenant_id: str) -> Tenant:
        return await self.update(tenant_id, {"status": TenantStatus.ACTIVE})

    async def deactivate(self, tenant_id: str) -> Tenant:
        if tenant_id == DEFAULT_TENANT_ID:
            raise ValidationError("status", "Cannot deactivate the default tenant.")
        return await self.update(tenant_id, {"status": TenantStatus.INACTIVE})

    async def add_partner(self, tenant_id: str, partner_id: str) -> Tenant:
        partner_id = require_text("partner_id", partner_id, "Partner id")
        async with self._write_lock:
            tenant = self._get_or_raise(tenant_id)
            if partner_id in tenant.corporate_partner_ids:
                raise ValidationError(
                    "partner_id",
                    "Partner is already associated with this tenant.",
                    conflict=True,
                )
            partners = [*tenant.corporate_partner_ids, partner_id]
            return await self._apply_locked(tenant_id, {"corporate_partner_ids": partners})

    async def remove_partner(self, tenant_id: str, partner_id: str) -> Tenant:
        async with self._write_lock:
            tenant = self._get_or_raise(tenant_id)
            if partner_id not in tenant.corporate_partner_ids:
                raise NotFoundError(
                    partner_id,
                    resource="Partner",
                    message=f"Partner '{partner_id}' is not associated with tenant '{tenant_id}'",
                )
            partners = [p for p in tenant.corporate_partner_ids if p != partner_id]
            return await self._apply_locked(tenant_id, {"corporate_partner_ids": partners})

    # ── Internals ─────────────────────────────────────────────

    def _get_or_raise(self, tenant_id: str) -> Tenant:
        tenant = self._snapshot.by_id.get(tenant_id)
        if tenant is None:
            raise NotFoundError(tenant_id)
        return tenant

    async def _apply_locked(self, tenant_id: str, changes: dict[str, Any]) -> Tenant:
        tenant = self._get_or_raise(tenant_id)
        fields: dict[str, Any] = {}

        if "subdomain" in changes and changes["subdomain"] != tenant.subdomain:
            if tenant.is_default:
                raise ValidationError("subdomain", "Cannot change the subdomain of the default tenant.")
            subdomain = normalize_subdomain(changes["subdomain"])
            owner = self._snapshot.by_subdomain.get(subdomain)
            if owner is not None and owner != tenant.id:
                raise ValidationError(
                    "subdomain",
                    "A tenant with this subdomain already exists.",
                    conflict=True,
                )
            fields["subdomain"] = subdomain

        if "name" in changes:
            fields["name"] = require_text("name", changes["name"], "Tenant name")
        if "display_name" in changes:
            fields["display_name"] = require_text(
                "display_name", changes["display_name"], "Display name"
            )
        if "status" in changes:
            fields["status"] = normalize_status(changes["status"])
            if tenant.is_default and fields["status"] != TenantStatus.ACTIVE:
                raise ValidationError("status", "The default tenant must stay active.")
        if "institution_domain" in changes:
            fields["institution_domain"] = normalize_institution_domain(
                changes["institution_domain"]
            )
        if "corporate_partner_ids" in changes:
            fields["corporate_partner_ids"] = normalize_partner_ids(
                changes["corporate_partner_ids"]
            )

        if "credentials" in changes:
            patch = changes["credentials"]
            if patch is None:
                if not tenant.is_default:
                    raise ValidationError(
                        "credentials", "Credentials can only be cleared on the default tenant."
                    )
                fields["credentials"] = None
            else:
                current = tenant.credentials.model_dump() if tenant.credentials else {}
                merged = {**current, **{k: v for k, v in _as_dict(patch).items() if v is not None}}
                fields["credentials"] = build_credentials(merged)

        for key in ("branding", "features"):
            if key in changes and changes[key] is not None:
                patch = require_mapping(key, changes[key])
                fields[key] = deep_merge(getattr(tenant, key), patch)

        fields["updated_at"] = _touch(tenant.updated_at)
        updated = tenant.model_copy(update=fields)
        await self._store.replace(updated)
        self._snapshot = self._snapshot.with_tenant(updated)
        return updated


def _as_dict(data: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=True)
    return dict(data)


def _touch(previous: datetime) -> datetime:
    """A fresh timestamp that is strictly later than ``previous``."""
    now = utcnow()
    return now if now > previous else previous + timedelta(microseconds=1)
