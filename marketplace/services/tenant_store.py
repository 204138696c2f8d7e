"""Durable tenant storage, one SQL row per tenant, written through immediately."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from marketplace.core.exceptions import StoreUnavailableError, ValidationError
from marketplace.core.security import CredentialCipher
from marketplace.models.base import as_utc
from marketplace.models.tenant import Tenant, TenantCredentials, TenantRecord, TenantStatus

logger = logging.getLogger(__name__)


class TenantStore:
    """Data access for tenant rows. No business rules beyond row mapping.

    Every call runs under ``timeout`` seconds; a deadline miss or a driver
    connectivity failure surfaces as ``StoreUnavailableError``. Credentials
    are encrypted with ``cipher`` before they reach the row.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: CredentialCipher,
        timeout: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher
        self._timeout = timeout

    async def list_all(self) -> list[Tenant]:
        async with self._guard("list"), self._session_factory() as session:
            result = await session.execute(
                select(TenantRecord).order_by(TenantRecord.created_at.asc())  # type: ignore[attr-defined]
            )
            return [self._to_tenant(row) for row in result.scalars().all()]

    async def get(self, tenant_id: str) -> Tenant | None:
        async with self._guard("get"), self._session_factory() as session:
            row = await session.get(TenantRecord, tenant_id)
            return self._to_tenant(row) if row is not None else None

    async def insert(self, tenant: Tenant) -> None:
        async with self._guard("insert"), self._session_factory() as session:
            session.add(self._to_record(tenant))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError(
                    "subdomain",
                    "A tenant with this subdomain already exists.",
                    conflict=True,
                ) from exc

    async def replace(self, tenant: Tenant) -> None:
        async with self._guard("update"), self._session_factory() as session:
            row = await session.get(TenantRecord, tenant.id)
            if row is None:
                row = self._to_record(tenant)
            else:
                for field, value in self._record_fields(tenant).items():
                    setattr(row, field, value)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError(
                    "subdomain",
                    "A tenant with this subdomain already exists.",
                    conflict=True,
                ) from exc

    async def delete(self, tenant_id: str) -> None:
        async with self._guard("delete"), self._session_factory() as session:
            row = await session.get(TenantRecord, tenant_id)
            if row is not None:
                await session.delete(row)
                await session.commit()

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._timeout):
                yield
        except TimeoutError as exc:
            logger.error("Tenant store timed out after %.1fs during %s", self._timeout, operation)
            raise StoreUnavailableError(operation) from exc
        except (OperationalError, InterfaceError, OSError) as exc:
            logger.error("Tenant store unreachable during %s: %s", operation, exc)
            raise StoreUnavailableError(operation) from exc

    # ── Row mapping ───────────────────────────────────────────

    def _record_fields(self, tenant: Tenant) -> dict:
        encrypted = None
        if tenant.credentials is not None:
            encrypted = self._cipher.encrypt_json(tenant.credentials.model_dump())
        return {
            "subdomain": tenant.subdomain,
            "name": tenant.name,
            "display_name": tenant.display_name,
            "status": str(tenant.status),
            "encrypted_credentials": encrypted,
            "institution_domain": tenant.institution_domain,
            "corporate_partner_ids": json.dumps(list(tenant.corporate_partner_ids)),
            "branding": json.dumps(tenant.branding),
            "features": json.dumps(tenant.features),
            "created_at": tenant.created_at,
            "updated_at": tenant.updated_at,
        }

    def _to_record(self, tenant: Tenant) -> TenantRecord:
        return TenantRecord(id=tenant.id, **self._record_fields(tenant))

    def _to_tenant(self, row: TenantRecord) -> Tenant:
        credentials = None
        if row.encrypted_credentials:
            credentials = TenantCredentials(**self._cipher.decrypt_json(row.encrypted_credentials))
        return Tenant(
            id=row.id,
            subdomain=row.subdomain,
            name=row.name,
            display_name=row.display_name,
            status=TenantStatus(row.status),
            credentials=credentials,
            institution_domain=row.institution_domain,
            corporate_partner_ids=tuple(json.loads(row.corporate_partner_ids or "[]")),
            branding=json.loads(row.branding or "{}"),
            features=json.loads(row.features or "{}"),
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )
