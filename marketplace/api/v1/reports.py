"""Tenant-scoped administrative reports."""

from fastapi import APIRouter, HTTPException, status

from marketplace.api.deps import AdminAuth, Scope, TenantClient
from marketplace.services.reports import REPORT_TYPES, generate_report

router = APIRouter(prefix="/admin/reports", tags=["reports"], dependencies=[AdminAuth])


@router.get("/{report_type}")
async def get_report(report_type: str, client: TenantClient, scope: Scope) -> dict:
    """Overview, users, institutions or transactions for the resolved tenant.

    Results are narrowed to the tenant's institution domain and corporate
    partners; ``tenant_scoped`` says whether any narrowing applied.
    """
    if report_type not in REPORT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid report type. Valid types: {', '.join(REPORT_TYPES)}",
        )
    return await generate_report(report_type, client, scope)
