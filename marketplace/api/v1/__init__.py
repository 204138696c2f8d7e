"""V1 API router aggregation."""

from fastapi import APIRouter

from marketplace.api.v1.admin_tenants import router as admin_tenants_router
from marketplace.api.v1.messaging import router as messaging_router
from marketplace.api.v1.reports import router as reports_router
from marketplace.api.v1.search import router as search_router
from marketplace.api.v1.tenant import router as tenant_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(tenant_router)
v1_router.include_router(admin_tenants_router)
v1_router.include_router(reports_router)
v1_router.include_router(search_router)
v1_router.include_router(messaging_router)
