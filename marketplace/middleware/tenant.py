"""Tenant resolution middleware: the single gate for tenant-scoped traffic."""

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from marketplace.middleware.pages import tenant_not_found_page, tenant_unavailable_page
from marketplace.services.subdomain import extract_subdomain
from marketplace.services.tenancy import Tenancy

logger = logging.getLogger(__name__)


class TenantResolverMiddleware(BaseHTTPMiddleware):
    """
    Resolve the request's tenant from its host and attach it to
    ``request.state.tenant``. Unknown subdomains get a 404 page and
    non-active tenants a 503 page; neither falls back to the default tenant.
    """

    EXEMPT_PATHS = {
        "/health",
        "/openapi.json",
        "/docs",
        "/redoc",
        "/favicon.ico",
    }

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        tenancy: Tenancy = request.app.state.tenancy
        settings = tenancy.settings

        subdomain = extract_subdomain(
            request.headers.get("host"),
            settings.base_domain,
            settings.platform_domains,
        )
        if subdomain is None and settings.tenant_dev_mode:
            override = request.headers.get(settings.tenant_override_header) or request.query_params.get(
                settings.tenant_override_param
            )
            subdomain = override.strip().lower() if override and override.strip() else None

        if subdomain:
            tenant = tenancy.registry.resolve_by_subdomain(subdomain)
            if tenant is None:
                logger.info("Unknown tenant subdomain %r for %s", subdomain, request.url.path)
                return tenant_not_found_page(subdomain, settings.base_domain)
            if not tenant.is_active:
                logger.info("Rejected request for %s tenant %s", tenant.status, tenant.id)
                return tenant_unavailable_page(tenant.display_name)
        else:
            tenant = tenancy.registry.default_tenant
            if tenant is None:
                # Registry not bootstrapped; never serve without a tenant
                logger.error("Default tenant missing; rejecting %s", request.url.path)
                return tenant_unavailable_page("This marketplace")

        request.state.tenant = tenant
        response = await call_next(request)
        response.headers["X-Tenant-ID"] = tenant.id
        return response
