"""Messaging eligibility inside a tenant's boundary."""

from __future__ import annotations

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.core.exceptions import NotFoundError
from marketplace.services.scope import (
    EDUCATIONAL_ADMIN,
    SYSTEM_ADMIN,
    TenantScope,
    user_id,
    user_in_scope,
    user_query_params,
)


async def admin_recipients(client: MarketplaceClient, scope: TenantScope | None) -> dict:
    """Admins anyone in the tenant may message.

    Educational admins are narrowed to the tenant's institution; system
    admins are platform-wide and always reachable.
    """
    recipients = []
    for user_type in (EDUCATIONAL_ADMIN, SYSTEM_ADMIN):
        response = await client.query_users(**user_query_params(user_type, scope))
        for user in response.get("data", []):
            if not user_in_scope(user, scope):
                continue
            profile = (user.get("attributes") or {}).get("profile") or {}
            recipients.append(
                {
                    "id": user_id(user),
                    "name": profile.get("displayName") or user_type.replace("-", " ").title(),
                    "user_type": user_type,
                }
            )
    return {"recipients": recipients, "tenant_scoped": scope is not None}


async def recipient_eligibility(
    client: MarketplaceClient,
    scope: TenantScope | None,
    recipient_id: str,
) -> dict:
    user = await client.show_user(recipient_id)
    if user is None:
        raise NotFoundError(recipient_id, resource="User")
    record = user.get("data", user)
    eligible = user_in_scope(record, scope)
    return {
        "recipient_id": recipient_id,
        "eligible": eligible,
        "reason": None if eligible else "outside_tenant_boundary",
        "tenant_scoped": scope is not None,
    }
