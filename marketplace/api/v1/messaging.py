"""Messaging eligibility endpoints."""

from fastapi import APIRouter

from marketplace.api.deps import Scope, TenantClient
from marketplace.services.messaging import admin_recipients, recipient_eligibility

router = APIRouter(prefix="/messaging", tags=["messaging"])


@router.get("/admin-recipients")
async def list_admin_recipients(client: TenantClient, scope: Scope) -> dict:
    return await admin_recipients(client, scope)


@router.get("/recipients/{user_id}/eligibility")
async def get_recipient_eligibility(user_id: str, client: TenantClient, scope: Scope) -> dict:
    return await recipient_eligibility(client, scope, user_id)
