"""Public view of the resolved tenant."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from marketplace.api.deps import CurrentTenant
from marketplace.models.tenant import TenantPublic
from marketplace.services.scope import STUDENT, domain_matches

router = APIRouter(prefix="/tenant", tags=["tenant"])


class SignupEmailCheck(BaseModel):
    email: str | None = None
    user_type: str | None = None


@router.get("", response_model=TenantPublic)
async def get_tenant_info(tenant: CurrentTenant) -> TenantPublic:
    return TenantPublic.from_tenant(tenant)


@router.post("/validate-signup-email")
async def validate_signup_email(body: SignupEmailCheck, tenant: CurrentTenant):
    """Students must sign up with an address at the tenant's institution."""
    if body.user_type != STUDENT or not tenant.institution_domain:
        return {"allowed": True}

    if not body.email:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"allowed": False, "error": "Email is required."},
        )
    local, _, email_domain = body.email.strip().lower().rpartition("@")
    if not local or not email_domain:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"allowed": False, "error": "Invalid email format."},
        )

    if not domain_matches(email_domain, tenant.institution_domain):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "allowed": False,
                "error": (
                    f"This marketplace is for {tenant.name} students only. "
                    f"Please use your {tenant.institution_domain} email address to sign up."
                ),
                "tenant_domain": tenant.institution_domain,
            },
        )
    return {"allowed": True, "email_domain": email_domain}
