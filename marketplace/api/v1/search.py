"""User search inside the resolved tenant's boundary."""

from typing import Annotated, Literal

from fastapi import APIRouter, Query

from marketplace.api.deps import Scope, TenantClient
from marketplace.services.search import SearchFilters, search_users

router = APIRouter(prefix="/search", tags=["search"])


@router.get("/users")
async def search_users_endpoint(
    client: TenantClient,
    scope: Scope,
    user_type: Literal["student", "corporate-partner"] = "student",
    state: str | None = None,
    university: str | None = None,
    major: str | None = None,
    graduation_year: str | None = None,
    skills: str | None = Query(default=None, description="Comma-separated; matches any"),
    industry: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=100)] = 20,
) -> dict:
    filters = SearchFilters(
        state=state,
        university=university,
        major=major,
        graduation_year=graduation_year,
        skills=[s.strip() for s in skills.split(",") if s.strip()] if skills else [],
        industry=industry,
    )
    return await search_users(client, scope, user_type, filters=filters, page=page, per_page=per_page)
