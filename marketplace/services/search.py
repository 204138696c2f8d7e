"""Tenant-scoped user search."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.services.scope import (
    CORPORATE_PARTNER,
    STUDENT,
    TenantScope,
    filter_partners,
    user_id,
    user_in_scope,
    user_query_params,
)

logger = logging.getLogger(__name__)

SEARCHABLE_USER_TYPES = (STUDENT, CORPORATE_PARTNER)
BATCH_SIZE = 100
MAX_PAGES = 10

# Public profile fields returned to searchers; everything else is private
SAFE_PUBLIC_FIELDS = (
    "userType",
    "university",
    "major",
    "graduationYear",
    "studentState",
    "skills",
    "interests",
    "companyName",
    "companyState",
    "industry",
    "companySize",
)


@dataclass
class SearchFilters:
    state: str | None = None
    university: str | None = None
    major: str | None = None
    graduation_year: str | None = None
    skills: list[str] = field(default_factory=list)
    industry: str | None = None

    @property
    def active(self) -> bool:
        return any((self.state, self.university, self.major, self.graduation_year, self.skills, self.industry))

    def matches(self, user_type: str, public: dict) -> bool:
        if self.state:
            state_key = "studentState" if user_type == STUDENT else "companyState"
            if public.get(state_key) != self.state:
                return False
        if user_type == STUDENT:
            if self.graduation_year and str(public.get("graduationYear")) != self.graduation_year:
                return False
            if self.university and self.university.lower() not in str(public.get("university", "")).lower():
                return False
            if self.major and self.major.lower() not in str(public.get("major", "")).lower():
                return False
            if self.skills:
                user_skills = {str(s).lower() for s in public.get("skills") or []}
                if not any(s.lower() in user_skills for s in self.skills):
                    return False
        if user_type == CORPORATE_PARTNER and self.industry and public.get("industry") != self.industry:
            return False
        return True


async def search_users(
    client: MarketplaceClient,
    scope: TenantScope | None,
    user_type: str,
    *,
    filters: SearchFilters | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Search one user type inside the tenant's boundary.

    The institution domain narrows the backend query itself; partner ids
    and profile filters are applied to the returned records, in which case
    pages are fetched in batches and paginated locally. At most
    ``MAX_PAGES`` batches are read; ``truncated`` in the result says whether
    the backend had more.
    """
    if user_type not in SEARCHABLE_USER_TYPES:
        raise ValueError(f"user_type must be one of: {', '.join(SEARCHABLE_USER_TYPES)}")
    filters = filters or SearchFilters()
    partner_scoped = user_type == CORPORATE_PARTNER and scope is not None and scope.restricts_partners
    post_filtered = filters.active or partner_scoped

    if post_filtered:
        users, truncated = await _fetch_all(client, scope, user_type)
        users = _apply_boundary(users, scope, user_type)
        users = [u for u in users if filters.matches(user_type, _public_data(u))]
        total = len(users)
        start = (page - 1) * per_page
        users = users[start : start + per_page]
    else:
        truncated = False
        response = await client.query_users(
            **user_query_params(user_type, scope, page=page, perPage=per_page)
        )
        users = _apply_boundary(response.get("data", []), scope, user_type)
        total = int((response.get("meta") or {}).get("totalItems", len(users)))

    return {
        "users": [_sanitize(u) for u in users],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total_items": total,
            "total_pages": math.ceil(total / per_page) if per_page else 0,
        },
        "tenant_scoped": scope is not None,
        "truncated": truncated,
    }


async def _fetch_all(
    client: MarketplaceClient, scope: TenantScope | None, user_type: str
) -> tuple[list[dict], bool]:
    users: list[dict] = []
    page, total_pages = 1, 1
    while page <= total_pages and page <= MAX_PAGES:
        response = await client.query_users(
            **user_query_params(user_type, scope, page=page, perPage=BATCH_SIZE)
        )
        users.extend(response.get("data", []))
        total_pages = int((response.get("meta") or {}).get("totalPages", 1))
        page += 1
    truncated = total_pages > MAX_PAGES
    if truncated:
        logger.warning(
            "Search for %s stopped after %d of %d pages; results are incomplete",
            user_type,
            MAX_PAGES,
            total_pages,
        )
    return users, truncated


def _apply_boundary(users: list[dict], scope: TenantScope | None, user_type: str) -> list[dict]:
    if user_type == CORPORATE_PARTNER:
        users = filter_partners(users, scope)
    return [u for u in users if user_in_scope(u, scope)]


def _public_data(user: dict) -> dict:
    return ((user.get("attributes") or {}).get("profile") or {}).get("publicData") or {}


def _sanitize(user: dict) -> dict:
    attributes = user.get("attributes") or {}
    profile = attributes.get("profile") or {}
    public = _public_data(user)
    return {
        "id": user_id(user),
        "display_name": profile.get("displayName"),
        "banned": bool(attributes.get("banned")),
        "created_at": attributes.get("createdAt"),
        "public_data": {k: public[k] for k in SAFE_PUBLIC_FIELDS if k in public},
    }
