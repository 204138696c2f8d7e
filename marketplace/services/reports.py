"""Administrative reports computed through a tenant-bound client and scope."""

from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone

from marketplace.clients.marketplace import MarketplaceClient
from marketplace.services.scope import (
    CORPORATE_PARTNER,
    EDUCATIONAL_ADMIN,
    STUDENT,
    TenantScope,
    filter_partners,
    filter_transactions,
    user_query_params,
)

REPORT_TYPES = ("overview", "users", "institutions", "transactions")
PAGE_SIZE = 100


async def generate_report(
    report_type: str,
    client: MarketplaceClient,
    scope: TenantScope | None,
) -> dict:
    """Build one report. Every report states whether tenant scoping applied."""
    generators = {
        "overview": overview_report,
        "users": users_report,
        "institutions": institutions_report,
        "transactions": transactions_report,
    }
    if report_type not in generators:
        raise ValueError(f"Invalid report type. Valid types: {', '.join(REPORT_TYPES)}")
    body = await generators[report_type](client, scope)
    return {
        "type": report_type,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "tenant_scoped": scope is not None,
        **body,
    }


async def overview_report(client: MarketplaceClient, scope: TenantScope | None) -> dict:
    students, corporates, edu_admins = await asyncio.gather(
        client.query_users(**user_query_params(STUDENT, scope, perPage=1)),
        client.query_users(**user_query_params(CORPORATE_PARTNER, scope, perPage=1)),
        client.query_users(**user_query_params(EDUCATIONAL_ADMIN, scope, perPage=1)),
    )
    corporate_count = _total(corporates)
    if scope is not None and scope.restricts_partners:
        # Count only the partners that still exist on the backend
        found = await asyncio.gather(*(client.show_user(pid) for pid in sorted(scope.corporate_partner_ids)))
        corporate_count = sum(1 for user in found if user is not None)

    user_counts = {
        "students": _total(students),
        "corporate_partners": corporate_count,
        "educational_admins": _total(edu_admins),
    }
    user_counts["total"] = sum(user_counts.values())

    transactions = await _scoped_transactions(client, scope)
    recent = _recent_counts(transactions.items)
    return {
        "user_counts": user_counts,
        "transaction_stats": {"total": transactions.total, **recent},
    }


async def users_report(client: MarketplaceClient, scope: TenantScope | None) -> dict:
    breakdown: dict[str, dict] = {}
    for user_type in (STUDENT, CORPORATE_PARTNER, EDUCATIONAL_ADMIN):
        response = await client.query_users(**user_query_params(user_type, scope, perPage=PAGE_SIZE))
        users = response.get("data", [])
        total = _total(response)
        if user_type == CORPORATE_PARTNER and scope is not None and scope.restricts_partners:
            users = filter_partners(users, scope)
            total = len(users)

        attrs = [u.get("attributes") or {} for u in users]
        breakdown[user_type] = {
            "total": total,
            "active": sum(1 for a in attrs if not a.get("banned") and not a.get("deleted")),
            "banned": sum(1 for a in attrs if a.get("banned")),
            "deleted": sum(1 for a in attrs if a.get("deleted")),
            "new_this_month": _recent_counts(users)["this_month"],
        }

    return {
        "breakdown": breakdown,
        "summary": {
            "total_users": sum(b["total"] for b in breakdown.values()),
            "total_active": sum(b["active"] for b in breakdown.values()),
            "total_banned": sum(b["banned"] for b in breakdown.values()),
            "new_users_this_month": sum(b["new_this_month"] for b in breakdown.values()),
        },
    }


async def institutions_report(client: MarketplaceClient, scope: TenantScope | None) -> dict:
    response = await client.query_users(**user_query_params(EDUCATIONAL_ADMIN, scope, perPage=PAGE_SIZE))
    admins = response.get("data", [])

    institutions: dict[str, dict] = {}
    for admin in admins:
        public = _public_data(admin)
        domain = (public.get("institutionDomain") or "").lower()
        if not domain:
            continue
        if scope is not None and scope.institution_domain and domain != scope.institution_domain:
            continue
        entry = institutions.setdefault(
            domain, {"domain": domain, "name": public.get("institutionName"), "admin_count": 0}
        )
        entry["admin_count"] += 1

    for domain, entry in institutions.items():
        students = await client.query_users(pub_userType=STUDENT, pub_emailDomain=domain, perPage=1)
        entry["student_count"] = _total(students)

    rows = sorted(institutions.values(), key=lambda e: e["domain"])
    return {
        "institutions": rows,
        "total_institutions": len(rows),
        "total_students": sum(r["student_count"] for r in rows),
    }


async def transactions_report(client: MarketplaceClient, scope: TenantScope | None) -> dict:
    transactions = await _scoped_transactions(client, scope)
    by_transition = Counter(
        (tx.get("attributes") or {}).get("lastTransition") or "unknown" for tx in transactions.items
    )
    return {
        "total": transactions.total,
        "by_last_transition": dict(sorted(by_transition.items())),
        **_recent_counts(transactions.items),
    }


# ── Helpers ───────────────────────────────────────────────────

class _Transactions:
    __slots__ = ("items", "total")

    def __init__(self, items: list[dict], total: int) -> None:
        self.items = items
        self.total = total


async def _scoped_transactions(client: MarketplaceClient, scope: TenantScope | None) -> _Transactions:
    response = await client.query_transactions(perPage=PAGE_SIZE)
    items = response.get("data", [])
    if scope is not None and scope.restricts_partners:
        items = filter_transactions(items, scope)
        return _Transactions(items, len(items))
    return _Transactions(items, _total(response))


def _total(response: dict) -> int:
    meta = response.get("meta") or {}
    return int(meta.get("totalItems", len(response.get("data", []))))


def _public_data(user: dict) -> dict:
    return ((user.get("attributes") or {}).get("profile") or {}).get("publicData") or {}


def _recent_counts(records: list[dict]) -> dict:
    now = datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)
    this_week = this_month = 0
    for record in records:
        created = _parse_timestamp((record.get("attributes") or {}).get("createdAt"))
        if created is None:
            continue
        if created >= month_ago:
            this_month += 1
        if created >= week_ago:
            this_week += 1
    return {"this_month": this_month, "this_week": this_week}


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
