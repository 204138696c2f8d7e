"""Tenant data-boundary scoping for cross-user reads.

``derive_scope`` turns a tenant into the restriction set that reports,
search and messaging must honour. Institution domains are applied at the
query layer (as backend query parameters); corporate partner ids can only
be applied as a post-filter over returned records.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from marketplace.models.tenant import Tenant

STUDENT = "student"
CORPORATE_PARTNER = "corporate-partner"
EDUCATIONAL_ADMIN = "educational-admin"
SYSTEM_ADMIN = "system-admin"

# Backend query parameter carrying the institution domain, per user type
DOMAIN_QUERY_PARAMS = {
    STUDENT: "pub_emailDomain",
    EDUCATIONAL_ADMIN: "pub_institutionDomain",
}


@dataclass(frozen=True)
class TenantScope:
    institution_domain: str | None = None
    corporate_partner_ids: frozenset[str] | None = None

    @property
    def restricts_partners(self) -> bool:
        return self.corporate_partner_ids is not None


def derive_scope(tenant: Tenant | None) -> TenantScope | None:
    """None means unrestricted (default tenant or platform-wide administration)."""
    if tenant is None:
        return None
    domain = tenant.institution_domain.lower() if tenant.institution_domain else None
    partners = frozenset(tenant.corporate_partner_ids) if tenant.corporate_partner_ids else None
    if domain is None and partners is None:
        return None
    return TenantScope(institution_domain=domain, corporate_partner_ids=partners)


def user_query_params(
    user_type: str,
    scope: TenantScope | None,
    **params: Any,
) -> dict[str, Any]:
    """Backend query parameters for a user listing, narrowed to the scope."""
    query = {"pub_userType": user_type, **params}
    if scope is not None and scope.institution_domain:
        param = DOMAIN_QUERY_PARAMS.get(user_type)
        if param:
            query[param] = scope.institution_domain
    return query


def user_id(user: dict) -> str | None:
    """Extract a plain id from a backend user (``{"id": {"uuid": ...}}`` or ``{"id": "..."}``)."""
    raw = user.get("id")
    if isinstance(raw, dict):
        return raw.get("uuid")
    return raw


def filter_partners(users: Iterable[dict], scope: TenantScope | None) -> list[dict]:
    """Keep only corporate partners the tenant may see."""
    users = list(users)
    if scope is None or not scope.restricts_partners:
        return users
    return [u for u in users if user_id(u) in scope.corporate_partner_ids]


def transaction_party_ids(tx: dict) -> list[str]:
    relationships = tx.get("relationships") or {}
    ids = []
    for party in ("provider", "customer"):
        data = (relationships.get(party) or {}).get("data") or {}
        party_id = user_id(data)
        if party_id:
            ids.append(party_id)
    return ids


def filter_transactions(transactions: Iterable[dict], scope: TenantScope | None) -> list[dict]:
    """Keep only transactions naming one of the tenant's corporate partners."""
    transactions = list(transactions)
    if scope is None or not scope.restricts_partners:
        return transactions
    return [
        tx
        for tx in transactions
        if any(pid in scope.corporate_partner_ids for pid in transaction_party_ids(tx))
    ]


def domain_matches(email_domain: str | None, institution_domain: str) -> bool:
    """``cs.harvard.edu`` and ``harvard.edu`` both match ``harvard.edu``."""
    if not email_domain:
        return False
    email_domain = email_domain.lower()
    institution_domain = institution_domain.lower()
    return email_domain == institution_domain or email_domain.endswith(f".{institution_domain}")


def user_in_scope(user: dict, scope: TenantScope | None) -> bool:
    """Whether a backend user record falls inside the tenant's boundary."""
    if scope is None:
        return True
    public = ((user.get("attributes") or {}).get("profile") or {}).get("publicData") or {}
    user_type = public.get("userType")

    if user_type == SYSTEM_ADMIN:
        return True
    if user_type == CORPORATE_PARTNER:
        return not scope.restricts_partners or user_id(user) in scope.corporate_partner_ids
    if user_type == STUDENT and scope.institution_domain:
        return domain_matches(public.get("emailDomain"), scope.institution_domain)
    if user_type == EDUCATIONAL_ADMIN and scope.institution_domain:
        return domain_matches(public.get("institutionDomain"), scope.institution_domain)
    return True
