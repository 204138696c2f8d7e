"""Scope derivation and record-level boundary checks."""

from marketplace.models.base import utcnow
from marketplace.models.tenant import Tenant
from marketplace.services.scope import (
    TenantScope,
    derive_scope,
    domain_matches,
    filter_partners,
    filter_transactions,
    user_in_scope,
    user_query_params,
)


def _tenant(**fields) -> Tenant:
    now = utcnow()
    return Tenant(id="t", subdomain="t", name="T", display_name="T", created_at=now, updated_at=now, **fields)


def _user(uid, user_type, **public):
    return {"id": {"uuid": uid}, "attributes": {"profile": {"publicData": {"userType": user_type, **public}}}}


def test_unrestricted_tenant_has_no_scope():
    assert derive_scope(_tenant()) is None
    assert derive_scope(None) is None


def test_scope_carries_present_dimensions():
    scope = derive_scope(_tenant(institution_domain="Harvard.edu", corporate_partner_ids=("c1",)))
    assert scope == TenantScope(institution_domain="harvard.edu", corporate_partner_ids=frozenset({"c1"}))
    assert derive_scope(_tenant(institution_domain="mit.edu")).restricts_partners is False


def test_domain_applied_as_query_parameter():
    scope = TenantScope(institution_domain="harvard.edu")
    assert user_query_params("student", scope)["pub_emailDomain"] == "harvard.edu"
    assert user_query_params("educational-admin", scope)["pub_institutionDomain"] == "harvard.edu"
    assert "pub_emailDomain" not in user_query_params("corporate-partner", scope)
    assert user_query_params("student", None) == {"pub_userType": "student"}


def test_partner_post_filter():
    scope = TenantScope(corporate_partner_ids=frozenset({"c1"}))
    users = [_user("c1", "corporate-partner"), _user("c2", "corporate-partner")]
    assert [u["id"]["uuid"] for u in filter_partners(users, scope)] == ["c1"]
    assert filter_partners(users, None) == users

    txs = [
        {"relationships": {"provider": {"data": {"id": {"uuid": "c1"}}}}},
        {"relationships": {"provider": {"data": {"id": {"uuid": "c2"}}}}},
    ]
    assert filter_transactions(txs, scope) == txs[:1]


def test_domain_matching_accepts_subdomains():
    assert domain_matches("cs.harvard.edu", "harvard.edu")
    assert domain_matches("HARVARD.EDU", "harvard.edu")
    assert not domain_matches("notharvard.edu", "harvard.edu")
    assert not domain_matches(None, "harvard.edu")


def test_user_in_scope():
    scope = TenantScope(institution_domain="harvard.edu", corporate_partner_ids=frozenset({"c1"}))
    assert user_in_scope(_user("s1", "student", emailDomain="harvard.edu"), scope)
    assert not user_in_scope(_user("s2", "student", emailDomain="mit.edu"), scope)
    assert not user_in_scope(_user("a2", "educational-admin", institutionDomain="mit.edu"), scope)
    assert not user_in_scope(_user("c2", "corporate-partner"), scope)
    assert user_in_scope(_user("sys", "system-admin"), scope)
    assert user_in_scope(_user("s2", "student", emailDomain="mit.edu"), None)
