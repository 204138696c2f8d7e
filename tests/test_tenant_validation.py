"""Field validation and normalization for tenant input."""

import pytest

from marketplace.core.exceptions import ValidationError
from marketplace.models.tenant import TenantStatus
from marketplace.services.tenant_validation import (
    build_credentials,
    deep_merge,
    normalize_institution_domain,
    normalize_partner_ids,
    normalize_status,
    normalize_subdomain,
)


def test_subdomain_is_lowercased():
    assert normalize_subdomain("  Harvard ") == "harvard"


@pytest.mark.parametrize("value", ["ab", "-abc", "abc-", "has space", "under_score", "a" * 31, "", None, 42])
def test_invalid_subdomains_rejected(value):
    with pytest.raises(ValidationError) as exc_info:
        normalize_subdomain(value)
    assert exc_info.value.field == "subdomain"


@pytest.mark.parametrize("value", ["default", "www", "api", "WWW"])
def test_reserved_subdomains_rejected(value):
    with pytest.raises(ValidationError, match="reserved"):
        normalize_subdomain(value)


def test_status_must_be_known():
    assert normalize_status("pending") is TenantStatus.PENDING
    with pytest.raises(ValidationError) as exc_info:
        normalize_status("archived")
    assert exc_info.value.field == "status"


def test_institution_domain_normalized():
    assert normalize_institution_domain("@Harvard.EDU ") == "harvard.edu"
    assert normalize_institution_domain("") is None
    with pytest.raises(ValidationError):
        normalize_institution_domain("not a domain")


def test_partner_ids_deduplicated_in_order():
    assert normalize_partner_ids(["b", "a", "b", " a "]) == ("b", "a")
    with pytest.raises(ValidationError):
        normalize_partner_ids("corp-1")


def test_credentials_require_both_halves():
    with pytest.raises(ValidationError) as exc_info:
        build_credentials({"client_id": "abc"})
    assert exc_info.value.field == "credentials.client_secret"

    with pytest.raises(ValidationError) as exc_info:
        build_credentials({})
    assert exc_info.value.field == "credentials.client_id"


def test_integration_pair_defaults_to_client_pair():
    creds = build_credentials({"client_id": "abc", "client_secret": "s3cret"})
    assert creds.integration_client_id is None
    assert creds.integration_client_secret is None
    assert creds.pair(integration=True) == ("abc", "s3cret")


def test_integration_pair_kept_when_given():
    creds = build_credentials({
        "client_id": "abc", "client_secret": "s3cret",
        "integration_client_id": "integ", "integration_client_secret": "integ-secret",
    })
    assert creds.pair(integration=True) == ("integ", "integ-secret")
    assert creds.pair(integration=False) == ("abc", "s3cret")


def test_partial_integration_pair_rejected():
    with pytest.raises(ValidationError) as exc_info:
        build_credentials({"client_id": "abc", "client_secret": "s", "integration_client_id": "i"})
    assert exc_info.value.field == "credentials.integration_client_secret"


def test_deep_merge_keeps_untouched_keys():
    base = {"colors": {"primary": "red", "accent": "blue"}, "logo": "a.png"}
    merged = deep_merge(base, {"colors": {"primary": "crimson"}})
    assert merged == {"colors": {"primary": "crimson", "accent": "blue"}, "logo": "a.png"}
    assert base["colors"]["primary"] == "red"
