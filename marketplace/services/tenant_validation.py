"""Field-level validation and normalization for tenant input."""

from __future__ import annotations

import copy
import re
from typing import Any

from marketplace.core.exceptions import ValidationError
from marketplace.models.tenant import TenantCredentials, TenantStatus

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,28}[a-z0-9]$")
RESERVED_SUBDOMAINS = frozenset({"default", "www", "api"})
DOMAIN_PATTERN = re.compile(r"^(?=.{3,255}$)[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)+$")


def normalize_subdomain(value: Any) -> str:
    """Lowercase and validate a subdomain a tenant wants to claim."""
    if not value or not isinstance(value, str):
        raise ValidationError("subdomain", "Subdomain is required.")
    subdomain = value.strip().lower()
    if not SUBDOMAIN_PATTERN.match(subdomain):
        raise ValidationError(
            "subdomain",
            "Subdomain must be 3-30 characters, lowercase alphanumeric and hyphens only.",
        )
    if subdomain in RESERVED_SUBDOMAINS:
        raise ValidationError("subdomain", f"The subdomain '{subdomain}' is reserved.")
    return subdomain


def require_text(field: str, value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, f"{label} is required.")
    return value.strip()


def normalize_status(value: Any) -> TenantStatus:
    try:
        return TenantStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in TenantStatus)
        raise ValidationError("status", f"Status must be one of: {allowed}.") from exc


def normalize_institution_domain(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError("institution_domain", "Institution domain must be a string.")
    domain = value.strip().lower().lstrip("@")
    if not DOMAIN_PATTERN.match(domain):
        raise ValidationError("institution_domain", f"'{value}' is not a valid email domain.")
    return domain


def normalize_partner_ids(value: Any) -> tuple[str, ...]:
    """Deduplicate partner ids, keeping first-seen order."""
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        raise ValidationError("corporate_partner_ids", "Corporate partner ids must be a list.")
    seen: dict[str, None] = {}
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(
                "corporate_partner_ids", "Corporate partner ids must be non-empty strings."
            )
        seen.setdefault(item.strip(), None)
    return tuple(seen)


def build_credentials(values: dict[str, Any] | None) -> TenantCredentials:
    """Turn a credential mapping into a complete pair, or reject it.

    The user-facing pair is mandatory. The integration pair is optional but
    must be given whole; when omitted it stays unset and
    ``TenantCredentials.pair`` falls back to the user-facing pair.
    """
    values = {k: v for k, v in (values or {}).items() if v not in (None, "")}
    client_id = values.get("client_id")
    client_secret = values.get("client_secret")
    if not client_id:
        raise ValidationError("credentials.client_id", "Client id and client secret are required.")
    if not client_secret:
        raise ValidationError(
            "credentials.client_secret", "Client id and client secret are required."
        )

    integration_id = values.get("integration_client_id")
    integration_secret = values.get("integration_client_secret")
    if bool(integration_id) != bool(integration_secret):
        missing = "integration_client_secret" if integration_id else "integration_client_id"
        raise ValidationError(
            f"credentials.{missing}",
            "Integration client id and secret must be provided together.",
        )

    return TenantCredentials(
        client_id=client_id,
        client_secret=client_secret,
        integration_client_id=integration_id,
        integration_client_secret=integration_secret,
    )


def require_mapping(field: str, value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValidationError(field, f"{field} must be an object.")
    return value


def deep_merge(base: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Merge ``patch`` into a copy of ``base``; nested objects merge key-by-key."""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
