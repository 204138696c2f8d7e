"""Process-default backend credentials.

Each credential field is resolved from an explicit, ordered list of
settings attributes (each of which has its own ordered environment
aliases in ``Settings``). The first non-empty value wins; when every
source is exhausted a ``ConfigurationError`` names the field.
"""

from __future__ import annotations

from enum import StrEnum

from marketplace.core.config import Settings
from marketplace.core.exceptions import ConfigurationError


class ClientKind(StrEnum):
    INTEGRATION = "integration"  # privileged, server-to-server reads
    MARKETPLACE = "marketplace"  # user-facing


CREDENTIAL_SOURCES: dict[ClientKind, dict[str, tuple[str, ...]]] = {
    ClientKind.INTEGRATION: {
        "client_id": ("integration_client_id", "client_id"),
        "client_secret": ("integration_client_secret", "client_secret"),
    },
    ClientKind.MARKETPLACE: {
        "client_id": ("client_id",),
        "client_secret": ("client_secret",),
    },
}


def resolve_field(settings: Settings, sources: tuple[str, ...], field: str) -> str:
    for attr in sources:
        value = getattr(settings, attr, None)
        if value:
            return value
    raise ConfigurationError(
        f"No {field} configured: checked {', '.join(sources)}",
        field=field,
    )


def default_credentials(
    settings: Settings,
    kind: ClientKind = ClientKind.INTEGRATION,
) -> tuple[str, str]:
    """Return the process-wide ``(client_id, client_secret)`` for ``kind``."""
    sources = CREDENTIAL_SOURCES[kind]
    return (
        resolve_field(settings, sources["client_id"], "client_id"),
        resolve_field(settings, sources["client_secret"], "client_secret"),
    )
