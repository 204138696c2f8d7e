"""Tenancy error taxonomy.

Every error carries a human-readable ``message`` and optional ``details``.
The HTTP layer maps each class to a status code in ``marketplace.main``.
"""

from __future__ import annotations

from typing import Any


class TenancyError(Exception):
    """Base exception for the tenancy layer."""

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ValidationError(TenancyError):
    """Malformed or conflicting tenant input.

    Attributes:
        field: Name of the offending input field.
        conflict: True when the input collides with existing state
            (duplicate subdomain, partner already associated).
    """

    def __init__(self, field: str, message: str, *, conflict: bool = False) -> None:
        super().__init__(message, details={"field": field})
        self.field = field
        self.conflict = conflict


class NotFoundError(TenancyError):
    """An operation referenced a tenant (or tenant member) that does not exist."""

    def __init__(
        self,
        resource_id: str,
        *,
        resource: str = "Tenant",
        message: str | None = None,
    ) -> None:
        super().__init__(
            message or f"{resource} '{resource_id}' not found",
            details={"resource": resource, "id": resource_id},
        )
        self.resource_id = resource_id


class ConfigurationError(TenancyError):
    """Missing or unusable configuration: backend credentials or the encryption key."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class StoreUnavailableError(TenancyError):
    """The persistent tenant store could not be reached within its deadline."""

    def __init__(self, operation: str, *, message: str | None = None) -> None:
        super().__init__(
            message or f"Tenant store unavailable during '{operation}'",
            details={"operation": operation},
        )
        self.operation = operation


class MarketplaceAPIError(Exception):
    """The backend marketplace API answered with an error status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Marketplace API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
