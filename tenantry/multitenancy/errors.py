"""
Error taxonomy for tenant lifecycle operations.

Every error raised by an adapter carries an :class:`ErrorKind` tag so
callers can branch on ``exc.kind`` instead of matching on class names or
message text. ``TenantNotFound`` and ``TenantExists`` are expected
control-flow outcomes; ``ImportFailed`` and ``ConfigurationError`` need
operator attention and are never retried here.

Example:
    try:
        await adapter.create("acme")
    except TenantryError as exc:
        if exc.kind is ErrorKind.TENANT_EXISTS:
            ...
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of tenant lifecycle failures."""

    TENANT_NOT_FOUND = "tenant_not_found"
    TENANT_EXISTS = "tenant_exists"
    INVALID_IDENTIFIER = "invalid_identifier"
    IMPORT_FAILED = "import_failed"
    CONFIGURATION_ERROR = "configuration_error"

    @property
    def recoverable(self) -> bool:
        """Whether callers are expected to handle this kind themselves."""
        return self in (ErrorKind.TENANT_NOT_FOUND, ErrorKind.TENANT_EXISTS)


class TenantryError(Exception):
    """Base error for tenant lifecycle operations.

    Attributes:
        kind: The error classification.
        tenant: The tenant identifier involved, when there is one.
    """

    kind: ErrorKind = ErrorKind.CONFIGURATION_ERROR

    def __init__(self, message: str, tenant: str | None = None):
        super().__init__(message)
        self.tenant = tenant


class TenantNotFound(TenantryError):
    """The tenant's database or schema does not exist."""

    kind = ErrorKind.TENANT_NOT_FOUND


class TenantExists(TenantryError):
    """Storage for the tenant already exists."""

    kind = ErrorKind.TENANT_EXISTS


class InvalidIdentifier(TenantryError):
    """The tenant identifier failed validation before reaching the database."""

    kind = ErrorKind.INVALID_IDENTIFIER


class ImportFailed(TenantryError):
    """A structural clone aborted; the tenant schema may be partially populated."""

    kind = ErrorKind.IMPORT_FAILED


class ConfigurationError(TenantryError):
    """The default context could not be established. Unrecoverable for the session."""

    kind = ErrorKind.CONFIGURATION_ERROR
