"""Tenant identifier validation and PostgreSQL identifier quoting."""

from __future__ import annotations

import re
from typing import Iterable

from tenantry.multitenancy.errors import InvalidIdentifier

# PostgreSQL truncates identifiers at NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


def validate_identifier(identifier: str) -> str:
    """Validate a tenant or schema identifier.

    Must be called before the identifier is interpolated into any
    statement. Rejects quotes, statement terminators, whitespace, dots
    and anything else outside ``[A-Za-z0-9_-]``.

    Args:
        identifier: The identifier to check.

    Returns:
        The identifier, unchanged.

    Raises:
        InvalidIdentifier: If the identifier is empty, too long, or
            contains disallowed characters.
    """
    if not isinstance(identifier, str) or not identifier:
        raise InvalidIdentifier("Tenant identifier cannot be empty", tenant=None)
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise InvalidIdentifier(
            f"Tenant identifier {identifier!r} exceeds {MAX_IDENTIFIER_LENGTH} characters",
            tenant=identifier,
        )
    if not _IDENTIFIER_RE.fullmatch(identifier):
        raise InvalidIdentifier(
            f"Tenant identifier {identifier!r} contains invalid characters",
            tenant=identifier,
        )
    return identifier


def quote_identifier(identifier: str) -> str:
    """Render an identifier as a delimited PostgreSQL identifier."""
    return '"' + identifier.replace('"', '""') + '"'


def render_search_path(entries: Iterable[str]) -> str:
    """Join quoted entries into a ``search_path`` value.

    Example:
        >>> render_search_path(["acme", "shared"])
        '"acme", "shared"'
    """
    return ", ".join(quote_identifier(entry) for entry in entries)
