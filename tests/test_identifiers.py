"""Tests for tenantry.multitenancy.identifiers and the error taxonomy."""

from __future__ import annotations

import pytest

from tenantry.multitenancy import (
    ErrorKind,
    ImportFailed,
    InvalidIdentifier,
    TenantExists,
    TenantNotFound,
    TenantryError,
    quote_identifier,
    render_search_path,
    validate_identifier,
)
from tenantry.multitenancy.identifiers import MAX_IDENTIFIER_LENGTH


class TestValidateIdentifier:
    """Tests for validate_identifier."""

    @pytest.mark.parametrize("name", ["acme", "Acme_2", "_private", "tenant-42", "a"])
    def test_accepts_valid_names(self, name):
        assert validate_identifier(name) == name

    def test_accepts_max_length(self):
        name = "t" * MAX_IDENTIFIER_LENGTH
        assert validate_identifier(name) == name

    def test_rejects_empty(self):
        with pytest.raises(InvalidIdentifier, match="cannot be empty"):
            validate_identifier("")

    def test_rejects_too_long(self):
        with pytest.raises(InvalidIdentifier, match="exceeds 63 characters"):
            validate_identifier("t" * (MAX_IDENTIFIER_LENGTH + 1))

    @pytest.mark.parametrize(
        "name",
        [
            'acme"; DROP SCHEMA public; --',
            "acme;",
            "ac me",
            "acme\n",
            "acme\t",
            "public.acme",
            "1acme",
            "-acme",
            "acme'",
        ],
    )
    def test_rejects_unsafe_characters(self, name):
        with pytest.raises(InvalidIdentifier, match="invalid characters") as exc_info:
            validate_identifier(name)
        assert exc_info.value.tenant == name
        assert exc_info.value.kind is ErrorKind.INVALID_IDENTIFIER


class TestQuoting:
    """Tests for identifier quoting and search path rendering."""

    def test_quote_plain(self):
        assert quote_identifier("acme") == '"acme"'

    def test_quote_doubles_embedded_quotes(self):
        assert quote_identifier('we"ird') == '"we""ird"'

    def test_render_search_path(self):
        assert render_search_path(["acme", "shared"]) == '"acme", "shared"'

    def test_render_single_entry(self):
        assert render_search_path(["public"]) == '"public"'


class TestErrorKinds:
    """Tests for the error classification."""

    def test_each_error_carries_its_kind(self):
        assert TenantNotFound("x").kind is ErrorKind.TENANT_NOT_FOUND
        assert TenantExists("x").kind is ErrorKind.TENANT_EXISTS
        assert ImportFailed("x").kind is ErrorKind.IMPORT_FAILED

    def test_errors_share_a_base(self):
        assert issubclass(TenantNotFound, TenantryError)
        assert issubclass(InvalidIdentifier, TenantryError)

    def test_recoverable_kinds(self):
        assert ErrorKind.TENANT_NOT_FOUND.recoverable
        assert ErrorKind.TENANT_EXISTS.recoverable
        assert not ErrorKind.IMPORT_FAILED.recoverable
        assert not ErrorKind.CONFIGURATION_ERROR.recoverable

    def test_tenant_attribute(self):
        exc = TenantNotFound("gone", tenant="acme")
        assert exc.tenant == "acme"
        assert str(exc) == "gone"
