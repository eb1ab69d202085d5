"""Tenantry -- database- and schema-per-tenant isolation for PostgreSQL."""

__version__ = "0.1.0"
