"""Tenantry configuration -- environment settings and the derived tenancy config."""

from .settings import Settings

__all__ = [
    "Settings",
]
