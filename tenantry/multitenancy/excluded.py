"""
Excluded models: tables that always live in the default schema.

Shared tables (the tenant registry itself, reference data) must resolve
against the default schema no matter which tenant is active. Their
SQLAlchemy ``Table`` objects are pinned to the default schema explicitly,
because a name resolved before any tenant was selected would otherwise
never be re-resolved.
"""

from __future__ import annotations

from typing import Iterable, Iterator
import logging

from sqlalchemy import MetaData, Table

from tenantry.multitenancy.errors import ConfigurationError

logger = logging.getLogger(__name__)


def bare_table_name(name: str) -> str:
    """Strip any schema qualifier: ``"public.tenants"`` -> ``"tenants"``."""
    return name.split(".", 1)[-1]


class ExcludedModels:
    """Ordered registry of tables pinned to the default schema.

    Example:
        excluded = ExcludedModels.from_metadata(Base.metadata, ["tenants"])
        excluded.pin("public")
        excluded.qualified_names  # ["public.tenants"]
    """

    def __init__(self, tables: Iterable[Table] = ()):
        self._tables: list[Table] = []
        for table in tables:
            self.add(table)

    @classmethod
    def from_metadata(cls, metadata: MetaData, names: Iterable[str]) -> "ExcludedModels":
        """Look up tables by (optionally qualified) name in ``metadata``.

        Raises:
            ConfigurationError: If a name matches no table.
        """
        by_name = {table.name: table for table in metadata.tables.values()}
        tables = []
        for name in names:
            table = by_name.get(bare_table_name(name))
            if table is None:
                raise ConfigurationError(f"Excluded model {name!r} is not a known table")
            tables.append(table)
        return cls(tables)

    def add(self, table: Table) -> None:
        if table not in self._tables:
            self._tables.append(table)

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self._tables]

    @property
    def qualified_names(self) -> list[str]:
        return [f"{table.schema}.{table.name}" if table.schema else table.name for table in self._tables]

    def pin(self, default_schema: str) -> list[str]:
        """Point every registered table at ``default_schema``.

        Returns:
            The qualified names after pinning.
        """
        for table in self._tables:
            table.schema = default_schema
        if self._tables:
            logger.debug(f"Pinned {len(self._tables)} excluded table(s) to {default_schema!r}")
        return self.qualified_names

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables)

    def __len__(self) -> int:
        return len(self._tables)
