"""
Static tenancy configuration.

:class:`TenancyConfig` is read once when an adapter is built and held by
the adapter for its lifetime. Nothing in the adapters consults global
settings; build a config (directly, or from
:meth:`tenantry.config.settings.Settings.tenancy_config`) and pass it in.

Example:
    config = TenancyConfig(
        strategy=IsolationStrategy.SCHEMA,
        default_schema="public",
        persistent_schemas=("shared",),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tenantry.multitenancy.errors import ConfigurationError, InvalidIdentifier
from tenantry.multitenancy.identifiers import validate_identifier
from tenantry.multitenancy.excluded import bare_table_name


class IsolationStrategy(str, Enum):
    """How tenants are isolated from each other.

    Attributes:
        DATABASE: One PostgreSQL database per tenant. Switching reconnects.
        SCHEMA: One schema per tenant in a shared database. Switching
                rewrites the session's search_path.
        SCHEMA_CLONE: Like SCHEMA, but new tenant schemas are seeded by
                      replaying the template schema's DDL and migration
                      bookkeeping rows instead of running migrations.
    """

    DATABASE = "database"
    SCHEMA = "schema"
    SCHEMA_CLONE = "schema_clone"


@dataclass(frozen=True)
class TenancyConfig:
    """Configuration consumed by the adapter factory.

    Attributes:
        strategy: The isolation strategy.
        default_schema: Schema used when no tenant is active; also the
            template schema for structural clones.
        persistent_schemas: Schemas always searched after the active tenant.
        excluded_models: Table names pinned to the default schema.
        database_name: The shared (or default) database. Required for the
            DATABASE and SCHEMA_CLONE strategies.
        bookkeeping_table: Migration version table copied into cloned schemas.
        pg_dump_path: ``pg_dump`` executable used for structural clones.
    """

    strategy: IsolationStrategy = IsolationStrategy.SCHEMA
    default_schema: str = "public"
    persistent_schemas: tuple[str, ...] = field(default_factory=tuple)
    excluded_models: tuple[str, ...] = field(default_factory=tuple)
    database_name: str = ""
    bookkeeping_table: str = "alembic_version"
    pg_dump_path: str = "pg_dump"

    def __post_init__(self) -> None:
        try:
            strategy = IsolationStrategy(self.strategy)
        except ValueError as exc:
            choices = ", ".join(s.value for s in IsolationStrategy)
            raise ConfigurationError(
                f"Unknown isolation strategy {self.strategy!r} (expected one of: {choices})"
            ) from exc
        object.__setattr__(self, "strategy", strategy)
        object.__setattr__(self, "persistent_schemas", tuple(self.persistent_schemas))
        object.__setattr__(self, "excluded_models", tuple(self.excluded_models))

        names = [self.default_schema, self.bookkeeping_table, *self.persistent_schemas]
        names.extend(bare_table_name(name) for name in self.excluded_models)
        if self.database_name:
            names.append(self.database_name)
        for name in names:
            try:
                validate_identifier(name)
            except InvalidIdentifier as exc:
                raise ConfigurationError(f"Invalid configured identifier: {exc}") from exc

        if strategy in (IsolationStrategy.DATABASE, IsolationStrategy.SCHEMA_CLONE):
            if not self.database_name:
                raise ConfigurationError(
                    f"database_name is required for the {strategy.value} strategy"
                )

    @property
    def uses_schemas(self) -> bool:
        return self.strategy is not IsolationStrategy.DATABASE

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "default_schema": self.default_schema,
            "persistent_schemas": list(self.persistent_schemas),
            "excluded_models": list(self.excluded_models),
            "database_name": self.database_name,
            "bookkeeping_table": self.bookkeeping_table,
            "pg_dump_path": self.pg_dump_path,
        }
