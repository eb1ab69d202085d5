"""Shared fixtures: an in-memory TenantSession and a canned schema dumper."""

from __future__ import annotations

import re
from typing import Sequence

import pytest

from tenantry.multitenancy import (
    BackingStoreError,
    IsolationStrategy,
    SchemaDumper,
    StoreErrorKind,
    TenancyConfig,
    TenantSession,
)

_QUOTED = r'"((?:[^"]|"")*)"'


def _unquote(name: str) -> str:
    return name.replace('""', '"')


class FakeSession(TenantSession):
    """Records statements and keeps a tiny catalog of schemas and databases.

    ``fail_on`` maps a statement prefix to an exception raised instead of
    running any statement that starts with it.
    """

    def __init__(self, database: str = "app", schemas: Sequence[str] = ("public",)):
        self.database = database
        self.databases: set[str] = {database}
        self.schemas: set[str] = set(schemas)
        self.search_path: str | None = None
        self.statements: list[str] = []
        self.scripts: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.calls = 0

    @property
    def current_database(self) -> str:
        return self.database

    def _check_failure(self, statement: str) -> None:
        for prefix, exc in self.fail_on.items():
            if statement.startswith(prefix):
                raise exc

    async def execute(self, statement: str) -> None:
        self.calls += 1
        self._check_failure(statement)
        self.statements.append(statement)

        if m := re.fullmatch(rf"CREATE SCHEMA {_QUOTED}", statement):
            name = _unquote(m.group(1))
            if name in self.schemas:
                raise BackingStoreError(StoreErrorKind.ALREADY_EXISTS, "duplicate schema", "42P06")
            self.schemas.add(name)
        elif m := re.fullmatch(rf"DROP SCHEMA {_QUOTED} CASCADE", statement):
            name = _unquote(m.group(1))
            if name not in self.schemas:
                raise BackingStoreError(StoreErrorKind.NOT_FOUND, "no such schema", "3F000")
            self.schemas.discard(name)
        elif m := re.fullmatch(rf"CREATE DATABASE {_QUOTED}", statement):
            name = _unquote(m.group(1))
            if name in self.databases:
                raise BackingStoreError(StoreErrorKind.ALREADY_EXISTS, "duplicate database", "42P04")
            self.databases.add(name)
        elif m := re.fullmatch(rf"DROP DATABASE {_QUOTED}", statement):
            name = _unquote(m.group(1))
            if name not in self.databases:
                raise BackingStoreError(StoreErrorKind.NOT_FOUND, "no such database", "3D000")
            if name == self.database:
                raise RuntimeError("cannot drop the currently open database")
            self.databases.discard(name)
        elif statement.startswith("SET search_path TO "):
            self.search_path = statement[len("SET search_path TO "):]

    async def execute_script(self, sql: str) -> None:
        self.calls += 1
        self._check_failure(sql)
        self.scripts.append(sql)

    async def schema_exists(self, name: str) -> bool:
        self.calls += 1
        return name in self.schemas

    async def database_exists(self, name: str) -> bool:
        self.calls += 1
        return name in self.databases

    async def use_database(self, name: str) -> None:
        self.calls += 1
        if name not in self.databases:
            raise BackingStoreError(StoreErrorKind.NOT_FOUND, "no such database", "3D000")
        self.database = name


class FakeDumper(SchemaDumper):
    """Returns canned pg_dump output and records what was requested."""

    schema_sql = (
        "SET statement_timeout = 0;\n"
        "SELECT pg_catalog.set_config('search_path', '', false);\n"
        "\\restrict abc123\n"
        "CREATE TABLE users (id integer);\n"
        "SET search_path = public, pg_catalog;\n"
        "CREATE INDEX users_id ON users (id);"
    )
    data_sql = (
        "SELECT pg_catalog.set_config('search_path', '', false);\n"
        "INSERT INTO alembic_version VALUES ('abc123');"
    )

    def __init__(self):
        self.schema_requests: list[tuple[str, str, tuple[str, ...]]] = []
        self.data_requests: list[tuple[str, str, str]] = []
        self.error: Exception | None = None

    async def dump_schema(self, schema, database, exclude_tables=()):
        self.schema_requests.append((schema, database, tuple(exclude_tables)))
        if self.error is not None:
            raise self.error
        return self.schema_sql

    async def dump_table_data(self, schema, table, database):
        self.data_requests.append((schema, table, database))
        return self.data_sql


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def dumper() -> FakeDumper:
    return FakeDumper()


@pytest.fixture
def schema_config() -> TenancyConfig:
    return TenancyConfig(
        strategy=IsolationStrategy.SCHEMA,
        default_schema="public",
        persistent_schemas=("shared",),
    )


@pytest.fixture
def clone_config() -> TenancyConfig:
    return TenancyConfig(
        strategy=IsolationStrategy.SCHEMA_CLONE,
        default_schema="public",
        database_name="app",
    )


@pytest.fixture
def database_config() -> TenancyConfig:
    return TenancyConfig(strategy=IsolationStrategy.DATABASE, database_name="app")
