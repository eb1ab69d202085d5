"""
Structural schema cloning.

New tenant schemas can be provisioned by replaying the template (default)
schema's DDL instead of running every migration from scratch. The dump is
produced by ``pg_dump`` and patched as text: search-path directives are
filtered out and a single directive pointing at the new tenant is
prepended, so every ``CREATE TABLE`` / ``CREATE INDEX`` in the dump lands
in the tenant's schema. The migration bookkeeping rows are copied the same
way so the tenant reports itself as already migrated.

The text patch depends on pg_dump's output format. Recent pg_dump releases
schema-qualify every object they emit (``CREATE TABLE public.users``),
which a search-path directive cannot redirect; the template dump must be
produced in a form that leaves names unqualified for the clone to land in
the tenant schema.

Example:
    cloner = SchemaCloner(session, PgDump.from_url(engine.url), config)
    await cloner.import_schema("acme")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence
import asyncio
import logging
import os

from sqlalchemy.engine import URL, make_url

from tenantry.multitenancy.config import TenancyConfig
from tenantry.multitenancy.errors import ImportFailed
from tenantry.multitenancy.identifiers import quote_identifier, render_search_path
from tenantry.multitenancy.session import TenantSession

logger = logging.getLogger(__name__)

# Line prefixes removed from a dump before it is replayed
FILTERED_PREFIXES = (
    "SET search_path",
    "SELECT pg_catalog.set_config('search_path'",
    "\\",  # psql meta-commands such as \restrict
)


def patch_search_path(sql: str, tenant: str, default_schema: str) -> str:
    """Redirect a schema dump into ``tenant``'s schema.

    Removes every line that sets the search path (or is a psql
    meta-command) and prepends ``SET search_path = "tenant", "default";``.

    Example:
        >>> patch_search_path("SET search_path = public;\\nCREATE TABLE t ();", "acme", "public")
        'SET search_path = "acme", "public";\\nCREATE TABLE t ();'
    """
    directive = f"SET search_path = {render_search_path([tenant, default_schema])};"
    kept = [line for line in sql.split("\n") if not line.startswith(FILTERED_PREFIXES)]
    return "\n".join([directive, *kept])


class DumpError(Exception):
    """The dump executable failed or could not be started."""


class SchemaDumper(ABC):
    """Produces template DDL and data as SQL text."""

    @abstractmethod
    async def dump_schema(
        self,
        schema: str,
        database: str,
        exclude_tables: Sequence[str] = (),
    ) -> str:
        """Dump the structure (no data, no privileges, no owners) of ``schema``."""

    @abstractmethod
    async def dump_table_data(self, schema: str, table: str, database: str) -> str:
        """Dump the rows of ``schema.table`` as INSERT statements."""


class PgDump(SchemaDumper):
    """Runs the ``pg_dump`` executable.

    Arguments are passed as a list (no shell). Connection details come from
    a SQLAlchemy URL; the password travels in ``PGPASSWORD`` so it never
    appears on the command line.
    """

    def __init__(
        self,
        executable: str = "pg_dump",
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
    ):
        self.executable = executable
        self.host = host
        self.port = port
        self.username = username
        self.password = password

    @classmethod
    def from_url(cls, url: URL | str, executable: str = "pg_dump") -> "PgDump":
        url = make_url(url) if isinstance(url, str) else url
        return cls(
            executable=executable,
            host=url.host,
            port=url.port,
            username=url.username,
            password=url.password,
        )

    def connection_args(self) -> list[str]:
        args: list[str] = []
        if self.host:
            args += ["-h", self.host]
        if self.port:
            args += ["-p", str(self.port)]
        if self.username:
            args += ["-U", self.username]
        return args

    def schema_args(
        self,
        schema: str,
        database: str,
        exclude_tables: Sequence[str] = (),
    ) -> list[str]:
        args = [self.executable, *self.connection_args(), "-s", "-x", "-O", "-n", quote_identifier(schema)]
        for table in exclude_tables:
            args += ["-T", f"{quote_identifier(schema)}.{quote_identifier(table)}"]
        args.append(database)
        return args

    def data_args(self, schema: str, table: str, database: str) -> list[str]:
        return [
            self.executable,
            *self.connection_args(),
            "-a",
            "--inserts",
            "-t",
            f"{quote_identifier(schema)}.{quote_identifier(table)}",
            "-n",
            quote_identifier(schema),
            database,
        ]

    async def dump_schema(
        self,
        schema: str,
        database: str,
        exclude_tables: Sequence[str] = (),
    ) -> str:
        return await self._run(self.schema_args(schema, database, exclude_tables))

    async def dump_table_data(self, schema: str, table: str, database: str) -> str:
        return await self._run(self.data_args(schema, table, database))

    async def _run(self, args: list[str]) -> str:
        env = dict(os.environ)
        if self.password:
            env["PGPASSWORD"] = self.password
        logger.debug(f"Running {' '.join(args)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as exc:
            raise DumpError(f"Could not run {self.executable}: {exc}") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise DumpError(
                f"{self.executable} exited with status {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )
        return stdout.decode("utf-8")


class SchemaCloner:
    """Seeds a tenant schema from the template schema.

    Not idempotent: the replayed DDL fails against a schema that already
    has the tables, so a failed or completed import must be followed by a
    drop before it is attempted again. Steps are not wrapped in one
    transaction; a failure leaves the schema partially populated.

    Attributes:
        session: Session the patched SQL is executed on.
        dumper: Source of template DDL and bookkeeping rows.
        config: Supplies template schema, database and bookkeeping table.
        exclude_tables: Template tables left out of the structural dump.
    """

    def __init__(
        self,
        session: TenantSession,
        dumper: SchemaDumper,
        config: TenancyConfig,
        exclude_tables: Sequence[str] = (),
    ):
        self.session = session
        self.dumper = dumper
        self.config = config
        self.exclude_tables = list(exclude_tables)

    async def import_schema(self, tenant: str) -> None:
        """Replay template DDL and bookkeeping rows into ``tenant``'s schema.

        Raises:
            ImportFailed: If any dump or execute step fails.
        """
        default = self.config.default_schema
        database = self.config.database_name

        async with self._step(tenant, "dump template schema"):
            ddl = await self.dumper.dump_schema(default, database, self.exclude_tables)
        async with self._step(tenant, "replay template schema"):
            await self.session.execute_script(patch_search_path(ddl, tenant, default))

        table = self.config.bookkeeping_table
        async with self._step(tenant, f"dump {table} rows"):
            rows = await self.dumper.dump_table_data(default, table, database)
        async with self._step(tenant, f"seed {table} rows"):
            await self.session.execute_script(patch_search_path(rows, tenant, default))

        logger.info(f"Cloned schema {default!r} into tenant {tenant!r}")

    @asynccontextmanager
    async def _step(self, tenant: str, description: str) -> AsyncIterator[None]:
        logger.debug(f"Import {tenant!r}: {description}")
        try:
            yield
        except Exception as exc:
            logger.error(f"Import {tenant!r} failed during {description}: {exc}")
            raise ImportFailed(
                f"Schema import for {tenant!r} failed during {description}; "
                "the schema may be partially populated, drop it before retrying",
                tenant=tenant,
            ) from exc
