"""
Backing database session for tenant adapters.

Adapters only need a narrow view of the database: run a raw statement,
run a multi-statement script, probe the catalog for schemas and databases,
and reconnect to another database. :class:`TenantSession` is that view;
:class:`SQLAlchemySession` implements it on top of SQLAlchemy's asyncio
extension.

Catalog conditions are reported as :class:`BackingStoreError` classified
by SQLSTATE code. Any other database error propagates unchanged.

Example:
    engine = create_async_engine("postgresql+asyncpg://app@localhost/app")
    session = SQLAlchemySession(engine)
    await session.connect()
    await session.execute('CREATE SCHEMA "acme"')
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Iterator
import inspect
import logging

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


class StoreErrorKind(str, Enum):
    """Catalog conditions adapters know how to translate."""

    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"


# SQLSTATE codes, see PostgreSQL Appendix A
SQLSTATE_KINDS: dict[str, StoreErrorKind] = {
    "42P04": StoreErrorKind.ALREADY_EXISTS,  # duplicate_database
    "42P06": StoreErrorKind.ALREADY_EXISTS,  # duplicate_schema
    "23505": StoreErrorKind.ALREADY_EXISTS,  # unique_violation, concurrent CREATE SCHEMA
    "3D000": StoreErrorKind.NOT_FOUND,  # invalid_catalog_name
    "3F000": StoreErrorKind.NOT_FOUND,  # invalid_schema_name
}


class BackingStoreError(Exception):
    """A classified catalog error raised by a :class:`TenantSession`.

    Attributes:
        kind: What the database reported.
        sqlstate: The SQLSTATE code, when the driver exposed one.
    """

    def __init__(self, kind: StoreErrorKind, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.sqlstate = sqlstate


def extract_sqlstate(exc: BaseException) -> str | None:
    """Find the SQLSTATE code on a driver or SQLAlchemy exception.

    asyncpg and psycopg 3 expose ``sqlstate``; psycopg2 exposes ``pgcode``.
    SQLAlchemy wraps the driver error in ``orig``.
    """
    candidates = [exc]
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        candidates.insert(0, exc.orig)
    for candidate in candidates:
        for attr in ("sqlstate", "pgcode"):
            code = getattr(candidate, attr, None)
            if isinstance(code, str) and code:
                return code
    return None


def classify(exc: BaseException) -> StoreErrorKind | None:
    """Map an exception to a :class:`StoreErrorKind`, or None if unclassified."""
    code = extract_sqlstate(exc)
    if code is None:
        return None
    return SQLSTATE_KINDS.get(code)


@contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise classifiable database errors as :class:`BackingStoreError`."""
    try:
        yield
    except BackingStoreError:
        raise
    except Exception as exc:
        kind = classify(exc)
        if kind is None:
            raise
        raise BackingStoreError(kind, str(exc), extract_sqlstate(exc)) from exc


class TenantSession(ABC):
    """The database operations a tenant adapter relies on."""

    @property
    @abstractmethod
    def current_database(self) -> str:
        """Name of the database the session is connected to."""

    @abstractmethod
    async def execute(self, statement: str) -> None:
        """Run one raw statement."""

    @abstractmethod
    async def execute_script(self, sql: str) -> None:
        """Run a script containing any number of statements."""

    @abstractmethod
    async def schema_exists(self, name: str) -> bool:
        """Check the catalog for a schema."""

    @abstractmethod
    async def database_exists(self, name: str) -> bool:
        """Check the catalog for a database."""

    @abstractmethod
    async def use_database(self, name: str) -> None:
        """Reconnect the session to another database."""

    async def close(self) -> None:
        """Release the underlying connection."""


class SQLAlchemySession(TenantSession):
    """A :class:`TenantSession` on one SQLAlchemy ``AsyncConnection``.

    The connection runs in AUTOCOMMIT mode: ``CREATE DATABASE`` cannot run
    inside a transaction block, and a ``SET search_path`` must outlive any
    single transaction to stay in effect for the session.

    Attributes:
        _engine: Engine for the default database.
        _engines: Engines by database name. Tenant engines are unpooled and
            disposed once the session moves off their database.
        _conn: The live connection, once :meth:`connect` has run.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._engines: dict[str, AsyncEngine] = {engine.url.database or "": engine}
        self._database = engine.url.database or ""
        self._conn: AsyncConnection | None = None

    @property
    def current_database(self) -> str:
        return self._database

    @property
    def url(self) -> URL:
        """URL of the default database."""
        return self._engine.url

    @property
    def connection(self) -> AsyncConnection:
        """The live connection.

        Raises:
            RuntimeError: If :meth:`connect` has not been awaited.
        """
        if self._conn is None:
            raise RuntimeError("Session is not connected; await connect() first")
        return self._conn

    async def connect(self) -> "SQLAlchemySession":
        if self._conn is None:
            self._conn = await self._open(self._engines[self._database])
        return self

    async def _open(self, engine: AsyncEngine) -> AsyncConnection:
        with translate_errors():
            conn = await engine.connect()
        return await conn.execution_options(isolation_level="AUTOCOMMIT")

    async def execute(self, statement: str) -> None:
        logger.debug(f"Executing: {statement}")
        with translate_errors():
            await self.connection.exec_driver_sql(statement)

    async def execute_script(self, sql: str) -> None:
        with translate_errors():
            raw = await self.connection.get_raw_connection()
            driver = raw.driver_connection
            # asyncpg only runs multiple statements over the simple query protocol
            if driver is not None and inspect.iscoroutinefunction(getattr(driver, "execute", None)):
                await driver.execute(sql)
            else:
                await self.connection.exec_driver_sql(sql)

    async def schema_exists(self, name: str) -> bool:
        with translate_errors():
            result = await self.connection.execute(
                text(
                    "SELECT EXISTS(SELECT 1 FROM information_schema.schemata "
                    "WHERE schema_name = :name)"
                ),
                {"name": name},
            )
        return bool(result.scalar())

    async def database_exists(self, name: str) -> bool:
        with translate_errors():
            result = await self.connection.execute(
                text("SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = :name)"),
                {"name": name},
            )
        return bool(result.scalar())

    async def use_database(self, name: str) -> None:
        if name == self._database and self._conn is not None:
            return
        engine = self._engines.get(name)
        if engine is None:
            # unpooled: a closed tenant connection must not linger, or the
            # tenant database cannot be dropped afterwards
            engine = create_async_engine(
                self._engine.url.set(database=name),
                poolclass=NullPool,
            )
            self._engines[name] = engine
        # Open the new connection before closing the old one so a failed
        # reconnect leaves the session where it was.
        try:
            conn = await self._open(engine)
        except Exception:
            await self._discard_engine(name)
            raise
        previous, old_conn = self._database, self._conn
        self._conn = conn
        self._database = name
        if old_conn is not None:
            await old_conn.close()
        await self._discard_engine(previous)
        logger.debug(f"Session connected to database {name!r}")

    async def _discard_engine(self, name: str) -> None:
        """Dispose the engine for a tenant database the session has left."""
        if name == self._database:
            return
        engine = self._engines.get(name)
        if engine is None or engine is self._engine:
            return
        del self._engines[name]
        await engine.dispose()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
        for name, engine in list(self._engines.items()):
            if engine is not self._engine:
                await engine.dispose()
                del self._engines[name]
        self._database = self._engine.url.database or ""
