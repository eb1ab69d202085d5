"""
Tenant adapters: one contract, three isolation strategies.

A :class:`TenantAdapter` owns the :class:`ConnectionContext` of exactly one
database session and implements the tenant lifecycle for one isolation
strategy:

    - DatabaseAdapter: a database per tenant; switching reconnects.
    - SchemaAdapter: a schema per tenant; switching rewrites search_path.
    - SchemaCloneAdapter: SchemaAdapter plus structural clone provisioning.

Adapters are not safe for concurrent use. Give each session (and so each
concurrent request) its own adapter; within a session, one logical
operation owns the context at a time.

Example:
    adapter = await create_adapter(config, session)
    await adapter.create("acme")
    async with adapter.scoped("acme"):
        ...  # queries resolve against acme
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Awaitable, Callable, Iterable, Iterator, TypeVar
import logging

from tenantry.multitenancy.cloner import PgDump, SchemaCloner, SchemaDumper
from tenantry.multitenancy.config import TenancyConfig
from tenantry.multitenancy.context import ConnectionContext, TenantScope
from tenantry.multitenancy.errors import (
    ConfigurationError,
    TenantExists,
    TenantNotFound,
)
from tenantry.multitenancy.excluded import ExcludedModels, bare_table_name
from tenantry.multitenancy.identifiers import quote_identifier, validate_identifier
from tenantry.multitenancy.session import BackingStoreError, StoreErrorKind, TenantSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProvisionOutcome(str, Enum):
    """Result of :meth:`TenantAdapter.provision`."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@contextmanager
def translate_store_errors(
    tenant: str,
    not_found: str | None = None,
    exists: str | None = None,
) -> Iterator[None]:
    """Reclassify catalog errors from the session into tenant errors.

    Only the kinds given a message are translated; everything else
    propagates unchanged.
    """
    try:
        yield
    except BackingStoreError as exc:
        if exc.kind is StoreErrorKind.NOT_FOUND and not_found is not None:
            raise TenantNotFound(not_found, tenant=tenant) from exc
        if exc.kind is StoreErrorKind.ALREADY_EXISTS and exists is not None:
            raise TenantExists(exists, tenant=tenant) from exc
        raise


class TenantAdapter(ABC):
    """Lifecycle and context management for one session.

    Subclasses implement the storage-specific ``_create``, ``_drop``,
    ``_switch``, ``_reset`` and ``exists``. The public methods validate
    identifiers first, so no malformed name ever reaches the session.

    Attributes:
        session: The database session whose context this adapter owns.
        config: Static configuration, read once at construction.
    """

    def __init__(self, session: TenantSession, config: TenancyConfig):
        self.session = session
        self.config = config
        self._context = ConnectionContext(
            default_scope=self.default_scope,
            persistent_scopes=self.persistent_scopes,
        )

    @property
    @abstractmethod
    def default_scope(self) -> str:
        """Where the session resolves when no tenant is active."""

    @property
    def persistent_scopes(self) -> tuple[str, ...]:
        return ()

    @property
    def context(self) -> ConnectionContext:
        """The context last pushed to the session."""
        return self._context

    def current_tenant(self) -> str:
        """The active tenant, or the default scope when none is active."""
        return self._context.head

    async def create(self, tenant: str) -> None:
        """Provision storage for ``tenant``. Leaves the active context unchanged.

        Raises:
            InvalidIdentifier: If ``tenant`` is malformed.
            TenantExists: If storage for ``tenant`` already exists.
        """
        validate_identifier(tenant)
        await self._create(tenant)
        logger.info(f"Created tenant {tenant!r} ({self.config.strategy.value})")

    async def drop(self, tenant: str) -> None:
        """Remove ``tenant``'s storage. The tenant may be the active one.

        Raises:
            InvalidIdentifier: If ``tenant`` is malformed.
            TenantNotFound: If ``tenant`` has no storage.
        """
        validate_identifier(tenant)
        await self._drop(tenant)
        logger.info(f"Dropped tenant {tenant!r}")

    async def switch(self, tenant: str | None) -> None:
        """Make ``tenant`` the active resolution target; None resets.

        Either the session fully points at ``tenant`` afterwards, or the
        previous context is left exactly as it was.

        Raises:
            InvalidIdentifier: If ``tenant`` is malformed.
            TenantNotFound: If ``tenant`` has no storage.
        """
        if tenant is None:
            await self.reset()
            return
        validate_identifier(tenant)
        await self._switch(tenant)
        logger.debug(f"Switched to tenant {tenant!r}")

    async def reset(self) -> None:
        """Restore the default context.

        Raises:
            ConfigurationError: If the default context cannot be applied.
        """
        try:
            await self._reset()
        except Exception as exc:
            raise ConfigurationError(
                f"Could not reset to default scope {self.default_scope!r}: {exc}"
            ) from exc
        logger.debug(f"Reset to default scope {self.default_scope!r}")

    def scoped(self, tenant: str | None) -> TenantScope:
        """Context manager running a block with ``tenant`` active.

        Example:
            async with adapter.scoped("acme"):
                ...
        """
        return TenantScope(self, tenant)

    async def provision(self, tenant: str) -> ProvisionOutcome:
        """Create ``tenant`` unless it already exists."""
        try:
            await self.create(tenant)
        except TenantExists:
            logger.info(f"Tenant {tenant!r} already exists, nothing to provision")
            return ProvisionOutcome.ALREADY_EXISTS
        await self._after_create(tenant)
        return ProvisionOutcome.CREATED

    async def each(
        self,
        tenants: Iterable[str],
        operation: Callable[[str], Awaitable[T]],
    ) -> list[T]:
        """Await ``operation(tenant)`` under each tenant in turn."""
        results = []
        for tenant in tenants:
            async with self.scoped(tenant):
                results.append(await operation(tenant))
        return results

    @abstractmethod
    async def exists(self, tenant: str) -> bool:
        """Whether storage for ``tenant`` exists."""

    async def _after_create(self, tenant: str) -> None:
        """Hook run by :meth:`provision` after storage was created."""

    @abstractmethod
    async def _create(self, tenant: str) -> None: ...

    @abstractmethod
    async def _drop(self, tenant: str) -> None: ...

    @abstractmethod
    async def _switch(self, tenant: str) -> None: ...

    @abstractmethod
    async def _reset(self) -> None: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} current={self.current_tenant()!r}>"


class DatabaseAdapter(TenantAdapter):
    """One database per tenant.

    Switching reconnects the session to the tenant's database; there is no
    search path involved.
    """

    @property
    def default_scope(self) -> str:
        return self.config.database_name

    async def exists(self, tenant: str) -> bool:
        validate_identifier(tenant)
        return await self.session.database_exists(tenant)

    async def _create(self, tenant: str) -> None:
        with translate_store_errors(tenant, exists=f"The database {tenant!r} already exists."):
            await self.session.execute(f"CREATE DATABASE {quote_identifier(tenant)}")

    async def _drop(self, tenant: str) -> None:
        missing = f"The tenant {tenant!r} cannot be found."
        if not await self.session.database_exists(tenant):
            raise TenantNotFound(missing, tenant=tenant)
        if self._context.current_tenant == tenant:
            # PostgreSQL refuses to drop the database a session is connected to
            logger.warning(f"Dropping active tenant {tenant!r}; resetting first")
            await self.reset()
        with translate_store_errors(tenant, not_found=missing):
            await self.session.execute(f"DROP DATABASE {quote_identifier(tenant)}")

    async def _switch(self, tenant: str) -> None:
        missing = f"The tenant {tenant!r} cannot be found."
        if not await self.session.database_exists(tenant):
            raise TenantNotFound(missing, tenant=tenant)
        with translate_store_errors(tenant, not_found=missing):
            await self.session.use_database(tenant)
        self._context = self._context.with_tenant(tenant)

    async def _reset(self) -> None:
        await self.session.use_database(self.default_scope)
        self._context = self._context.reset()


class SchemaAdapter(TenantAdapter):
    """One schema per tenant in a shared database.

    Attributes:
        excluded: Tables pinned to the default schema on construction and
            on every reset.
    """

    def __init__(
        self,
        session: TenantSession,
        config: TenancyConfig,
        excluded: ExcludedModels | None = None,
    ):
        super().__init__(session, config)
        self.excluded = excluded if excluded is not None else ExcludedModels()
        self.excluded.pin(self.default_scope)

    @property
    def default_scope(self) -> str:
        return self.config.default_schema

    @property
    def persistent_scopes(self) -> tuple[str, ...]:
        return self.config.persistent_schemas

    async def exists(self, tenant: str) -> bool:
        validate_identifier(tenant)
        return await self.session.schema_exists(tenant)

    async def _create(self, tenant: str) -> None:
        with translate_store_errors(tenant, exists=f"The schema {tenant!r} already exists."):
            await self.session.execute(f"CREATE SCHEMA {quote_identifier(tenant)}")

    async def _drop(self, tenant: str) -> None:
        if self._context.current_tenant == tenant:
            logger.warning(f"Dropping active tenant {tenant!r}; context is invalid until reset")
        with translate_store_errors(tenant, not_found=f"The schema {tenant!r} cannot be found."):
            await self.session.execute(f"DROP SCHEMA {quote_identifier(tenant)} CASCADE")

    async def _switch(self, tenant: str) -> None:
        candidate = self._context.with_tenant(tenant)
        missing = f"One of the following schema(s) is invalid: {tenant!r}, {candidate.search_path}"
        # search_path accepts missing schemas silently, so check the catalog first
        if not await self.session.schema_exists(tenant):
            raise TenantNotFound(missing, tenant=tenant)
        with translate_store_errors(tenant, not_found=missing):
            await self.session.execute(f"SET search_path TO {candidate.search_path}")
        self._context = candidate

    async def _reset(self) -> None:
        candidate = self._context.reset()
        await self.session.execute(f"SET search_path TO {candidate.search_path}")
        self._context = candidate
        self.excluded.pin(self.default_scope)


class SchemaCloneAdapter(SchemaAdapter):
    """Schema per tenant, seeded by cloning the template schema.

    :meth:`create` still produces an empty schema; :meth:`import_schema`
    completes provisioning. :meth:`provision` runs both.
    """

    def __init__(
        self,
        session: TenantSession,
        config: TenancyConfig,
        excluded: ExcludedModels | None = None,
        dumper: SchemaDumper | None = None,
    ):
        super().__init__(session, config, excluded)
        self.dumper = dumper if dumper is not None else PgDump(config.pg_dump_path)
        exclude_tables = list(self.excluded.table_names)
        for name in config.excluded_models:
            if bare_table_name(name) not in exclude_tables:
                exclude_tables.append(bare_table_name(name))
        self.cloner = SchemaCloner(session, self.dumper, config, exclude_tables=exclude_tables)

    async def import_schema(self, tenant: str) -> None:
        """Clone the template schema's structure and bookkeeping rows into ``tenant``.

        Must run at most once per created schema.

        Raises:
            InvalidIdentifier: If ``tenant`` is malformed.
            TenantNotFound: If the tenant schema has not been created.
            ImportFailed: If a dump or execute step fails.
        """
        validate_identifier(tenant)
        if not await self.session.schema_exists(tenant):
            raise TenantNotFound(f"The schema {tenant!r} cannot be found.", tenant=tenant)
        try:
            await self.cloner.import_schema(tenant)
        except BaseException:
            try:
                await self._restore_search_path()
            except Exception as exc:
                # the import error is the one the caller needs to see
                logger.error(f"Could not restore search_path after failed import of {tenant!r}: {exc}")
            raise
        await self._restore_search_path()

    async def _restore_search_path(self) -> None:
        # the replayed dump sets its own search_path on the session
        await self.session.execute(f"SET search_path TO {self._context.search_path}")

    async def _after_create(self, tenant: str) -> None:
        await self.import_schema(tenant)
