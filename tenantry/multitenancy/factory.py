"""
Adapter selection from configuration.

The isolation strategy picks exactly one adapter class from a closed
mapping, once, when the adapter is built.

Example:
    async with open_adapter(engine, config) as adapter:
        await adapter.provision("acme")
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from tenantry.multitenancy.adapters import (
    DatabaseAdapter,
    SchemaAdapter,
    SchemaCloneAdapter,
    TenantAdapter,
)
from tenantry.multitenancy.cloner import PgDump, SchemaDumper
from tenantry.multitenancy.config import IsolationStrategy, TenancyConfig
from tenantry.multitenancy.excluded import ExcludedModels
from tenantry.multitenancy.session import SQLAlchemySession, TenantSession

logger = logging.getLogger(__name__)


def default_dumper(session: TenantSession, config: TenancyConfig) -> SchemaDumper:
    """A ``pg_dump`` runner that reaches the same server as ``session``."""
    if isinstance(session, SQLAlchemySession):
        return PgDump.from_url(session.url, executable=config.pg_dump_path)
    return PgDump(config.pg_dump_path)


def build_adapter(
    config: TenancyConfig,
    session: TenantSession,
    *,
    excluded: ExcludedModels | None = None,
    dumper: SchemaDumper | None = None,
) -> TenantAdapter:
    """Construct the adapter for ``config.strategy`` without touching the session.

    Call :meth:`TenantAdapter.reset` before use, or use :func:`create_adapter`.
    """
    strategy = config.strategy
    if strategy is IsolationStrategy.DATABASE:
        adapter: TenantAdapter = DatabaseAdapter(session, config)
    elif strategy is IsolationStrategy.SCHEMA:
        adapter = SchemaAdapter(session, config, excluded)
    else:
        adapter = SchemaCloneAdapter(
            session,
            config,
            excluded,
            dumper if dumper is not None else default_dumper(session, config),
        )
    logger.debug(f"Built {type(adapter).__name__} for strategy {strategy.value}")
    return adapter


async def create_adapter(
    config: TenancyConfig,
    session: TenantSession,
    *,
    excluded: ExcludedModels | None = None,
    dumper: SchemaDumper | None = None,
) -> TenantAdapter:
    """Build an adapter and establish the default context on ``session``.

    Raises:
        ConfigurationError: If the default context cannot be applied.
    """
    adapter = build_adapter(config, session, excluded=excluded, dumper=dumper)
    await adapter.reset()
    return adapter


@asynccontextmanager
async def open_adapter(
    engine: AsyncEngine,
    config: TenancyConfig,
    *,
    excluded: ExcludedModels | None = None,
    dumper: SchemaDumper | None = None,
) -> AsyncIterator[TenantAdapter]:
    """Open a dedicated connection on ``engine`` and yield a ready adapter.

    The connection is closed on exit.
    """
    session = SQLAlchemySession(engine)
    await session.connect()
    try:
        yield await create_adapter(config, session, excluded=excluded, dumper=dumper)
    finally:
        await session.close()
