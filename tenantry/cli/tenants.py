"""
Tenantry CLI - Tenant Commands

Commands:
    create        - Create an empty tenant database or schema
    drop          - Drop a tenant and everything in it
    import-schema - Clone the template schema into an existing tenant schema
    provision     - Create a tenant (and clone it) unless it exists
    exists        - Check whether a tenant exists
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

import typer
from sqlalchemy.ext.asyncio import create_async_engine

from tenantry.cli import app, console
from tenantry.cli.output import print_error, print_success, print_warning
from tenantry.config.settings import Settings, settings
from tenantry.multitenancy import (
    ErrorKind,
    ProvisionOutcome,
    SchemaCloneAdapter,
    TenantAdapter,
    TenantryError,
    open_adapter,
)

T = TypeVar("T")

HINTS: dict[ErrorKind, str] = {
    ErrorKind.TENANT_NOT_FOUND: "List schemas with \\dn or databases with \\l in psql.",
    ErrorKind.INVALID_IDENTIFIER: "Use letters, digits, '_' or '-', starting with a letter or '_'.",
    ErrorKind.IMPORT_FAILED: "Drop the tenant and run provision again.",
    ErrorKind.CONFIGURATION_ERROR: "Check DATABASE_URL and the TENANT_* settings.",
}


@asynccontextmanager
async def connect(cfg: Settings) -> AsyncIterator[TenantAdapter]:
    """Open an adapter on a short-lived engine built from ``cfg``."""
    engine = create_async_engine(cfg.DATABASE_URL)
    try:
        async with open_adapter(engine, cfg.tenancy_config()) as adapter:
            yield adapter
    finally:
        await engine.dispose()


def run_with_adapter(action: Callable[[TenantAdapter], Awaitable[T]]) -> T:
    """Run ``action`` against a fresh adapter, mapping tenant errors to exit code 1."""

    async def _main() -> T:
        async with connect(settings) as adapter:
            return await action(adapter)

    try:
        return asyncio.run(_main())
    except TenantryError as exc:
        print_error(str(exc), hint=HINTS.get(exc.kind))
        raise typer.Exit(1)


@app.command()
def create(tenant: str = typer.Argument(..., help="Tenant identifier.")) -> None:
    """Create an empty tenant database or schema."""

    async def _create(adapter: TenantAdapter) -> None:
        await adapter.create(tenant)

    run_with_adapter(_create)
    print_success(f"Created tenant [cyan]{tenant}[/cyan]")


@app.command()
def drop(
    tenant: str = typer.Argument(..., help="Tenant identifier."),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """Drop a tenant and all of its data."""
    if not yes and not typer.confirm(f"Drop tenant {tenant} and all of its data?"):
        print_warning("Aborted")
        raise typer.Exit(1)

    async def _drop(adapter: TenantAdapter) -> None:
        await adapter.drop(tenant)

    run_with_adapter(_drop)
    print_success(f"Dropped tenant [cyan]{tenant}[/cyan]")


@app.command("import-schema")
def import_schema(tenant: str = typer.Argument(..., help="Tenant identifier.")) -> None:
    """Clone the template schema into an existing, empty tenant schema."""

    async def _import(adapter: TenantAdapter) -> bool:
        if not isinstance(adapter, SchemaCloneAdapter):
            return False
        await adapter.import_schema(tenant)
        return True

    if not run_with_adapter(_import):
        print_error(
            "import-schema requires the schema_clone isolation strategy",
            hint="Set TENANT_ISOLATION=schema_clone.",
        )
        raise typer.Exit(1)
    print_success(f"Imported template schema into [cyan]{tenant}[/cyan]")


@app.command()
def provision(tenant: str = typer.Argument(..., help="Tenant identifier.")) -> None:
    """Create a tenant unless it already exists."""

    async def _provision(adapter: TenantAdapter) -> ProvisionOutcome:
        return await adapter.provision(tenant)

    outcome = run_with_adapter(_provision)
    if outcome is ProvisionOutcome.ALREADY_EXISTS:
        console.print(f"Tenant [cyan]{tenant}[/cyan] already exists")
    else:
        print_success(f"Provisioned tenant [cyan]{tenant}[/cyan]")


@app.command()
def exists(tenant: str = typer.Argument(..., help="Tenant identifier.")) -> None:
    """Exit with status 0 if the tenant exists, 1 otherwise."""

    async def _exists(adapter: TenantAdapter) -> bool:
        return await adapter.exists(tenant)

    if run_with_adapter(_exists):
        console.print(f"Tenant [cyan]{tenant}[/cyan] exists")
    else:
        console.print(f"Tenant [cyan]{tenant}[/cyan] does not exist")
        raise typer.Exit(1)
