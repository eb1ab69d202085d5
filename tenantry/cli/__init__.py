"""
Tenantry - Command Line Interface

Operator commands for the tenant lifecycle. The database URL and the
isolation strategy come from the environment (``tenantry.config.settings``).

Usage:
    $ tenantry provision acme
    $ tenantry import-schema acme
    $ tenantry drop acme --yes
    $ tenantry config show --json
"""

from __future__ import annotations

import logging

import typer

from tenantry import __version__
from tenantry.cli.output import console, err_console

app = typer.Typer(
    name="tenantry",
    help="Provision, inspect and drop PostgreSQL tenants.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(name="config", help="Inspect tenancy settings.", no_args_is_help=True)
app.add_typer(config_app, name="config")


def _show_version(value: bool) -> None:
    if value:
        console.print(f"tenantry {__version__}")
        raise typer.Exit()


def _enable_debug_logging(value: bool) -> None:
    # adapters log every statement and switch at DEBUG
    if value:
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_show_version, is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", callback=_enable_debug_logging,
        help="Log executed statements and context switches.",
    ),
) -> None:
    """Tenant lifecycle commands for database- and schema-per-tenant isolation."""


# Imported last: command modules register themselves on ``app``
def _register_subcommands() -> None:
    from tenantry.cli import tenants  # noqa: F401
    from tenantry.cli import config  # noqa: F401


_register_subcommands()

__all__ = ["app", "config_app", "console", "err_console"]
