"""
Tenantry CLI - Configuration Commands

Commands:
    show - Display the resolved tenancy configuration
"""

from __future__ import annotations

import typer
from sqlalchemy.engine import make_url

from tenantry.cli import config_app
from tenantry.cli.output import print_error, print_json, print_mapping
from tenantry.config.settings import settings
from tenantry.multitenancy import ConfigurationError


@config_app.command("show")
def show(
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the configuration as JSON.",
    ),
) -> None:
    """Display the resolved tenancy configuration."""
    try:
        config = settings.tenancy_config()
    except ConfigurationError as exc:
        print_error(str(exc), hint="Check the TENANT_* environment variables.")
        raise typer.Exit(1)

    values = config.to_dict()
    values["database_url"] = make_url(settings.DATABASE_URL).render_as_string(
        hide_password=True
    )

    if as_json:
        print_json(values)
    else:
        print_mapping("Tenancy Configuration", values)
