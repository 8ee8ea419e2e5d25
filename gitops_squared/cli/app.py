"""Main Typer application — imports and registers all CLI commands.

Entry point: ``gitops-squared`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

from typing import Optional

import typer

from gitops_squared.cli.commands.catalog import build_catalog_cmd, restore_cmd, status_cmd
from gitops_squared.cli.commands.resources import (
    apply_cmd,
    history_cmd,
    list_cmd,
    retract_cmd,
    show_cmd,
)
from gitops_squared.cli.runtime import configure_logging
from gitops_squared.config import settings

app = typer.Typer(
    name="gitops-squared",
    help="gitops-squared: declared infrastructure state as versioned OCI artifacts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    registry: Optional[str] = typer.Option(
        None, "--registry", "-r", help="Registry host:port (overrides GITOPS_SQUARED_REGISTRY_HOST)."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level."),
) -> None:
    """Resolve settings and configure logging for every command."""
    overrides = {}
    if registry:
        overrides["registry_host"] = registry
    if log_level:
        overrides["log_level"] = log_level
    cfg = settings.model_copy(update=overrides)
    configure_logging(cfg.log_level)
    ctx.obj = cfg


# Register subcommands
app.command(name="status", help="Check registry and catalog health.")(status_cmd)
app.command(name="restore", help="Rebuild and republish the catalog from the registry.")(restore_cmd)
app.command(name="apply", help="Publish a new version of a resource.")(apply_cmd)
app.command(name="retract", help="Tombstone a resource.")(retract_cmd)
app.command(name="show", help="Show a resource version from the registry.")(show_cmd)
app.command(name="history", help="List a resource's immutable versions.")(history_cmd)
app.command(name="list", help="List live resources.")(list_cmd)
app.command(name="build-catalog", help="Write the catalog archive to a file.")(build_catalog_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
