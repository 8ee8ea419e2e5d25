"""``gitops-squared restore|build-catalog|status`` — catalog commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.table import Table

from gitops_squared.cli.runtime import build_service, console, fail, settings_from
from gitops_squared.core.assembler import assemble, entry_filename
from gitops_squared.core.errors import NotFound, StoreError
from gitops_squared.core.media_types import LATEST_TAG


def restore_cmd(ctx: typer.Context) -> None:
    """Rebuild the catalog from the registry and republish it."""
    service = build_service(ctx)
    try:
        count = service.restore()
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()
    console.print(
        f"[bold green]Restored {count} resource(s)[/bold green] "
        f"and published {service.catalog_repo}:{LATEST_TAG}"
    )


def build_catalog_cmd(
    ctx: typer.Context,
    output: Path = typer.Option(
        Path("catalog.tar.gz"), "--output", "-o", help="Where to write the archive."
    ),
) -> None:
    """Assemble the catalog archive locally without pushing it."""
    service = build_service(ctx)
    try:
        entries = service.registry_state()
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(assemble(entries))
    for key in entries:
        console.print(f"  [cyan]{entry_filename(key)}[/cyan]")
    console.print(f"[bold]Wrote {output}[/bold] ({len(entries)} resource(s))")


def status_cmd(ctx: typer.Context) -> None:
    """Check registry reachability and catalog presence."""
    cfg = settings_from(ctx)
    service = build_service(ctx)
    table = Table(title="gitops-squared status")
    table.add_column("Check", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Detail")

    healthy = True
    try:
        service.client.ping()
        table.add_row("Registry", "[green]OK[/green]", cfg.registry_url)
        try:
            catalog = service.client.pull(service.catalog_repo, LATEST_TAG)
            table.add_row("Catalog", "[green]OK[/green]", catalog.digest[:19])
        except NotFound:
            table.add_row("Catalog", "[yellow]MISSING[/yellow]", "run `gitops-squared restore`")
        repos = service.client.list_repositories(cfg.resource_prefix)
        table.add_row("Resource repos", "[green]OK[/green]", str(len(repos)))
    except StoreError as exc:
        healthy = False
        table.add_row("Registry", "[red]FAIL[/red]", str(exc))
    finally:
        service.close()

    console.print(table)
    if not healthy:
        raise typer.Exit(code=1)
