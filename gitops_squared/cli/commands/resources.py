"""``gitops-squared apply|retract|show|history|list`` — resource commands.

Mutating commands restore the index from the registry first, since each
CLI invocation is a fresh process with an empty catalog.
"""

from __future__ import annotations

from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from gitops_squared.cli.runtime import build_service, console, fail, settings_from
from gitops_squared.core.catalog_index import split_key
from gitops_squared.core.errors import StoreError
from gitops_squared.models.resources import ResourceRequest, parse_manifest


def apply_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name."),
    resource_type: str = typer.Option(..., "--type", "-t", help="vm, database or bucket."),
    size: str = typer.Option(..., "--size", "-s", help="small, medium or large."),
    region: Optional[str] = typer.Option(None, "--region", help="Target region."),
    replicas: int = typer.Option(1, "--replicas", help="Replica count (1-10)."),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace."),
) -> None:
    """Declare desired state for a resource and publish a new version."""
    try:
        request = ResourceRequest.model_validate(
            {
                "name": name,
                "spec": {
                    "type": resource_type,
                    "size": size,
                    "region": region,
                    "replicas": replicas,
                },
            }
        )
    except ValidationError as exc:
        console.print(f"[red]Invalid resource:[/red] {exc.error_count()} error(s)")
        for error in exc.errors():
            loc = ".".join(str(part) for part in error["loc"])
            console.print(f"  [yellow]{loc}[/yellow]: {error['msg']}")
        raise typer.Exit(code=2)

    service = build_service(ctx)
    try:
        service.restore()
        result = service.apply(request, namespace)
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()

    catalog_line = (
        "[green]published[/green]" if result.catalog_published else "[yellow]stale[/yellow]"
    )
    console.print(
        Panel(
            "\n".join([
                f"[bold]Resource:[/bold]   {result.namespace}/{result.name}",
                f"[bold]Version:[/bold]    {result.version}",
                f"[bold]Digest:[/bold]     {result.digest}",
                f"[bold]Repository:[/bold] {result.repository}",
                f"[bold]Catalog:[/bold]    {catalog_line}",
            ]),
            title="[bold green]Applied[/bold green]",
            border_style="green",
        )
    )


def retract_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name."),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace."),
) -> None:
    """Delete a resource by pushing a tombstone version."""
    namespace = namespace or settings_from(ctx).default_namespace
    service = build_service(ctx)
    try:
        service.restore()
        result = service.retract(namespace, name)
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()
    console.print(
        f"[bold]Retracted[/bold] {namespace}/{name} "
        f"(tombstone version={result.version}, digest={result.digest[:19]})"
    )


def show_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name."),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace."),
    version: Optional[str] = typer.Option(None, "--version", "-v", help="Version tag or digest."),
) -> None:
    """Show a resource version straight from the registry."""
    namespace = namespace or settings_from(ctx).default_namespace
    service = build_service(ctx)
    try:
        if version:
            artifact = service.versioner.fetch_version(namespace, name, version)
        else:
            artifact = service.versioner.fetch_latest(namespace, name)
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()

    table = Table(title=f"{namespace}/{name} @ {artifact.reference}")
    table.add_column("Annotation", style="cyan")
    table.add_column("Value")
    table.add_row("digest", artifact.digest)
    for key in sorted(artifact.annotations):
        table.add_row(key, artifact.annotations[key])
    console.print(table)
    if artifact.deleted:
        console.print("[yellow]Tombstone: this resource is deleted.[/yellow]")
    console.print(Syntax(artifact.data.decode("utf-8", errors="replace"), "yaml"))


def history_cmd(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name."),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Resource namespace."),
) -> None:
    """List every immutable version of a resource, oldest first."""
    namespace = namespace or settings_from(ctx).default_namespace
    service = build_service(ctx)
    try:
        versions = service.versioner.history(namespace, name)
        latest = service.versioner.fetch_latest(namespace, name)
        rows = []
        for tag in versions:
            artifact = service.versioner.fetch_version(namespace, name, tag)
            rows.append((tag, artifact.digest, artifact.deleted))
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()

    table = Table(title=f"History of {namespace}/{name}")
    table.add_column("Version", style="cyan")
    table.add_column("Digest")
    table.add_column("Tombstone", justify="center")
    table.add_column("Latest", justify="center")
    for tag, digest, deleted in rows:
        table.add_row(
            tag,
            digest[:19],
            "[yellow]Yes[/yellow]" if deleted else "",
            "[green]*[/green]" if digest == latest.digest else "",
        )
    console.print(table)


def list_cmd(
    ctx: typer.Context,
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Filter by namespace."),
) -> None:
    """List live resources as recorded in the registry."""
    service = build_service(ctx)
    try:
        entries = service.registry_state()
    except StoreError as exc:
        raise fail(exc)
    finally:
        service.close()

    if namespace is not None:
        entries = {k: v for k, v in entries.items() if split_key(k)[0] == namespace}
    if not entries:
        console.print("[dim]No resources.[/dim]")
        return

    table = Table(title="Resources")
    table.add_column("Namespace", style="cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Size")
    table.add_column("Version", style="green")
    for key, data in entries.items():
        ns, name = split_key(key)
        try:
            resource = parse_manifest(data)
        except (ValidationError, ValueError, yaml.YAMLError):
            table.add_row(ns, name, "-", "-", "-")
            continue
        table.add_row(ns, name, resource.spec.type, resource.spec.size, resource.version)
    console.print(table)
    console.print(f"[dim]{len(entries)} resource(s)[/dim]")
