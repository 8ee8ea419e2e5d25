"""Shared CLI plumbing: settings, logging and service construction."""

from __future__ import annotations

import logging

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler

from gitops_squared.config import Settings
from gitops_squared.core.catalog_service import CatalogService
from gitops_squared.core.errors import StoreError

console = Console()


def make_transport() -> httpx.BaseTransport | None:
    """Transport for CLI clients; None means httpx's default network transport.

    Tests replace this function to route the CLI to an in-memory registry.
    """
    return None


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def settings_from(ctx: typer.Context) -> Settings:
    if isinstance(ctx.obj, Settings):
        return ctx.obj
    return Settings()


def build_service(ctx: typer.Context) -> CatalogService:
    return CatalogService.from_settings(settings_from(ctx), transport=make_transport())


def fail(exc: StoreError) -> typer.Exit:
    """Report a store failure and return the exit to raise."""
    console.print(f"[red]{type(exc).__name__}:[/red] {exc}")
    return typer.Exit(code=1)
