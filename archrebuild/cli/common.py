"""Helpers shared by the CLI commands: logging, catalog and backend wiring."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from archrebuild.backends import DockerCli, GitSourceControl, HostToolchain
from archrebuild.config import settings
from archrebuild.errors import CatalogError
from archrebuild.models.architecture import Architecture
from archrebuild.models.catalog import DEFAULT_CATALOG, VersionCatalog, load_catalog

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str | None = None) -> None:
    """Route log records through Rich at *level* (default: settings)."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=settings.debug)],
        force=True,
    )


def resolve_catalog(path: Path | None) -> VersionCatalog:
    """The catalog at *path*, else the configured one, else the built-in one."""
    catalog_path = path or settings.catalog_path
    if catalog_path is None:
        return DEFAULT_CATALOG
    try:
        return load_catalog(catalog_path)
    except CatalogError as exc:
        console.print(f"[bold red]Catalog error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc


def parse_architecture(value: str) -> Architecture:
    try:
        return Architecture(value)
    except ValueError:
        valid = ", ".join(a.value for a in Architecture)
        raise typer.BadParameter(f"{value!r} is not one of: {valid}") from None


def docker_runtime() -> DockerCli:
    return DockerCli(settings.docker_binary, timeout=settings.command_timeout_seconds)


def git_source() -> GitSourceControl:
    return GitSourceControl(settings.repo_root, timeout=settings.command_timeout_seconds)


def host_toolchain() -> HostToolchain:
    return HostToolchain(settings.go_binary, settings.make_binary)
