"""``archrebuild compare VERSION KIND [ARCH]`` — diff a rebuild against upstream.

Compares the rebuilt ``<kind>:<version>-rebuild-<arch>`` image with the
published ``<kind>:<version>`` reference: file tree (sizes), binary
architectures, and shell scripts. Both images are read as ARCH's platform
variant; the reference is pulled for that platform if it is not present
locally.
"""

from __future__ import annotations

from pathlib import Path

import typer

from archrebuild.cli.common import (
    console,
    docker_runtime,
    parse_architecture,
    resolve_catalog,
)
from archrebuild.config import settings
from archrebuild.core.diff_engine import compare_images
from archrebuild.errors import CatalogError, CommandError, InventoryError
from archrebuild.monitor.renderer import ReportRenderer


def compare_cmd(
    version: str = typer.Argument(..., help="Version to compare (e.g. 1.22)."),
    kind: str = typer.Argument(..., help="Image kind: server or admin-tools."),
    arch: str = typer.Argument("arm64", help="Architecture: amd64 or arm64."),
    catalog_path: Path = typer.Option(
        None,
        "--catalog",
        "-c",
        help="TOML version catalog. Default: the built-in catalog.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit with status 1 when any discrepancy is found.",
    ),
) -> None:
    """Compare a rebuilt image with the published reference image."""
    architecture = parse_architecture(arch)
    catalog = resolve_catalog(catalog_path)
    try:
        spec = catalog.get(version)
        manifest = spec.manifest_for(kind)
    except (CatalogError, KeyError) as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc

    reference = settings.reference_image(kind, version)
    candidate = settings.rebuild_image(kind, version, architecture)
    runtime = docker_runtime()

    if not runtime.image_exists(candidate):
        console.print(f"[bold red]Rebuilt image not found:[/bold red] {candidate}")
        raise typer.Exit(code=1)
    if not runtime.image_exists(reference):
        console.print(f"[green]Pulling reference image:[/green] {reference}")
        try:
            runtime.pull_image(reference, platform=architecture.platform)
        except CommandError as exc:
            console.print(f"[bold red]Failed to pull {reference}:[/bold red] {exc}")
            raise typer.Exit(code=1) from exc

    try:
        comparison = compare_images(
            runtime,
            reference,
            candidate,
            manifest,
            settings.inventory_roots,
            platform=architecture.platform,
        )
    except InventoryError as exc:
        console.print(f"[bold red]Comparison failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    ReportRenderer(console=console).print_comparison(comparison)
    if strict and comparison.has_discrepancies:
        raise typer.Exit(code=1)
