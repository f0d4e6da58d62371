"""``archrebuild verify [VERSION]`` — audit the architecture of rebuilt images.

Checks every manifest binary of every rebuilt image (all versions, or one)
against the architecture in the image's tag. Images are never modified.
Exits with the number of binaries that have issues.
"""

from __future__ import annotations

from pathlib import Path

import typer

from archrebuild.cli.common import console, docker_runtime, resolve_catalog
from archrebuild.config import settings
from archrebuild.core.verification import VerificationAggregator
from archrebuild.errors import CatalogError, InventoryError
from archrebuild.models.reports import VerificationReport
from archrebuild.monitor.renderer import ReportRenderer

# Shell exit statuses stop at 255
_MAX_EXIT = 255


def verify_cmd(
    version: str = typer.Argument(
        None,
        help="Verify only this version (e.g. 1.22). Default: every version.",
    ),
    catalog_path: Path = typer.Option(
        None,
        "--catalog",
        "-c",
        help="TOML version catalog. Default: the built-in catalog.",
    ),
) -> None:
    """Verify that rebuilt images contain binaries for their architecture."""
    catalog = resolve_catalog(catalog_path)
    try:
        specs = [catalog.get(version)] if version else list(catalog.versions)
    except CatalogError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc

    runtime = docker_runtime()
    aggregator = VerificationAggregator()
    renderer = ReportRenderer(console=console)
    reports: list[VerificationReport] = []
    errors = 0

    for spec in specs:
        console.print()
        console.print(f"[cyan]=== Verifying version {spec.version} ===[/cyan]")
        for image in spec.images:
            console.print()
            console.print(f"[yellow]{image.kind} images:[/yellow]")
            manifest = spec.manifest_for(image.kind)
            for arch in settings.target_architectures:
                ref = settings.rebuild_image(image.kind, spec.version, arch)
                try:
                    report = aggregator.verify_image(runtime, ref, manifest, arch)
                except InventoryError as exc:
                    console.print(f"  [red]✗[/red] {exc}")
                    errors += 1
                    continue
                renderer.print_verification(report)
                reports.append(report)
                errors += len(report.failures)

    renderer.print_verification_summary(reports)
    if errors:
        console.print(f"[red]Verification failed: {errors} issues[/red]")
    raise typer.Exit(code=min(errors, _MAX_EXIT))
