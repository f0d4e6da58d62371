"""``archrebuild versions`` — list the release lines in the catalog."""

from __future__ import annotations

from pathlib import Path

import typer

from archrebuild.cli.common import console, resolve_catalog
from archrebuild.monitor.renderer import ReportRenderer


def versions_cmd(
    catalog_path: Path = typer.Option(
        None,
        "--catalog",
        "-c",
        help="TOML version catalog. Default: the built-in catalog.",
    ),
) -> None:
    """List supported versions with their pinned revision and build strategy."""
    catalog = resolve_catalog(catalog_path)
    console.print(ReportRenderer(console=console).render_versions(list(catalog.versions)))
