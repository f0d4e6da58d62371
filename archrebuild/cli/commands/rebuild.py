"""``archrebuild rebuild VERSION`` — rebuild a version for every architecture.

Pins the source tree to the version's revision, builds each target with the
version's configured strategy, verifies every binary, assembles the images,
and puts the source tree back where it was.
"""

from __future__ import annotations

from pathlib import Path

import typer

from archrebuild.cli.common import (
    console,
    docker_runtime,
    git_source,
    host_toolchain,
    parse_architecture,
    resolve_catalog,
)
from archrebuild.config import settings
from archrebuild.core.pipeline import BuildPipeline
from archrebuild.errors import CatalogError, RestoreError, RevisionResolutionError
from archrebuild.monitor.renderer import ReportRenderer

_INTERRUPTED = 130


def rebuild_cmd(
    version: str = typer.Argument(..., help="Version to rebuild (e.g. 1.23)."),
    arch: list[str] = typer.Option(
        None,
        "--arch",
        "-a",
        help="Target architecture; repeat for several. Default: all configured.",
    ),
    catalog_path: Path = typer.Option(
        None,
        "--catalog",
        "-c",
        help="TOML version catalog. Default: the built-in catalog.",
    ),
) -> None:
    """Rebuild, verify and assemble the images of VERSION."""
    catalog = resolve_catalog(catalog_path)
    try:
        spec = catalog.get(version)
    except CatalogError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc
    architectures = [parse_architecture(a) for a in arch] if arch else None

    renderer = ReportRenderer(console=console)
    try:
        pipeline = BuildPipeline(
            docker_runtime(),
            git_source(),
            host_toolchain(),
            settings=settings,
            catalog=catalog,
        )
        result = pipeline.run(spec, architectures)
    except RevisionResolutionError as exc:
        console.print(f"[bold red]Cannot pin revision:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except RestoreError as exc:
        if exc.result is not None:
            renderer.print_result(exc.result)
        console.print(f"[bold red]SOURCE TREE NOT RESTORED:[/bold red] {exc}")
        console.print("[red]Check out your original branch before continuing.[/red]")
        raise typer.Exit(code=2) from exc
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted; source tree restored.[/yellow]")
        raise typer.Exit(code=_INTERRUPTED) from None

    renderer.print_result(result)
    if result.succeeded:
        console.print("Next steps:")
        for image in spec.images:
            console.print(f"  archrebuild compare {spec.version} {image.kind}")
    raise typer.Exit(code=result.exit_code)
