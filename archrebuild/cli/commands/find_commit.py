"""``archrebuild find-commit VERSION`` — find the commit for a release line.

Searches every ref for commits that updated the upstream submodule for
``release/v<VERSION>.x`` and recommends the most recent one as the pin.
"""

from __future__ import annotations

import typer

from archrebuild.cli.common import console, git_source
from archrebuild.core.version_finder import find_version_commits, release_branch
from archrebuild.errors import CatalogError, CommandError, RevisionResolutionError
from archrebuild.monitor.renderer import ReportRenderer


def find_commit_cmd(
    version: str = typer.Argument(
        ...,
        help="The major.minor version to search for (e.g. 1.22).",
    ),
    submodule: str = typer.Option(
        "temporal",
        "--submodule",
        "-s",
        help="Submodule whose pinned revision is shown for each commit.",
    ),
) -> None:
    """List the commits for VERSION's release branch, most recent first."""
    try:
        branch = release_branch(version)
    except CatalogError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc

    console.print(f"[cyan]Searching for commits for version {version}[/cyan]")
    console.print(f"[cyan]Release branch pattern: {branch}[/cyan]")
    console.print()
    try:
        commits = find_version_commits(git_source(), version, submodule)
    except (CommandError, RevisionResolutionError) as exc:
        console.print(f"[bold red]git error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    if not commits:
        console.print(f"[bold red]No commits found for version {version}[/bold red]")
        raise typer.Exit(code=1)
    ReportRenderer(console=console).print_commits(commits)
