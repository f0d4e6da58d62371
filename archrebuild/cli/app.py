"""Main Typer application — imports and registers all CLI commands.

Entry point: ``archrebuild`` (configured via pyproject.toml scripts).

Commands: rebuild, verify, compare, find-commit, versions.
"""

from __future__ import annotations

import typer

from archrebuild import __version__
from archrebuild.cli.commands.compare import compare_cmd
from archrebuild.cli.commands.find_commit import find_commit_cmd
from archrebuild.cli.commands.rebuild import rebuild_cmd
from archrebuild.cli.commands.verify import verify_cmd
from archrebuild.cli.commands.versions import versions_cmd
from archrebuild.cli.common import configure_logging, console

app = typer.Typer(
    name="archrebuild",
    help="Rebuild multi-architecture images from source and verify their binaries.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="rebuild", help="Rebuild a version for every architecture.")(rebuild_cmd)
app.command(name="verify", help="Verify binary architectures in rebuilt images.")(verify_cmd)
app.command(name="compare", help="Compare a rebuilt image with the published one.")(compare_cmd)
app.command(name="find-commit", help="Find the commit for a release line.")(find_commit_cmd)
app.command(name="versions", help="List the versions in the catalog.")(versions_cmd)


def _print_version(value: bool) -> None:
    if value:
        console.print(f"archrebuild {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-L",
        help="Logging level (default: ARCHREBUILD_LOG_LEVEL or INFO).",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Rebuild multi-architecture images from source and verify their binaries."""
    configure_logging(log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
