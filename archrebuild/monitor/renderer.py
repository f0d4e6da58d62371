"""Rich terminal renderer for rebuild, verification and comparison results.

Turns the core's report models into Rich renderables. Nothing here decides
pass or fail; it only displays what the core returned.

Color scheme
------------
- green   : matches expected / identical / succeeded
- red     : mismatch / removed / missing / failed
- yellow  : architecture differs / changed
- dim     : not applicable
"""

from __future__ import annotations

from collections import defaultdict

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from archrebuild.models.architecture import ArchitectureFamily, ArchitectureVerdict
from archrebuild.models.reports import (
    BuildOutcome,
    DiffEntry,
    DiffKind,
    ImageComparison,
    PipelineResult,
    ScriptStatus,
    VerificationReport,
    VersionCommit,
)
from archrebuild.models.states import PipelineState
from archrebuild.models.versions import BuildMethod, BuildStrategyKind, VersionSpec


# ---------------------------------------------------------------------------
# Style mappings
# ---------------------------------------------------------------------------

_STATE_ICONS: dict[PipelineState, str] = {
    PipelineState.IMAGE_ASSEMBLED: "[green]ASSEMBLED[/green]",
    PipelineState.SUCCEEDED: "[bold green]SUCCEEDED[/bold green]",
    PipelineState.FAILED: "[bold red]FAILED[/bold red]",
}

_DIFF_MARKS: dict[DiffKind, str] = {
    DiffKind.ADDED: "[green]+[/green]",
    DiffKind.REMOVED: "[red]-[/red]",
    DiffKind.CHANGED: "[yellow]~[/yellow]",
}

_SCRIPT_MARKS: dict[ScriptStatus, str] = {
    ScriptStatus.IDENTICAL: "[green]✓[/green] {path} [dim](identical)[/dim]",
    ScriptStatus.DIFFERENT: "[red]✗[/red] {path} [red](DIFFERENT!)[/red]",
    ScriptStatus.MISSING_IN_CANDIDATE: "[red]✗[/red] {path} [red](missing in rebuilt)[/red]",
    ScriptStatus.ONLY_IN_CANDIDATE: "[yellow]+[/yellow] {path} [yellow](only in rebuilt)[/yellow]",
}


def format_size(size: int | None) -> str:
    """Human-readable byte count: ``512B``, ``1.5KB``, ``10.0MB``."""
    if size is None:
        return "-"
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.1f}MB"
    if size >= 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size}B"


def _family(family: ArchitectureFamily | None) -> str:
    return family.value if family is not None else "not found"


class ReportRenderer:
    """Renders core results as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def print_verification(self, report: VerificationReport) -> None:
        self.console.print(
            f"[cyan]{report.subject}[/cyan] "
            f"[dim](expected {report.expected.family.value})[/dim]"
        )
        for result in report.results:
            if result.verdict is ArchitectureVerdict.MATCHES_EXPECTED:
                self.console.print(
                    f"  [green]✓[/green] {result.name} ({result.expected.value})"
                )
            elif result.verdict is ArchitectureVerdict.NOT_FOUND:
                self.console.print(
                    f"  [red]✗[/red] {result.name} - not found at {result.path}"
                )
            else:
                self.console.print(
                    f"  [red]✗[/red] {result.name} - Expected "
                    f"{result.expected.value} but got: {result.description}"
                )

    def print_verification_summary(self, reports: list[VerificationReport]) -> None:
        checked = sum(r.checked for r in reports)
        failures = sum(len(r.failures) for r in reports)
        self.console.print()
        self.console.print(f"[bold]Checked:[/bold] {checked} binaries")
        if failures:
            self.console.print(f"[bold red]Errors:[/bold red] {failures}")
        else:
            self.console.print("[bold green]All binaries have correct architectures.[/bold green]")

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def render_tree_diff(self, entries: list[DiffEntry]) -> Group:
        """Discrepancies grouped by directory, one line per path."""
        if not entries:
            return Group(Text.from_markup("  [green]No differences[/green]"))

        by_dir: dict[str, list[DiffEntry]] = defaultdict(list)
        for entry in entries:
            by_dir[entry.directory].append(entry)

        lines: list[Text] = []
        for directory, group in by_dir.items():
            lines.append(Text.from_markup(f"[bold]{directory}/[/bold]"))
            for entry in group:
                lines.append(Text.from_markup(f"  {self._diff_line(entry)}"))
        return Group(*lines)

    @staticmethod
    def _diff_line(entry: DiffEntry) -> str:
        mark = _DIFF_MARKS[entry.kind]
        if entry.kind is DiffKind.ADDED:
            return f"{mark} {entry.name} ({format_size(entry.new_size)})"
        if entry.kind is DiffKind.REMOVED:
            return f"{mark} {entry.name} ({format_size(entry.old_size)})"
        parts: list[str] = []
        if entry.size_changed:
            delta = entry.size_delta
            sign = "+" if delta > 0 else "-"
            parts.append(
                f"{format_size(entry.old_size)} -> {format_size(entry.new_size)}, "
                f"{sign}{format_size(abs(delta))}"
            )
        if entry.arch_changed:
            parts.append(
                f"[yellow]{_family(entry.reference_arch)} -> "
                f"{_family(entry.candidate_arch)}[/yellow]"
            )
        return f"{mark} {entry.name} ({'; '.join(parts)})"

    def render_architecture_table(self, comparison: ImageComparison) -> Table:
        table = Table(
            title="Binary Architecture Comparison",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Binary", min_width=28)
        table.add_column("Reference", min_width=12)
        table.add_column("Rebuilt", min_width=12)
        for row in comparison.architectures:
            style = "yellow" if row.differs else ""
            table.add_row(
                row.name, _family(row.reference), _family(row.candidate), style=style
            )
        return table

    def print_comparison(self, comparison: ImageComparison) -> None:
        self.console.print(f"[bold]Reference:[/bold] {comparison.reference}")
        self.console.print(f"[bold]Rebuilt:[/bold]   {comparison.candidate}")
        self.console.print()
        self.console.print(
            Panel(
                self.render_tree_diff(comparison.entries),
                title="[bold]File Tree Diff[/bold]",
                subtitle="[dim]+ added  - removed  ~ changed[/dim]",
                border_style="blue",
            )
        )
        if comparison.architectures:
            self.console.print(self.render_architecture_table(comparison))

        self.console.print("[yellow]=== Shell Script Comparison ===[/yellow]")
        if not comparison.scripts:
            self.console.print("  No shell scripts found")
        for script in comparison.scripts:
            self.console.print("  " + _SCRIPT_MARKS[script.status].format(path=script.path))
            for line in script.diff_lines:
                self.console.print(f"      [dim]{line}[/dim]", markup=False, highlight=False)

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def render_outcomes(self, result: PipelineResult) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Target", min_width=12)
        table.add_column("State", justify="center", min_width=12)
        table.add_column("Verified", justify="right", width=10)
        table.add_column("Details", min_width=30)
        for outcome in result.outcomes:
            table.add_row(
                str(outcome.target),
                _STATE_ICONS.get(outcome.state, outcome.state.value),
                self._verified(outcome),
                self._details(outcome),
            )
        return table

    @staticmethod
    def _verified(outcome: BuildOutcome) -> str:
        if not outcome.verdicts:
            return "[dim]-[/dim]"
        good = len(outcome.verdicts) - len(outcome.failures)
        style = "green" if not outcome.failures else "red"
        return f"[{style}]{good}/{len(outcome.verdicts)}[/{style}]"

    @staticmethod
    def _details(outcome: BuildOutcome) -> str:
        if outcome.succeeded:
            return "\n".join(outcome.images.values())
        return f"[red]{outcome.failed_stage}: {outcome.error}[/red]"

    def print_result(self, result: PipelineResult) -> None:
        summary = "  |  ".join(
            [
                f"[bold]Version:[/bold] {result.version}",
                f"[bold]Revision:[/bold] {result.revision}",
                f"[bold]Restored:[/bold] {result.restored_position or '[red]?[/red]'}",
                f"[bold]Result:[/bold] {_STATE_ICONS.get(result.state, result.state.value)}",
            ]
        )
        self.console.print(
            Panel(
                Group(self.render_outcomes(result), Text(""), Text.from_markup(summary)),
                title="[bold]Rebuild[/bold]",
                border_style="green" if result.succeeded else "red",
                padding=(1, 2),
            )
        )

    # ------------------------------------------------------------------
    # Catalog and commit discovery
    # ------------------------------------------------------------------

    def render_versions(self, specs: list[VersionSpec]) -> Table:
        table = Table(title="Supported Versions", show_header=True, header_style="bold cyan")
        table.add_column("Version", style="cyan")
        table.add_column("Revision")
        table.add_column("Strategy")
        table.add_column("Images")
        table.add_column("Direct go build", justify="right")
        for spec in specs:
            if spec.strategy is BuildStrategyKind.DIRECT_HOST:
                direct = sum(1 for b in spec.binaries if b.method is BuildMethod.GO_BUILD)
                direct_cell = f"{direct}/{len(spec.binaries)}"
            else:
                direct_cell = "[dim]-[/dim]"
            table.add_row(
                spec.version,
                spec.revision,
                spec.strategy.value,
                ", ".join(i.kind for i in spec.images),
                direct_cell,
            )
        return table

    def print_commits(self, commits: list[VersionCommit]) -> None:
        self.console.print("Found commits (most recent first):")
        self.console.print()
        for commit in commits:
            self.console.print(f"[green]Commit: {commit.sha}[/green]")
            self.console.print(f"  Date:    {commit.date}")
            self.console.print(f"  Message: {commit.message}")
            self.console.print(f"  Submodule: {commit.submodule_revision}")
            self.console.print()
        if commits:
            self.console.print(
                f"[yellow]Recommended commit (most recent): {commits[0].sha}[/yellow]"
            )
