from typing import Sequence

from rich.console import Console
from rich.table import Table

from edgeinstall.kernel.artifacts import ArtifactCandidate, FetchResult, InstallationReport

console = Console()
err_console = Console(stderr=True)


def candidates_table(candidates: Sequence[ArtifactCandidate], title: str = "Candidates") -> Table:
    table = Table(title=title)
    table.add_column("Priority", justify="right", style="cyan")
    table.add_column("Format")
    table.add_column("Version", style="green")
    table.add_column("Location", overflow="fold")
    for c in candidates:
        table.add_row(str(c.priority), c.expected_format.value, c.version or "?", c.location_uri)
    return table


def trail_table(trail: Sequence[FetchResult], title: str = "Fetch attempts") -> Table:
    table = Table(title=title)
    table.add_column("Priority", justify="right", style="cyan")
    table.add_column("Location", overflow="fold")
    table.add_column("Tries", justify="right")
    table.add_column("Result")
    for r in trail:
        result = "[green]ok[/green]" if r.success else f"[red]{r.failure_reason}[/red]"
        table.add_row(str(r.candidate.priority), r.candidate.location_uri, str(r.attempts), result)
    return table


def report_table(report: InstallationReport) -> Table:
    title = report.artifact.label if report.artifact and report.artifact.label else "Installation"
    table = Table(title=f"{title}: verification")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")
    for name, passed in report.diagnostics.items():
        table.add_row(
            name,
            "[green]PASSED[/green]" if passed else "[red]FAILED[/red]",
            report.details.get(f"probe.{name}", ""),
        )
    return table
