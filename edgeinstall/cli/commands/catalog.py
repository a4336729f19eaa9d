import typer
from rich.table import Table

from edgeinstall.cli import core
from edgeinstall.cli.output import console, err_console
from edgeinstall.internal.config import Settings
from edgeinstall.kernel.errors import EdgeInstallError


def list_artifacts():
    """
    List the toolkit codes and components known to the registry.
    """
    try:
        registry = core.load_resolver(Settings.from_env()).registry
    except EdgeInstallError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    table = Table(title="Known Artifacts")
    table.add_column("Toolkit", style="cyan", no_wrap=True)
    table.add_column("Package")
    table.add_column("Version", style="green")
    table.add_column("Python")
    table.add_column("Prerequisites")
    table.add_column("Description")

    for code, entry in sorted(registry.artifacts.items()):
        version = entry.version or ("[yellow]none published[/yellow]" if not entry.locations else "?")
        table.add_row(
            code,
            entry.package,
            version,
            ", ".join(entry.published_python_tags) or "-",
            ", ".join(entry.prerequisites) or "-",
            entry.description,
        )
    console.print(table)

    components = Table(title="Prerequisite Components")
    components.add_column("Name", style="cyan", no_wrap=True)
    components.add_column("Candidates", justify="right")
    components.add_column("Destination")
    components.add_column("Description")
    for name, entry in sorted(registry.components.items()):
        components.add_row(name, str(len(entry.locations)), entry.destination or "-", entry.description)
    console.print(components)
