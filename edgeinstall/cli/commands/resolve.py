from typing import Optional

import typer

from edgeinstall.cli import core
from edgeinstall.cli.commands.install import EXIT_UNSUPPORTED, build_inputs
from edgeinstall.cli.output import candidates_table, console, err_console
from edgeinstall.internal.config import Settings
from edgeinstall.kernel.errors import EdgeInstallError
from edgeinstall.kernel.platform import describe


def resolve(
    toolkit: str = typer.Option(..., "--toolkit", "-t", help="Accelerator toolkit code, e.g. 511, 60, 61."),
    runtime: Optional[str] = typer.Option(None, "--runtime", help="Interpreter version (3.10 or cp310)."),
    arch: Optional[str] = typer.Option(None, "--arch", help="CPU architecture."),
    os_family: Optional[str] = typer.Option(None, "--os", help="OS family."),
    url: Optional[str] = typer.Option(None, "--url", help="Override location."),
    detect: bool = typer.Option(True, "--detect/--no-detect", help="Fill missing platform inputs from this machine."),
):
    """
    Show the candidate locations for a platform without downloading anything.
    """
    raw = build_inputs(toolkit, runtime, arch, os_family, url, detect)
    try:
        key = describe(raw)
        resolver = core.load_resolver(Settings.from_env())
    except EdgeInstallError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    candidates = resolver.resolve(key, raw.override_location)
    entry = resolver.entry_for(key)
    if not candidates:
        notice = f": {entry.notice}" if entry and entry.notice else ""
        err_console.print(f"[yellow]No candidates for {key}{notice}[/yellow]")
        raise typer.Exit(EXIT_UNSUPPORTED)

    console.print(candidates_table(candidates, title=f"Candidates for {key}"))
    if entry is not None:
        for name in entry.prerequisites:
            console.print(candidates_table(resolver.resolve_component(name, key), title=f"Prerequisite: {name}"))
        for note in core.advisory_notes(entry, key):
            console.print(f"[yellow]Note:[/yellow] {note}")
