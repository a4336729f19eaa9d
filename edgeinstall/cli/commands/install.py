from pathlib import Path
from typing import Optional

import typer

from edgeinstall.cli import core
from edgeinstall.cli.output import console, err_console, report_table, trail_table
from edgeinstall.internal.config import Settings
from edgeinstall.internal.constants import ARTIFACT_INDEX_URL
from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.errors import (
    AllCandidatesExhausted,
    EdgeInstallError,
    InstallationError,
    InvalidPlatformInput,
    RunCancelled,
    UnsupportedCombination,
)
from edgeinstall.kernel.pipeline import Stage
from edgeinstall.kernel.platform import RawPlatformInputs
from edgeinstall.runtime import system

logger = get_logger(__name__)

EXIT_FAILED = 1
EXIT_UNSUPPORTED = 2
EXIT_NOT_VERIFIED = 3


def _on_stage(stage: Stage, payload) -> None:
    if stage is Stage.RESOLVED:
        console.print(f"[dim]Resolved {len(payload)} candidate(s)[/dim]")
    elif stage is Stage.FETCHED:
        console.print(f"[dim]Fetched {payload.candidate.location_uri}[/dim]")
    elif stage is Stage.INSTALLED:
        refreshed = " (linker cache refreshed)" if payload.cache_refreshed else ""
        console.print(f"[dim]Installed into {payload.destination_path}{refreshed}[/dim]")


def build_inputs(
    toolkit: Optional[str],
    runtime: Optional[str],
    arch: Optional[str],
    os_family: Optional[str],
    url: Optional[str],
    detect: bool,
) -> RawPlatformInputs:
    detected = system.detect_inputs() if detect else RawPlatformInputs()
    return RawPlatformInputs(
        os_family=os_family or detected.os_family,
        cpu_arch=arch or detected.cpu_arch,
        toolkit_version=toolkit,
        runtime_version=runtime or detected.runtime_version,
        override_location=url,
    )


def install(
    toolkit: str = typer.Option(..., "--toolkit", "-t", help="Accelerator toolkit code, e.g. 511, 60, 61."),
    runtime: Optional[str] = typer.Option(None, "--runtime", help="Interpreter version (3.10 or cp310). Detected when omitted."),
    arch: Optional[str] = typer.Option(None, "--arch", help="CPU architecture. Detected when omitted."),
    os_family: Optional[str] = typer.Option(None, "--os", help="OS family. Detected when omitted."),
    url: Optional[str] = typer.Option(None, "--url", help="Override location, tried before any known one."),
    dest: Optional[Path] = typer.Option(None, "--dest", help="Destination root. Defaults to site-packages."),
    cuda_home: Optional[Path] = typer.Option(None, "--cuda-home", help="Destination for prerequisite components."),
    skip_prerequisites: bool = typer.Option(False, "--skip-prerequisites", help="Do not install prerequisite components."),
    refresh_cache: bool = typer.Option(True, "--refresh-cache/--no-refresh-cache", help="Refresh the linker cache after installing shared libraries."),
    detect: bool = typer.Option(True, "--detect/--no-detect", help="Fill missing platform inputs from this machine."),
):
    """
    Resolve, download, install and verify the artifact for this platform.
    """
    raw = build_inputs(toolkit, runtime, arch, os_family, url, detect)
    settings = Settings.from_env(refresh_cache=refresh_cache)

    try:
        outcome = core.install(
            raw,
            settings,
            destination=dest,
            component_destination=cuda_home,
            skip_prerequisites=skip_prerequisites,
            listener=_on_stage,
        )
    except InvalidPlatformInput as exc:
        err_console.print(f"[red]Invalid input:[/red] {exc}")
        raise typer.Exit(EXIT_FAILED)
    except UnsupportedCombination as exc:
        err_console.print(f"[yellow]Unsupported combination:[/yellow] {exc}")
        err_console.print(f"Provide a direct artifact location with --url (browse {ARTIFACT_INDEX_URL}).")
        raise typer.Exit(EXIT_UNSUPPORTED)
    except AllCandidatesExhausted as exc:
        err_console.print("[red]Download failed for every candidate.[/red]")
        err_console.print(trail_table(exc.failures))
        err_console.print("Retry with --url pointing at a reachable artifact.")
        raise typer.Exit(EXIT_FAILED)
    except InstallationError as exc:
        err_console.print(f"[red]Installation failed:[/red] {exc}")
        raise typer.Exit(EXIT_FAILED)
    except RunCancelled as exc:
        err_console.print(f"[yellow]{exc}[/yellow]")
        raise typer.Exit(EXIT_FAILED)
    except EdgeInstallError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(EXIT_FAILED)

    for report in outcome.reports:
        console.print(report_table(report))
        for note in report.notes:
            console.print(f"[yellow]Note:[/yellow] {note}")

    main = outcome.main
    if not outcome.verified:
        console.print(f"[yellow]Installed {main.installed_version} but verification failed.[/yellow]")
        raise typer.Exit(EXIT_NOT_VERIFIED)

    console.print(f"[green]Installed {main.installed_version} into {main.destination_path}.[/green]")
