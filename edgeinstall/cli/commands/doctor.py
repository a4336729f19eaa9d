import os
import sys
from typing import Optional

import typer

from edgeinstall.cli import core
from edgeinstall.internal import paths
from edgeinstall.internal.config import Settings
from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.errors import InvalidPlatformInput
from edgeinstall.kernel.platform import describe, normalize_cpu_arch, normalize_os_family
from edgeinstall.runtime import system

logger = get_logger(__name__)


def doctor(
    toolkit: Optional[str] = typer.Option(None, "--toolkit", "-t", help="Also check support for this toolkit code."),
):
    """
    Check this machine against what the installer supports.
    """
    typer.echo("Running edgeinstall doctor checks...\n")
    all_passed = True

    def check(description: str, func):
        nonlocal all_passed
        typer.echo(f"- {description}...", nl=False)
        result, message = func()
        if result:
            typer.echo(f" {typer.style('PASSED', fg=typer.colors.GREEN)}")
        else:
            typer.echo(f" {typer.style('FAILED', fg=typer.colors.RED)}")
            typer.echo(f"  Reason: {message}")
            all_passed = False

    # --- System Checks ---
    raw = system.detect_inputs(toolkit_version=toolkit)
    typer.echo(typer.style("System Information:", fg=typer.colors.BLUE, bold=True))
    typer.echo(f"  Python Version: {sys.version.split()[0]} ({raw.runtime_version})")
    typer.echo(f"  OS / Architecture: {raw.os_family} / {raw.cpu_arch}")
    typer.echo(f"  CUDA: {system.get_cuda_version() or 'not found'}")
    typer.echo(f"  Total RAM: {system.get_total_ram_gb()} GB")
    typer.echo("")

    typer.echo(typer.style("Platform Checks:", fg=typer.colors.BLUE, bold=True))

    def check_platform():
        try:
            normalize_os_family(raw.os_family)
            normalize_cpu_arch(raw.cpu_arch)
            return True, ""
        except InvalidPlatformInput as e:
            return False, str(e)
    check("Supported OS and architecture", check_platform)

    settings = Settings.from_env()

    def check_registry():
        try:
            resolver = core.load_resolver(settings)
        except Exception as e:
            return False, str(e)
        return True, f"{len(resolver.registry.artifacts)} toolkit codes"
    check("Artifact registry readable", check_registry)

    if toolkit:
        def check_toolkit():
            try:
                key = describe(raw)
                resolver = core.load_resolver(settings)
            except Exception as e:
                return False, str(e)
            entry = resolver.entry_for(key)
            if not resolver.resolve(key):
                notice = entry.notice if entry and entry.notice else "no known artifact"
                return False, f"{notice} (supply one with `edgeinstall install --url ...`)"
            return True, ""
        check(f"Artifact known for toolkit {toolkit}", check_toolkit)

    # --- Local Filesystem Checks ---
    typer.echo(typer.style("\nLocal Filesystem Checks:", fg=typer.colors.BLUE, bold=True))

    def check_workspace():
        root = settings.resolve_workspace_root()
        return os.access(root, os.W_OK), f"Workspace '{root}' is not writable."
    check("Download workspace writable", check_workspace)

    def check_disk():
        free = system.get_free_disk_gb(paths.get_app_data_dir())
        return free >= 2, f"Only {free} GB free."
    check("Free disk space (2 GB)", check_disk)

    typer.echo("\n--- Doctor Check Summary ---")
    if all_passed:
        typer.echo(typer.style("All checks PASSED!", fg=typer.colors.GREEN, bold=True))
    else:
        typer.echo(typer.style("Some checks FAILED. Please review the output above.", fg=typer.colors.RED, bold=True))
        raise typer.Exit(1)
