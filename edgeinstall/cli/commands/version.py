import importlib.metadata

import typer

from edgeinstall.internal.logging import get_logger

logger = get_logger(__name__)


def version():
    """
    Show the edgeinstall version.
    """
    try:
        package_version = importlib.metadata.version("edgeinstall")
        typer.echo(f"edgeinstall version: {package_version}")
    except importlib.metadata.PackageNotFoundError:
        typer.echo("edgeinstall is not installed or version metadata not found.")
        typer.echo("Please install the package first (e.g., pip install . or pip install -e .)")
        logger.warning("edgeinstall package version not found.")
        raise typer.Exit(1)
