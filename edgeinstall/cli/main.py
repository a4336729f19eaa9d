import typer

from edgeinstall.cli.commands import (
    catalog,
    doctor,
    install,
    resolve,
    version,
)
from edgeinstall.internal import paths
from edgeinstall.internal.logging import setup_logging

app = typer.Typer(
    name="edgeinstall",
    help="Platform-aware installer for pre-built ML artifacts on edge devices.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to the console as well as the log file."),
):
    setup_logging(
        log_level_name="DEBUG" if verbose else "INFO",
        log_file_path=paths.get_log_file(),
        console_output=verbose,
    )


app.command("install")(install.install)
app.command("resolve")(resolve.resolve)
app.command("list")(catalog.list_artifacts)
app.command("doctor")(doctor.doctor)
app.command("version")(version.version)

if __name__ == "__main__":
    app()
