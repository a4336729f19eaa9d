import os
from pathlib import Path

from edgeinstall.internal.constants import APP_NAME, REGISTRY_FILE_NAME


# ---------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------

def get_app_data_dir() -> Path:
    """
    Returns the application data directory.

    - EDGEINSTALL_HOME when set
    - ~/.edgeinstall otherwise
    """
    override = os.environ.get("EDGEINSTALL_HOME")
    path = Path(override) if override else Path.home() / f".{APP_NAME}"

    path.mkdir(parents=True, exist_ok=True)
    return path


def get_logs_dir() -> Path:
    path = get_app_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_workspace_root() -> Path:
    """
    Parent directory for the private per-run download workspaces.
    """
    path = get_app_data_dir() / "tmp"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_file() -> Path:
    return get_logs_dir() / f"{APP_NAME}.log.json"


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

def get_default_registry_path() -> Path:
    """
    The registry shipped inside the package.
    """
    return Path(__file__).parent.parent / "registry" / REGISTRY_FILE_NAME


if __name__ == "__main__":
    print("App Data Dir:", get_app_data_dir())
    print("Logs Dir:", get_logs_dir())
    print("Workspace Root:", get_workspace_root())
    print("Registry:", get_default_registry_path())
