import shutil
import tempfile
from pathlib import Path
from typing import Optional

from edgeinstall.internal.logging import get_logger

logger = get_logger(__name__)


class RunWorkspace:
    """
    A private temporary directory owned by a single pipeline run.

    Runs never share a workspace, so parallel runs need no locking. The
    directory and everything in it is removed when the run ends, whatever
    the outcome.
    """

    def __init__(self, root: Optional[Path] = None, prefix: str = "run-"):
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        self.path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))

    def cleanup(self) -> None:
        if self.path.exists():
            shutil.rmtree(self.path, ignore_errors=True)
            logger.debug("Removed run workspace", path=str(self.path))

    def __enter__(self) -> "RunWorkspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
