"""
Probes that check an installed artifact is actually usable.

Runtime probes import the artifact in a separate interpreter with the
destination on its import path, so a broken native library cannot take
the installer down with it. One inspection is shared by all runtime probes.
"""
import json
import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import InstallationReport, ProbeOutcome

logger = get_logger(__name__)

_INSPECT_SNIPPET = """
import importlib, json
out = {{"imported": False}}
try:
    mod = importlib.import_module({module!r})
    out["imported"] = True
    out["version"] = str(getattr(mod, "__version__", ""))
    check = {accelerator!r}
    if check:
        target = mod
        for attr in check.split("."):
            target = getattr(target, attr)
        out["accelerator"] = bool(target())
except Exception as e:
    out["error"] = repr(e)
print(json.dumps(out))
"""


class RuntimeInspector:
    """
    Imports `module` in a child interpreter and reports what it found:
    {"imported": bool, "version": str, "accelerator": bool, "error": str}.

    `accelerator` is a dotted path to a no-argument callable under the
    module (e.g. "cuda.is_available"); it is looked up attribute by
    attribute, never evaluated as an expression.
    """

    def __init__(
        self,
        module: str,
        accelerator: Optional[str] = None,
        python_executable: str = sys.executable,
        timeout: float = 300,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        self.module = module
        self.accelerator = accelerator
        self.python_executable = python_executable
        self.timeout = timeout
        self._runner = runner
        self._cache: Dict[Path, dict] = {}

    def inspect(self, destination: Path) -> dict:
        if destination in self._cache:
            return self._cache[destination]

        snippet = _INSPECT_SNIPPET.format(
            module=self.module,
            accelerator=self.accelerator or "",
        )
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(destination), env.get("PYTHONPATH")]))

        try:
            result = self._runner(
                [self.python_executable, "-c", snippet],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            data = {"imported": False, "error": f"import timed out after {self.timeout}s"}
        except OSError as e:
            data = {"imported": False, "error": f"cannot run {self.python_executable}: {e}"}
        else:
            data = self._parse(result)

        logger.debug("Runtime inspection", module=self.module, destination=str(destination), result=data)
        self._cache[destination] = data
        return data

    @staticmethod
    def _parse(result: subprocess.CompletedProcess) -> dict:
        lines = [line for line in (result.stdout or "").splitlines() if line.strip()]
        if result.returncode != 0 or not lines:
            data = {"imported": False, "error": (result.stderr or "").strip() or f"exit code {result.returncode}"}
        else:
            try:
                data = json.loads(lines[-1])
            except json.JSONDecodeError:
                data = {"imported": False, "error": f"unreadable inspection output: {lines[-1]!r}"}
        return data


@dataclass
class ImportProbe:
    inspector: RuntimeInspector
    name: str = "import"
    required: bool = True

    def run(self, report: InstallationReport) -> ProbeOutcome:
        data = self.inspector.inspect(report.destination_path)
        if data.get("imported"):
            return ProbeOutcome(True, f"{self.inspector.module} imported")
        return ProbeOutcome(False, data.get("error", "import failed"))


@dataclass
class VersionProbe:
    inspector: RuntimeInspector
    expected: Optional[str] = None
    name: str = "version"
    required: bool = True

    def run(self, report: InstallationReport) -> ProbeOutcome:
        expected = self.expected or report.installed_version
        if not expected:
            return ProbeOutcome(False, "no expected version known")
        data = self.inspector.inspect(report.destination_path)
        reported = data.get("version")
        return ProbeOutcome(reported == expected, f"reported {reported!r}, expected {expected!r}")


@dataclass
class AcceleratorProbe:
    inspector: RuntimeInspector
    name: str = "accelerator"
    required: bool = False

    def run(self, report: InstallationReport) -> ProbeOutcome:
        data = self.inspector.inspect(report.destination_path)
        available = bool(data.get("accelerator"))
        return ProbeOutcome(available, f"{self.inspector.module}.{self.inspector.accelerator}() -> {available}")


@dataclass
class FilesProbe:
    """Every glob pattern must match at least one path under the destination."""
    patterns: Sequence[str] = field(default_factory=tuple)
    name: str = "files"
    required: bool = True

    def run(self, report: InstallationReport) -> ProbeOutcome:
        missing = [p for p in self.patterns if not any(report.destination_path.glob(p))]
        if missing:
            return ProbeOutcome(False, f"missing: {', '.join(missing)}")
        return ProbeOutcome(True, f"{len(self.patterns)} pattern(s) matched")
