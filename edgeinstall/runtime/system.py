# System detection for filling in platform inputs the caller did not give
import platform
import re
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

import psutil

from edgeinstall.kernel.platform import RawPlatformInputs

DEFAULT_CUDA_HOME = Path("/usr/local/cuda")


def get_os_info() -> str:
    return platform.system()


def get_cpu_arch() -> str:
    return platform.machine()


def get_python_tag() -> str:
    return f"cp{sys.version_info[0]}{sys.version_info[1]}"


def get_total_ram_gb() -> float:
    return round(psutil.virtual_memory().total / (1024**3), 2)


def get_free_disk_gb(path: Path) -> float:
    return round(psutil.disk_usage(str(path)).free / (1024**3), 2)


def get_cuda_version(cuda_home: Path = DEFAULT_CUDA_HOME) -> Optional[str]:
    """MAJOR.MINOR of the CUDA toolkit, from version.txt or `nvcc --version`."""
    version_file = cuda_home / "version.txt"
    if version_file.is_file():
        match = re.search(r"\d+\.\d+", version_file.read_text(errors="replace"))
        if match:
            return match.group(0)

    nvcc = shutil.which("nvcc") or (str(cuda_home / "bin" / "nvcc") if (cuda_home / "bin" / "nvcc").exists() else None)
    if nvcc:
        try:
            out = subprocess.run([nvcc, "--version"], capture_output=True, text=True, timeout=30).stdout
        except (OSError, subprocess.TimeoutExpired):
            return None
        match = re.search(r"release (\d+\.\d+)", out)
        if match:
            return match.group(1)
    return None


def detect_inputs(
    toolkit_version: Optional[str] = None,
    override_location: Optional[str] = None,
) -> RawPlatformInputs:
    """
    Raw inputs describing this machine. The toolkit code cannot be detected
    reliably, so it is always passed through from the caller.
    """
    return RawPlatformInputs(
        os_family=get_os_info(),
        cpu_arch=get_cpu_arch(),
        toolkit_version=toolkit_version,
        runtime_version=get_python_tag(),
        override_location=override_location,
    )


if __name__ == "__main__":
    print(f"OS: {get_os_info()}")
    print(f"Architecture: {get_cpu_arch()}")
    print(f"Python tag: {get_python_tag()}")
    print(f"CUDA: {get_cuda_version()}")
    print(f"Total RAM: {get_total_ram_gb()} GB")
