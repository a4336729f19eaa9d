"""
Platform descriptor: normalizes free-form platform inputs into a PlatformKey.

This is a pure mapping. Detection of the current machine lives in
edgeinstall.runtime.system and only ever fills RawPlatformInputs; nothing
here falls back to a default when an input is missing or malformed.
"""
import re
from dataclasses import dataclass
from typing import Optional

from edgeinstall.internal.constants import (
    ARCH_ALIASES,
    SUPPORTED_ARCHITECTURES,
    SUPPORTED_OS_FAMILIES,
    TOOLKIT_CODE_PATTERN,
)
from edgeinstall.kernel.errors import InvalidPlatformInput

_TOOLKIT_RE = re.compile(TOOLKIT_CODE_PATTERN)
_RUNTIME_RE = re.compile(r"^(?:cp)?(\d)\.?(\d{1,2})$")


@dataclass(frozen=True)
class RawPlatformInputs:
    """What the caller (CLI flags, environment, a prompt) hands to the descriptor."""
    os_family: Optional[str] = None
    cpu_arch: Optional[str] = None
    toolkit_version: Optional[str] = None
    runtime_version: Optional[str] = None
    override_location: Optional[str] = None


@dataclass(frozen=True)
class PlatformKey:
    os_family: str
    cpu_arch: str
    toolkit_version: str
    runtime_version: str

    @property
    def python_tag(self) -> str:
        return self.runtime_version

    def __str__(self) -> str:
        return f"{self.os_family}/{self.cpu_arch} toolkit={self.toolkit_version} runtime={self.runtime_version}"


def _clean(value: Optional[str]) -> str:
    return "".join((value or "").split())


def _require(field: str, value: Optional[str]) -> str:
    cleaned = _clean(value)
    if not cleaned:
        raise InvalidPlatformInput(field, value, "value is required")
    return cleaned


def normalize_os_family(value: Optional[str]) -> str:
    os_family = _require("os_family", value).lower()
    if os_family not in SUPPORTED_OS_FAMILIES:
        raise InvalidPlatformInput("os_family", value, f"supported: {', '.join(sorted(SUPPORTED_OS_FAMILIES))}")
    return os_family


def normalize_cpu_arch(value: Optional[str]) -> str:
    arch = _require("cpu_arch", value).lower()
    arch = ARCH_ALIASES.get(arch, arch)
    if arch not in SUPPORTED_ARCHITECTURES:
        raise InvalidPlatformInput("cpu_arch", value, f"supported: {', '.join(sorted(SUPPORTED_ARCHITECTURES))}")
    return arch


def normalize_toolkit_version(value: Optional[str]) -> str:
    code = _require("toolkit_version", value)
    if not _TOOLKIT_RE.match(code):
        raise InvalidPlatformInput("toolkit_version", value, "expected a short numeric code such as 511, 60 or 61")
    return code


def normalize_runtime_version(value: Optional[str]) -> str:
    """'3.10', '310' and 'cp310' all become the interpreter tag 'cp310'."""
    runtime = _require("runtime_version", value).lower()
    match = _RUNTIME_RE.match(runtime)
    if not match:
        raise InvalidPlatformInput("runtime_version", value, "expected an interpreter version such as 3.10 or cp310")
    major, minor = match.groups()
    return f"cp{major}{minor}"


def describe(raw: RawPlatformInputs) -> PlatformKey:
    return PlatformKey(
        os_family=normalize_os_family(raw.os_family),
        cpu_arch=normalize_cpu_arch(raw.cpu_arch),
        toolkit_version=normalize_toolkit_version(raw.toolkit_version),
        runtime_version=normalize_runtime_version(raw.runtime_version),
    )
