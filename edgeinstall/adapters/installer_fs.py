"""
Places a fetched artifact under a destination root.

Wheels are unpacked in site-packages layout; tar archives are unpacked
through a declared directory layout (e.g. the archive's lib/ goes to lib64/).
Every file is written to a sibling temp file and moved over its target,
so re-installing the same artifact yields the same tree. The linker-cache
refresh is a separate step after placement, recorded in the report.
A wheel's own dependencies are not installed; they are listed in the
report notes.
"""
import os
import re
import subprocess
import tarfile
import zipfile
from dataclasses import dataclass
from email.message import Message
from email.parser import Parser
from pathlib import Path, PurePosixPath
from typing import IO, Callable, Iterator, List, Mapping, Optional, Sequence

import psutil

from edgeinstall.internal.constants import DEFAULT_CACHE_REFRESH_COMMAND, DISK_SPACE_BUFFER
from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import ArtifactFormat, FetchResult, InstallationReport
from edgeinstall.kernel.errors import InstallationError

logger = get_logger(__name__)

_EXTRA_MARKER = re.compile(r"\bextra\s*==")


# ---------------------------------------------------------------------
# Cache refresh
# ---------------------------------------------------------------------

class LinkerCacheRefresher:
    """Runs the dynamic-linker cache rebuild (ldconfig by default)."""

    def __init__(self, command: Sequence[str] = DEFAULT_CACHE_REFRESH_COMMAND, timeout: float = 120):
        self.command = list(command)
        self.timeout = timeout

    def refresh(self, destination: Path) -> None:
        logger.info("Refreshing linker cache", command=" ".join(self.command), destination=str(destination))
        try:
            result = subprocess.run(
                self.command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise InstallationError(f"Cache refresh command not found: {self.command[0]}", destination) from e
        except subprocess.TimeoutExpired as e:
            raise InstallationError(f"Cache refresh timed out: {' '.join(self.command)}", destination) from e

        if result.returncode != 0:
            raise InstallationError(
                f"Cache refresh failed ({result.returncode}): {result.stderr.strip()}", destination
            )


# ---------------------------------------------------------------------
# Archive readers
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class _Member:
    relative: PurePosixPath
    size: int
    open: Callable[[], IO[bytes]]
    link_target: Optional[str] = None
    mode: Optional[int] = None


def detect_format(path: Path) -> Optional[ArtifactFormat]:
    """The format of a file on disk, judged from its content, not its name."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as zf:
            if any(_is_wheel_marker(name) for name in zf.namelist()):
                return ArtifactFormat.WHEEL
        return None
    if tarfile.is_tarfile(path):
        return ArtifactFormat.TAR
    return None


def _is_wheel_marker(name: str) -> bool:
    parts = PurePosixPath(name).parts
    return len(parts) == 2 and parts[0].endswith(".dist-info") and parts[1] == "WHEEL"


def _safe_relative(name: str) -> PurePosixPath:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise InstallationError(f"Refusing unsafe archive member: {name}")
    return path


def _wheel_metadata(path: Path) -> Optional[Message]:
    with zipfile.ZipFile(path) as zf:
        for name in zf.namelist():
            parts = PurePosixPath(name).parts
            if len(parts) == 2 and parts[0].endswith(".dist-info") and parts[1] == "METADATA":
                return Parser().parsestr(zf.read(name).decode("utf-8", errors="replace"), headersonly=True)
    return None


def wheel_version(path: Path) -> Optional[str]:
    metadata = _wheel_metadata(path)
    return metadata.get("Version") if metadata is not None else None


def wheel_requirements(path: Path) -> List[str]:
    """
    The wheel's Requires-Dist entries, as written, minus those that only
    apply to an extra. Unpacking a wheel does not install these.
    """
    metadata = _wheel_metadata(path)
    if metadata is None:
        return []
    requirements = []
    for value in metadata.get_all("Requires-Dist") or []:
        requirement, _, marker = value.partition(";")
        if _EXTRA_MARKER.search(marker):
            continue
        requirements.append(requirement.strip())
    return requirements


def _wheel_members(zf: zipfile.ZipFile) -> Iterator[_Member]:
    for info in zf.infolist():
        if info.is_dir():
            continue
        relative = _safe_relative(info.filename)
        parts = relative.parts
        if parts[0].endswith(".data"):
            # only library code is placed; scripts/headers/data need an interpreter-aware installer
            if len(parts) < 3 or parts[1] not in ("purelib", "platlib"):
                logger.debug("Skipping wheel data member", member=info.filename)
                continue
            relative = PurePosixPath(*parts[2:])
        mode = (info.external_attr >> 16) & 0o777 or None
        yield _Member(relative=relative, size=info.file_size, open=lambda info=info: zf.open(info), mode=mode)


def _tar_members(tf: tarfile.TarFile, layout: Mapping[str, str]) -> Iterator[_Member]:
    members = [m for m in tf.getmembers() if m.isfile() or m.issym()]
    names = [_safe_relative(m.name) for m in members]

    # archives ship a single top directory (e.g. libcusparse_lt-...-archive/); strip it
    tops = {n.parts[0] for n in names if len(n.parts) > 1}
    strip = len(tops) == 1 and all(len(n.parts) > 1 for n in names)

    for member, name in zip(members, names):
        parts = name.parts[1:] if strip else name.parts
        if layout:
            if parts[0] not in layout:
                continue
            parts = PurePosixPath(layout[parts[0]]).parts + tuple(parts[1:])
        relative = PurePosixPath(*parts)
        if member.issym():
            yield _Member(relative=relative, size=0, open=lambda: None, link_target=member.linkname)
        else:
            yield _Member(
                relative=relative,
                size=member.size,
                open=lambda member=member: tf.extractfile(member),
                mode=member.mode & 0o777,
            )


# ---------------------------------------------------------------------
# Installer
# ---------------------------------------------------------------------

class FileSystemInstaller:
    def __init__(
        self,
        cache_refresher: Optional[LinkerCacheRefresher] = None,
        layout: Optional[Mapping[str, str]] = None,
        notes: Sequence[str] = (),
    ):
        self.cache_refresher = cache_refresher
        self.layout = dict(layout or {})
        self.notes = tuple(notes)

    def install(self, fetch_result: FetchResult, destination_root: Path) -> InstallationReport:
        if not fetch_result.success or fetch_result.local_path is None:
            raise InstallationError("Cannot install from a failed fetch", destination_root)

        candidate = fetch_result.candidate
        artifact_path = fetch_result.local_path
        actual = detect_format(artifact_path)
        if actual != candidate.expected_format:
            raise InstallationError(
                f"Format mismatch for {artifact_path.name}: expected {candidate.expected_format.value}, "
                f"found {actual.value if actual else 'unrecognized content'}",
                destination_root,
            )

        destination = self._prepare_destination(destination_root)

        if actual == ArtifactFormat.WHEEL:
            with zipfile.ZipFile(artifact_path) as zf:
                installed, created = self._place(list(_wheel_members(zf)), destination)
            version = candidate.version or wheel_version(artifact_path)
            requirements = wheel_requirements(artifact_path)
        else:
            with tarfile.open(artifact_path) as tf:
                installed, created = self._place(list(_tar_members(tf, self.layout)), destination)
            version = candidate.version
            requirements = []

        notes = self.notes
        if requirements:
            notes += (f"requires: {', '.join(requirements)} (install them with your package manager)",)

        cache_refreshed = False
        if self.cache_refresher is not None:
            try:
                self.cache_refresher.refresh(destination)
            except InstallationError:
                self._rollback(created)
                raise
            cache_refreshed = True

        logger.info(
            "Installed artifact",
            artifact=artifact_path.name,
            destination=str(destination),
            files=len(installed),
            version=version,
            cache_refreshed=cache_refreshed,
        )
        return InstallationReport(
            installed_version=version,
            destination_path=destination,
            artifact=candidate,
            installed_files=tuple(sorted(installed)),
            cache_refreshed=cache_refreshed,
            details={"format": actual.value, "source": candidate.location_uri},
            notes=notes,
        )

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    def _prepare_destination(self, destination_root: Path) -> Path:
        destination = Path(destination_root)
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallationError(f"Cannot create destination {destination}: {e}", destination) from e
        if not os.access(destination, os.W_OK | os.X_OK):
            raise InstallationError(f"Destination is not writable: {destination}", destination)
        return destination

    def _check_disk_space(self, members: List[_Member], destination: Path) -> None:
        required = sum(m.size for m in members) * DISK_SPACE_BUFFER
        free = psutil.disk_usage(str(destination)).free
        if free < required:
            raise InstallationError(
                f"Not enough disk space in {destination}: required {required / 1024**3:.2f}GB, "
                f"available {free / 1024**3:.2f}GB",
                destination,
            )

    def _place(self, members: List[_Member], destination: Path) -> tuple[List[Path], List[Path]]:
        self._check_disk_space(members, destination)

        created: List[Path] = []
        installed: List[Path] = []
        try:
            for member in members:
                target = destination.joinpath(*member.relative.parts)
                existed = target.exists() or target.is_symlink()
                self._write_member(member, target, destination, created)
                if not existed:
                    created.append(target)
                installed.append(target)
        except InstallationError:
            self._rollback(created)
            raise
        except OSError as e:
            self._rollback(created)
            raise InstallationError(f"Failed to write into {destination}: {e}", destination) from e
        return installed, created

    def _write_member(self, member: _Member, target: Path, destination: Path, created: List[Path]) -> None:
        for parent in reversed(target.relative_to(destination).parents):
            directory = destination / parent
            if not directory.exists():
                directory.mkdir()
                created.append(directory)

        if member.link_target is not None:
            resolved = (target.parent / member.link_target).resolve()
            if os.path.isabs(member.link_target) or not resolved.is_relative_to(destination.resolve()):
                raise InstallationError(f"Refusing symlink leaving destination: {member.relative}", destination)
            if target.is_symlink() or target.exists():
                target.unlink()
            os.symlink(member.link_target, target)
            return

        staging = target.with_name(f".{target.name}.edgeinstall-tmp")
        try:
            with member.open() as src, open(staging, "wb") as dst:
                for chunk in iter(lambda: src.read(1024 * 1024), b""):
                    dst.write(chunk)
            if member.mode:
                os.chmod(staging, member.mode)
            if target.is_symlink():
                target.unlink()
            os.replace(staging, target)
        finally:
            if staging.exists():
                staging.unlink()

    def _rollback(self, created: List[Path]) -> None:
        # newest first so directories are empty by the time they are removed
        for path in reversed(created):
            try:
                if path.is_dir() and not path.is_symlink():
                    path.rmdir()
                else:
                    path.unlink()
            except OSError as e:
                logger.warning("Could not remove partial install file", path=str(path), error=str(e))
