"""
Defines the data contracts passed between pipeline stages, and the ports
(protocols) that fetcher, installer and probe adapters must provide.

Stages only hand each other these immutable records: a later stage never
reaches back to re-derive what an earlier stage produced.
"""
import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence


class ArtifactFormat(str, enum.Enum):
    WHEEL = "wheel"
    TAR = "tar"

    @classmethod
    def parse(cls, value: str) -> "ArtifactFormat":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown artifact format: {value!r}") from None


@dataclass(frozen=True)
class ArtifactCandidate:
    """
    One possible source location for an artifact. Lower priority is tried first;
    priority 0 is reserved for a location supplied by the user.
    """
    location_uri: str
    expected_format: ArtifactFormat
    priority: int
    sha256: Optional[str] = None
    version: Optional[str] = None
    label: str = ""

    @property
    def filename(self) -> str:
        name = self.location_uri.rstrip("/").rsplit("/", 1)[-1]
        return name.split("?", 1)[0] or "artifact"


@dataclass(frozen=True)
class FetchResult:
    candidate: ArtifactCandidate
    success: bool
    local_path: Optional[Path] = None
    failure_reason: Optional[str] = None
    attempts: int = 0

    def __post_init__(self):
        if self.success and self.local_path is None:
            raise ValueError("a successful FetchResult needs a local_path")
        if not self.success and not self.failure_reason:
            raise ValueError("a failed FetchResult needs a failure_reason")


@dataclass(frozen=True)
class InstallationReport:
    """
    Terminal record of a run. The installer returns it partial
    (verified=False, no diagnostics); the verifier returns the completed copy.
    """
    installed_version: Optional[str]
    destination_path: Path
    verified: bool = False
    diagnostics: Mapping[str, bool] = field(default_factory=dict)
    artifact: Optional[ArtifactCandidate] = None
    installed_files: tuple[Path, ...] = ()
    cache_refreshed: bool = False
    fetch_trail: tuple[FetchResult, ...] = ()
    details: Mapping[str, str] = field(default_factory=dict)
    notes: tuple[str, ...] = ()

    @property
    def failed_checks(self) -> list[str]:
        return [name for name, passed in self.diagnostics.items() if not passed]


class ArtifactFetcher(Protocol):
    """
    Retrieves the first usable candidate, in priority order. After each
    call `trail` holds one FetchResult per candidate attempted, in order.
    """
    trail: Sequence[FetchResult]

    def fetch(self, candidates: Sequence[ArtifactCandidate]) -> FetchResult:
        ...


class ArtifactInstaller(Protocol):
    """Places a fetched artifact under a destination root."""

    def install(self, fetch_result: FetchResult, destination_root: Path) -> InstallationReport:
        ...


@dataclass(frozen=True)
class ProbeOutcome:
    passed: bool
    detail: str = ""


class Probe(Protocol):
    """
    An independent post-install check. `required` probes decide the
    overall verified flag; optional ones are informational.
    """
    name: str
    required: bool

    def run(self, report: InstallationReport) -> ProbeOutcome:
        ...
