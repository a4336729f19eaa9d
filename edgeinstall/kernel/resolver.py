"""
Maps a PlatformKey to an ordered list of artifact candidates.

The mapping is declarative (see edgeinstall/registry/artifacts.json):
publishers move and rename artifacts over time, so locations live in data
and a user-supplied override always goes first.
"""
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Mapping, Optional

from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import ArtifactCandidate, ArtifactFormat
from edgeinstall.kernel.platform import PlatformKey

logger = get_logger(__name__)

OVERRIDE_PRIORITY = 0


@dataclass(frozen=True)
class LocationTemplate:
    """A location URI that may contain {python_tag}, {toolkit_version}, {cpu_arch} or {os_family}."""
    uri: str
    version: Optional[str] = None
    sha256: Optional[str] = None
    label: str = ""

    def render(self, key: PlatformKey) -> str:
        return self.uri.format(
            python_tag=key.python_tag,
            toolkit_version=key.toolkit_version,
            cpu_arch=key.cpu_arch,
            os_family=key.os_family,
        )


@dataclass(frozen=True)
class VerifySpec:
    module: Optional[str] = None
    # dotted path to a callable under `module`, e.g. "cuda.is_available"
    accelerator: Optional[str] = None
    files: tuple[str, ...] = ()


@dataclass(frozen=True)
class RegistryEntry:
    name: str
    package: str
    format: ArtifactFormat
    description: str = ""
    locations: tuple[LocationTemplate, ...] = ()
    version: Optional[str] = None
    published_python_tags: tuple[str, ...] = ()
    prerequisites: tuple[str, ...] = ()
    companions: tuple[str, ...] = ()
    notice: Optional[str] = None
    destination: Optional[str] = None
    layout: Mapping[str, str] = field(default_factory=dict)
    # rebuild the linker cache after placing files (shared libraries outside site-packages)
    refresh_cache: bool = False
    verify: VerifySpec = field(default_factory=VerifySpec)


@dataclass(frozen=True)
class Registry:
    artifacts: Mapping[str, RegistryEntry]
    components: Mapping[str, RegistryEntry] = field(default_factory=dict)


def infer_format(location: str, default: ArtifactFormat = ArtifactFormat.WHEEL) -> ArtifactFormat:
    suffixes = PurePosixPath(location.split("?", 1)[0]).suffixes
    if suffixes and suffixes[-1] == ".whl":
        return ArtifactFormat.WHEEL
    if ".tar" in suffixes or (suffixes and suffixes[-1] in (".tgz", ".txz")):
        return ArtifactFormat.TAR
    return default


class Resolver:
    def __init__(self, registry: Registry):
        self._registry = registry

    @property
    def registry(self) -> Registry:
        return self._registry

    def entry_for(self, key: PlatformKey) -> Optional[RegistryEntry]:
        return self._registry.artifacts.get(key.toolkit_version)

    def component(self, name: str) -> Optional[RegistryEntry]:
        return self._registry.components.get(name)

    def resolve(self, key: PlatformKey, override_location: Optional[str] = None) -> list[ArtifactCandidate]:
        """
        Candidates for the artifact matching `key`, priority ascending.

        An unknown toolkit version (or a known one with nothing published)
        yields an empty list; the caller treats that as an unsupported
        combination, not as an error.
        """
        entry = self.entry_for(key)
        candidates = self._candidates(entry, key, override_location)
        logger.debug(
            "Resolved candidates",
            platform=str(key),
            known=entry is not None,
            override=bool(override_location),
            count=len(candidates),
        )
        return candidates

    def resolve_component(
        self, name: str, key: PlatformKey, override_location: Optional[str] = None
    ) -> list[ArtifactCandidate]:
        entry = self.component(name)
        return self._candidates(entry, key, override_location)

    def _candidates(
        self, entry: Optional[RegistryEntry], key: PlatformKey, override_location: Optional[str]
    ) -> list[ArtifactCandidate]:
        candidates = []
        override = (override_location or "").strip()
        if override:
            expected = entry.format if entry else infer_format(override)
            candidates.append(ArtifactCandidate(
                location_uri=override,
                expected_format=expected,
                priority=OVERRIDE_PRIORITY,
                label="override",
            ))

        if entry is not None:
            for priority, location in enumerate(entry.locations, start=OVERRIDE_PRIORITY + 1):
                candidates.append(ArtifactCandidate(
                    location_uri=location.render(key),
                    expected_format=entry.format,
                    priority=priority,
                    sha256=location.sha256,
                    version=location.version or entry.version,
                    label=location.label or entry.name,
                ))

        return sorted(candidates, key=lambda c: c.priority)
