"""
Core, reusable logic for CLI commands, decoupled from Typer.

Wires settings, registry and adapters into install pipelines. Each run
(a prerequisite component or the main artifact) gets its own workspace,
fetcher, installer and verifier, so runs share nothing but the registry.
"""
import sysconfig
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from edgeinstall.adapters.http_fetcher import HttpFetcher
from edgeinstall.adapters.installer_fs import FileSystemInstaller, LinkerCacheRefresher
from edgeinstall.adapters.probes import AcceleratorProbe, FilesProbe, ImportProbe, RuntimeInspector, VersionProbe
from edgeinstall.adapters.registry_fs import load_registry
from edgeinstall.adapters.workspace import RunWorkspace
from edgeinstall.internal.config import Settings
from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import InstallationReport, Probe
from edgeinstall.kernel.cancellation import CancellationToken
from edgeinstall.kernel.errors import UnsupportedCombination
from edgeinstall.kernel.pipeline import InstallPipeline, StageListener
from edgeinstall.kernel.platform import PlatformKey, RawPlatformInputs, describe
from edgeinstall.kernel.resolver import RegistryEntry, Resolver
from edgeinstall.kernel.verifier import Verifier

logger = get_logger(__name__)


@dataclass
class InstallOutcome:
    key: PlatformKey
    reports: List[InstallationReport] = field(default_factory=list)

    @property
    def main(self) -> Optional[InstallationReport]:
        return self.reports[-1] if self.reports else None

    @property
    def verified(self) -> bool:
        return bool(self.reports) and all(r.verified for r in self.reports)


def load_resolver(settings: Settings) -> Resolver:
    return Resolver(load_registry(settings.registry_path))


def default_destination(entry: Optional[RegistryEntry]) -> Path:
    if entry is not None and entry.destination:
        return Path(entry.destination)
    return Path(sysconfig.get_paths()["purelib"])


def build_probes(entry: Optional[RegistryEntry], settings: Settings) -> List[Probe]:
    if entry is None:
        return []
    probes: List[Probe] = []
    spec = entry.verify
    if spec.module:
        inspector = RuntimeInspector(
            module=spec.module,
            accelerator=spec.accelerator,
            python_executable=settings.python_executable,
        )
        probes.append(ImportProbe(inspector))
        probes.append(VersionProbe(inspector))
        if spec.accelerator:
            probes.append(AcceleratorProbe(inspector))
    if spec.files:
        probes.append(FilesProbe(patterns=spec.files))
    return probes


def advisory_notes(entry: Optional[RegistryEntry], key: PlatformKey) -> List[str]:
    if entry is None:
        return []
    notes = [f"companion requirement: {name} (install it with your package manager)" for name in entry.companions]
    if entry.published_python_tags and key.python_tag not in entry.published_python_tags:
        notes.append(
            f"toolkit {entry.name} artifacts are published for {', '.join(entry.published_python_tags)}; "
            f"the {key.python_tag} location may not exist"
        )
    return notes


def build_pipeline(
    resolver: Resolver,
    entry: Optional[RegistryEntry],
    key: PlatformKey,
    settings: Settings,
    workspace: Path,
    cancellation: CancellationToken,
    listener: Optional[StageListener] = None,
) -> InstallPipeline:
    fetcher = HttpFetcher(
        workspace=workspace,
        retries=settings.retries,
        retry_delay=settings.retry_delay,
        timeout=settings.timeout,
        chunk_size=settings.chunk_size,
        cancellation=cancellation,
    )
    refresher = None
    if settings.refresh_cache and entry is not None and entry.refresh_cache:
        refresher = LinkerCacheRefresher(settings.cache_refresh_command)
    installer = FileSystemInstaller(
        cache_refresher=refresher,
        layout=entry.layout if entry else None,
        notes=advisory_notes(entry, key),
    )
    return InstallPipeline(
        resolver=resolver,
        fetcher=fetcher,
        installer=installer,
        verifier=Verifier(build_probes(entry, settings)),
        cancellation=cancellation,
        listener=listener,
    )


def install(
    raw: RawPlatformInputs,
    settings: Settings,
    destination: Optional[Path] = None,
    component_destination: Optional[Path] = None,
    skip_prerequisites: bool = False,
    cancellation: Optional[CancellationToken] = None,
    listener: Optional[StageListener] = None,
    resolver: Optional[Resolver] = None,
) -> InstallOutcome:
    """
    Describe the platform, install its prerequisite components, then the
    main artifact. Unsupported combinations are rejected before any
    network access.
    """
    key = describe(raw)
    resolver = resolver or load_resolver(settings)
    cancellation = cancellation or CancellationToken()
    entry = resolver.entry_for(key)

    if not resolver.resolve(key, raw.override_location):
        raise UnsupportedCombination(key, notice=entry.notice if entry else None)

    outcome = InstallOutcome(key=key)
    workspace_root = settings.resolve_workspace_root()

    prerequisites = () if skip_prerequisites or entry is None else entry.prerequisites
    for name in prerequisites:
        component = resolver.component(name)
        logger.info("Installing prerequisite", component=name, toolkit=key.toolkit_version)
        with RunWorkspace(workspace_root, prefix=f"{name}-") as workspace:
            pipeline = build_pipeline(resolver, component, key, settings, workspace.path, cancellation, listener)
            target = component_destination or default_destination(component)
            outcome.reports.append(pipeline.run(key, target, component=name))

    with RunWorkspace(workspace_root, prefix=f"{key.toolkit_version}-") as workspace:
        pipeline = build_pipeline(resolver, entry, key, settings, workspace.path, cancellation, listener)
        target = destination or default_destination(entry)
        outcome.reports.append(pipeline.run(key, target, override_location=raw.override_location))

    return outcome
