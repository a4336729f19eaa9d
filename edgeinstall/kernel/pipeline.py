"""
This module defines the core install service of the edgeinstall kernel.
It drives one run through describe -> resolve -> fetch -> install -> verify,
delegating each stage to an adapter behind the contracts in
edgeinstall.kernel.artifacts.
"""
import dataclasses
import enum
from pathlib import Path
from typing import Any, Callable, Optional

from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import ArtifactFetcher, ArtifactInstaller, InstallationReport
from edgeinstall.kernel.cancellation import CancellationToken
from edgeinstall.kernel.errors import UnsupportedCombination
from edgeinstall.kernel.platform import PlatformKey
from edgeinstall.kernel.resolver import Resolver
from edgeinstall.kernel.verifier import Verifier

logger = get_logger(__name__)


class Stage(str, enum.Enum):
    PENDING = "pending"
    DESCRIBED = "described"
    RESOLVED = "resolved"
    FETCHED = "fetched"
    INSTALLED = "installed"
    VERIFIED = "verified"


_ORDER = list(Stage)

StageListener = Callable[[Stage, Any], None]


class InstallPipeline:
    """
    One pipeline instance serves one run. Stages only move forward; any
    failure other than a probe failure stops the run with the originating
    error, which carries the candidates tried and why each failed.
    """

    def __init__(
        self,
        resolver: Resolver,
        fetcher: ArtifactFetcher,
        installer: ArtifactInstaller,
        verifier: Verifier,
        cancellation: Optional[CancellationToken] = None,
        listener: Optional[StageListener] = None,
    ):
        self.resolver = resolver
        self.fetcher = fetcher
        self.installer = installer
        self.verifier = verifier
        self.cancellation = cancellation or CancellationToken()
        self.listener = listener
        self.stage = Stage.PENDING

    def run(
        self,
        key: PlatformKey,
        destination_root: Path,
        override_location: Optional[str] = None,
        component: Optional[str] = None,
    ) -> InstallationReport:
        """
        Install the artifact for `key` (or the named prerequisite component)
        under `destination_root` and return the verified report.
        """
        if self.stage is not Stage.PENDING:
            raise RuntimeError("An InstallPipeline instance runs only once")

        log = logger.bind(platform=str(key), component=component or "main")
        self._advance(Stage.DESCRIBED, key)

        # 1. Resolve
        self.cancellation.raise_if_cancelled(Stage.DESCRIBED.value)
        if component:
            candidates = self.resolver.resolve_component(component, key, override_location)
            entry = self.resolver.component(component)
        else:
            candidates = self.resolver.resolve(key, override_location)
            entry = self.resolver.entry_for(key)
        if not candidates:
            log.warning("No candidates for platform")
            raise UnsupportedCombination(key, notice=entry.notice if entry else None)
        self._advance(Stage.RESOLVED, candidates)

        # 2. Fetch
        self.cancellation.raise_if_cancelled(Stage.RESOLVED.value)
        fetch_result = self.fetcher.fetch(candidates)
        trail = tuple(self.fetcher.trail)
        self._advance(Stage.FETCHED, fetch_result)

        # 3. Install
        self.cancellation.raise_if_cancelled(Stage.FETCHED.value)
        partial = self.installer.install(fetch_result, destination_root)
        partial = dataclasses.replace(partial, fetch_trail=trail)
        self._advance(Stage.INSTALLED, partial)

        # 4. Verify. Always runs once the artifact is in place.
        report = self.verifier.verify(partial)
        self._advance(Stage.VERIFIED, report)

        log.info(
            "Run finished",
            version=report.installed_version,
            destination=str(report.destination_path),
            verified=report.verified,
            failed_checks=report.failed_checks,
        )
        return report

    def _advance(self, stage: Stage, payload: Any) -> None:
        if _ORDER.index(stage) != _ORDER.index(self.stage) + 1:
            raise RuntimeError(f"Illegal stage transition {self.stage.value} -> {stage.value}")
        self.stage = stage
        logger.debug("Stage reached", stage=stage.value)
        if self.listener is not None:
            self.listener(stage, payload)
