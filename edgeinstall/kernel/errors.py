"""
Error taxonomy of the install pipeline.

Every abort carries enough context (the candidates tried, in order, and why
each one failed) for a human to retry with an explicit override location.
"""
from typing import Sequence


class EdgeInstallError(Exception):
    """Base class for every pipeline failure."""


class InvalidPlatformInput(EdgeInstallError):
    """Raw platform inputs could not be normalized. The user must correct them."""

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class UnsupportedCombination(EdgeInstallError):
    """
    No candidate exists for the platform. Not a fault of the environment:
    the caller decides whether to ask for an override location or abort.
    """

    def __init__(self, key, notice: str | None = None):
        self.key = key
        self.notice = notice
        message = f"No known artifact for toolkit {key.toolkit_version} ({key.runtime_version}, {key.cpu_arch})"
        if notice:
            message = f"{message}: {notice}"
        super().__init__(message)


class AllCandidatesExhausted(EdgeInstallError):
    """Every candidate location failed. `failures` keeps the ordered trail."""

    def __init__(self, failures: Sequence):
        self.failures = list(failures)
        tried = "; ".join(
            f"[{f.candidate.priority}] {f.candidate.location_uri}: {f.failure_reason}" for f in self.failures
        )
        super().__init__(f"All {len(self.failures)} candidate(s) failed: {tried or 'no candidates'}")


class InstallationError(EdgeInstallError):
    """Local environment problem while placing an artifact: permissions, disk, format."""

    def __init__(self, message: str, destination=None):
        self.destination = destination
        super().__init__(message)


class RunCancelled(EdgeInstallError):
    """The run was cancelled at a stage boundary or during a download."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Run cancelled during {stage}")
