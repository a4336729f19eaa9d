"""
Post-install verification.

The verifier never fails a run: every probe outcome, including a probe
that raised, is recorded as data in the report's diagnostics. A report is
only marked verified when at least one required probe ran and all of them passed.
"""
import dataclasses
from typing import Sequence

from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import InstallationReport, Probe, ProbeOutcome

logger = get_logger(__name__)


class Verifier:
    def __init__(self, probes: Sequence[Probe]):
        self.probes = list(probes)

    def verify(self, report: InstallationReport) -> InstallationReport:
        diagnostics = dict(report.diagnostics)
        details = dict(report.details)
        required_passed = True
        required_ran = False

        for probe in self.probes:
            try:
                outcome = probe.run(report)
                if not isinstance(outcome, ProbeOutcome):
                    outcome = ProbeOutcome(passed=bool(outcome))
            except Exception as e:
                logger.warning("Probe raised", probe=probe.name, error=repr(e))
                outcome = ProbeOutcome(passed=False, detail=f"probe error: {e!r}")

            diagnostics[probe.name] = outcome.passed
            if outcome.detail:
                details[f"probe.{probe.name}"] = outcome.detail
            if probe.required:
                required_ran = True
                if not outcome.passed:
                    required_passed = False

            logger.info(
                "Probe finished",
                probe=probe.name,
                required=probe.required,
                passed=outcome.passed,
                detail=outcome.detail,
            )

        return dataclasses.replace(
            report,
            verified=required_ran and required_passed,
            diagnostics=diagnostics,
            details=details,
        )
