"""
Retrieves artifact candidates over HTTP(S) or from the local filesystem,
trying them strictly in priority order with a bounded number of retries each.
"""
import hashlib
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from urllib.parse import unquote, urlparse

import requests
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from edgeinstall.internal.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
)
from edgeinstall.internal.logging import get_logger
from edgeinstall.kernel.artifacts import ArtifactCandidate, FetchResult
from edgeinstall.kernel.cancellation import CancellationToken
from edgeinstall.kernel.errors import AllCandidatesExhausted

logger = get_logger(__name__)


class _AttemptFailed(Exception):
    """One try at one candidate failed. `retryable` says whether trying again can help."""

    def __init__(self, reason: str, retryable: bool = True):
        self.reason = reason
        self.retryable = retryable
        super().__init__(reason)


def calculate_sha256(file_path: Path) -> str:
    h = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _local_source(location: str) -> Optional[Path]:
    parsed = urlparse(location)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme in ("http", "https"):
        return None
    if parsed.scheme and len(parsed.scheme) > 1:
        return None
    # bare path (a one-letter "scheme" is a Windows drive)
    return Path(location)


class HttpFetcher:
    def __init__(
        self,
        workspace: Path,
        retries: int = DEFAULT_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cancellation: Optional[CancellationToken] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self.workspace = workspace
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.cancellation = cancellation or CancellationToken()
        self._sleep = sleep
        self.trail: List[FetchResult] = []

    # ---------------------------------------------------------------------
    # Public
    # ---------------------------------------------------------------------

    def fetch(self, candidates: Sequence[ArtifactCandidate]) -> FetchResult:
        """
        Try each candidate in ascending priority and return the first success.
        Every failed candidate is kept in `self.trail`; if none succeeds,
        AllCandidatesExhausted carries that trail. Nothing partial is left in
        the workspace on any exit path.
        """
        self.trail = []
        self.workspace.mkdir(parents=True, exist_ok=True)

        for candidate in sorted(candidates, key=lambda c: c.priority):
            self.cancellation.raise_if_cancelled("fetch")
            result = self._fetch_candidate(candidate)
            self.trail.append(result)
            if result.success:
                logger.info(
                    "Fetched artifact",
                    location=candidate.location_uri,
                    priority=candidate.priority,
                    attempts=result.attempts,
                    path=str(result.local_path),
                )
                return result
            logger.warning(
                "Candidate failed",
                location=candidate.location_uri,
                priority=candidate.priority,
                attempts=result.attempts,
                reason=result.failure_reason,
            )

        raise AllCandidatesExhausted(self.trail)

    # ---------------------------------------------------------------------
    # Per-candidate retry loop
    # ---------------------------------------------------------------------

    def _fetch_candidate(self, candidate: ArtifactCandidate) -> FetchResult:
        target = self.workspace / unquote(candidate.filename)
        reason = "not attempted"
        attempts = 0

        for attempt in range(1, self.retries + 1):
            attempts = attempt
            try:
                self._retrieve(candidate, target)
                return FetchResult(candidate=candidate, success=True, local_path=target, attempts=attempt)
            except _AttemptFailed as e:
                reason = e.reason
                logger.debug(
                    f"Fetch attempt failed ({attempt}/{self.retries})",
                    location=candidate.location_uri,
                    reason=reason,
                )
                if not e.retryable:
                    break
            if attempt < self.retries:
                self._sleep(self.retry_delay)

        return FetchResult(candidate=candidate, success=False, failure_reason=reason, attempts=attempts)

    def _retrieve(self, candidate: ArtifactCandidate, target: Path) -> None:
        partial = target.with_name(f"{target.name}.part")
        try:
            source = _local_source(candidate.location_uri)
            if source is None:
                self._download(candidate.location_uri, partial)
            else:
                self._copy_local(source, partial)

            if candidate.sha256:
                actual = calculate_sha256(partial)
                if actual.lower() != candidate.sha256.lower():
                    raise _AttemptFailed(f"integrity mismatch: expected sha256 {candidate.sha256}, got {actual}")

            partial.replace(target)
        finally:
            if partial.exists():
                partial.unlink()

    def _download(self, url: str, partial: Path) -> None:
        try:
            with requests.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                with open(partial, "wb") as f:
                    for chunk in r.iter_content(chunk_size=self.chunk_size):
                        self.cancellation.raise_if_cancelled("fetch")
                        if chunk:
                            f.write(chunk)
        except HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            # a missing or forbidden artifact will not appear on retry
            retryable = status is None or not (400 <= status < 500 and status not in (408, 429))
            raise _AttemptFailed(f"HTTP error {status}", retryable=retryable) from e
        except Timeout as e:
            raise _AttemptFailed(f"network timeout: {e}") from e
        except ConnectionError as e:
            raise _AttemptFailed(f"network error: {e}") from e
        except RequestException as e:
            raise _AttemptFailed(f"request failed: {e}") from e
        except OSError as e:
            raise _AttemptFailed(f"could not write download: {e}", retryable=False) from e

    def _copy_local(self, source: Path, partial: Path) -> None:
        if not source.is_file():
            raise _AttemptFailed(f"local file not found: {source}", retryable=False)
        try:
            with open(source, "rb") as src, open(partial, "wb") as dst:
                shutil.copyfileobj(src, dst, self.chunk_size)
        except OSError as e:
            raise _AttemptFailed(f"could not copy local file: {e}", retryable=False) from e
