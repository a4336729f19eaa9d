import hashlib

import pytest
import requests

from edgeinstall.adapters.http_fetcher import HttpFetcher, calculate_sha256
from edgeinstall.kernel.artifacts import ArtifactCandidate, ArtifactFormat
from edgeinstall.kernel.cancellation import CancellationToken
from edgeinstall.kernel.errors import AllCandidatesExhausted, RunCancelled
from tests.kernel.mocks import CancelAfter

PRIMARY = "https://downloads.example.com/jp/v61/fakelib-1.0-cp310-cp310-linux_aarch64.whl"
MIRROR = "https://mirror.example.com/fakelib-1.0-cp310-cp310-linux_aarch64.whl"
PAYLOAD = b"wheel-bytes" * 100

# --- Fixtures ---

@pytest.fixture
def workspace(tmp_path):
    return tmp_path / "run"


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fetcher(workspace, sleeps):
    return HttpFetcher(workspace=workspace, retries=3, retry_delay=0.5, sleep=sleeps.append)


def _candidate(uri, priority=1, sha256=None):
    return ArtifactCandidate(location_uri=uri, expected_format=ArtifactFormat.WHEEL, priority=priority, sha256=sha256)


def _leftovers(workspace):
    return sorted(p.name for p in workspace.iterdir()) if workspace.exists() else []


# --- Success ---

def test_first_candidate_is_downloaded(fetcher, workspace, requests_mock):
    requests_mock.get(PRIMARY, content=PAYLOAD)

    result = fetcher.fetch([_candidate(PRIMARY)])

    assert result.success is True
    assert result.attempts == 1
    assert result.local_path.read_bytes() == PAYLOAD
    assert result.local_path.parent == workspace
    assert _leftovers(workspace) == [result.local_path.name]
    assert fetcher.trail == [result]


def test_candidates_are_tried_in_priority_order(fetcher, requests_mock):
    requests_mock.get(PRIMARY, status_code=404)
    requests_mock.get(MIRROR, content=PAYLOAD)

    result = fetcher.fetch([_candidate(MIRROR, priority=2), _candidate(PRIMARY, priority=1)])

    assert [r.url for r in requests_mock.request_history] == [PRIMARY, MIRROR]
    assert result.candidate.location_uri == MIRROR
    assert [r.success for r in fetcher.trail] == [False, True]


def test_transient_errors_are_retried(fetcher, sleeps, requests_mock):
    requests_mock.get(PRIMARY, [
        {"status_code": 503},
        {"exc": requests.exceptions.ConnectionError},
        {"content": PAYLOAD},
    ])

    result = fetcher.fetch([_candidate(PRIMARY)])

    assert result.success is True
    assert result.attempts == 3
    assert sleeps == [0.5, 0.5]


def test_matching_checksum_is_accepted(fetcher, requests_mock):
    requests_mock.get(PRIMARY, content=PAYLOAD)
    digest = hashlib.sha256(PAYLOAD).hexdigest()

    result = fetcher.fetch([_candidate(PRIMARY, sha256=digest.upper())])

    assert result.success is True
    assert calculate_sha256(result.local_path) == digest


def test_local_file_location_is_copied(fetcher, tmp_path):
    source = tmp_path / "local.whl"
    source.write_bytes(PAYLOAD)

    result = fetcher.fetch([_candidate(source.as_uri(), priority=0), _candidate(PRIMARY)])

    assert result.candidate.priority == 0
    assert result.local_path.read_bytes() == PAYLOAD


# --- Failures ---

def test_client_errors_are_not_retried(fetcher, sleeps, requests_mock):
    requests_mock.get(PRIMARY, status_code=404)

    with pytest.raises(AllCandidatesExhausted) as exc_info:
        fetcher.fetch([_candidate(PRIMARY)])

    failure = exc_info.value.failures[0]
    assert failure.failure_reason == "HTTP error 404"
    assert failure.attempts == 1
    assert requests_mock.call_count == 1
    assert sleeps == []


def test_exhaustion_reports_every_candidate_in_order(fetcher, workspace, requests_mock):
    requests_mock.get(PRIMARY, exc=requests.exceptions.ReadTimeout)
    requests_mock.get(MIRROR, status_code=500)

    with pytest.raises(AllCandidatesExhausted) as exc_info:
        fetcher.fetch([_candidate(PRIMARY, 1), _candidate(MIRROR, 2)])

    failures = exc_info.value.failures
    assert [f.candidate.location_uri for f in failures] == [PRIMARY, MIRROR]
    assert failures[0].failure_reason.startswith("network timeout")
    assert failures[1].failure_reason == "HTTP error 500"
    assert [f.attempts for f in failures] == [3, 3]
    assert requests_mock.call_count == 6
    assert _leftovers(workspace) == []


def test_checksum_mismatch_fails_and_leaves_nothing(fetcher, workspace, requests_mock):
    requests_mock.get(PRIMARY, content=PAYLOAD)

    with pytest.raises(AllCandidatesExhausted) as exc_info:
        fetcher.fetch([_candidate(PRIMARY, sha256="0" * 64)])

    assert exc_info.value.failures[0].failure_reason.startswith("integrity mismatch")
    assert _leftovers(workspace) == []


def test_missing_local_file_is_not_retried(fetcher, tmp_path, sleeps):
    with pytest.raises(AllCandidatesExhausted) as exc_info:
        fetcher.fetch([_candidate(str(tmp_path / "absent.whl"))])
    failure = exc_info.value.failures[0]
    assert failure.failure_reason.startswith("local file not found")
    assert failure.attempts == 1
    assert sleeps == []


def test_empty_candidate_list_is_exhausted(fetcher):
    with pytest.raises(AllCandidatesExhausted):
        fetcher.fetch([])


def test_retries_must_be_positive(workspace):
    with pytest.raises(ValueError):
        HttpFetcher(workspace=workspace, retries=0)


# --- Cancellation ---

def test_cancelled_token_stops_before_any_request(workspace, requests_mock):
    token = CancellationToken()
    token.cancel()
    fetcher = HttpFetcher(workspace=workspace, cancellation=token, sleep=lambda s: None)

    with pytest.raises(RunCancelled):
        fetcher.fetch([_candidate(PRIMARY)])

    assert requests_mock.call_count == 0


def test_cancellation_mid_download_removes_the_partial_file(workspace, requests_mock):
    requests_mock.get(PRIMARY, content=PAYLOAD)
    fetcher = HttpFetcher(workspace=workspace, chunk_size=16, cancellation=CancelAfter(2), sleep=lambda s: None)

    with pytest.raises(RunCancelled):
        fetcher.fetch([_candidate(PRIMARY)])

    assert _leftovers(workspace) == []
