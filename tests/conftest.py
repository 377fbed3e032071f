"""
Pytest configuration and fixtures.

This file ensures proper path setup for imports and keeps the sidecar's
environment variables from leaking into tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

SIDECAR_ENV_VARS = [
    "DAEMON_MODE", "HEALTH_PORT", "HEALTH_HOST", "JWT_AUDIENCE", "JWT_FILE_NAME",
    "JWT_FILE_MODE", "SPIFFE_AGENT_SOCKET", "REFRESH_INTERVAL_OVERRIDE", "FETCH_TIMEOUT",
    "ESCALATION_STRATEGY", "POD_NAME", "POD_NAMESPACE", "SELF_DELETION_PAUSE",
    "KUBECONFIG", "LOG_LEVEL", "LOG_FORMAT",
]

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in SIDECAR_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_credential():
    from spiffe_jwt.identity.credential import Credential

    def _make(lifetime=timedelta(hours=1), token="header.payload.signature", audience="vault"):
        return Credential(
            token=token,
            audience=audience,
            expiry=NOW + lifetime,
            spiffe_id="spiffe://example.org/workload",
        )

    return _make


class FakeSource:
    """Returns (or raises) the queued results in order, one per fetch."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def fetch(self, audience=None, timeout=None):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def fake_source():
    return FakeSource


def fake_svid(token="header.payload.signature", audience=("vault",), expiry=None):
    return SimpleNamespace(
        token=token,
        audience=set(audience),
        expiry=expiry if expiry is not None else NOW.timestamp() + 3600,
        spiffe_id="spiffe://example.org/workload",
    )


@pytest.fixture
def svid_factory():
    return fake_svid
