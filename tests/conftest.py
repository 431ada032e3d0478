"""
Shared pytest fixtures for the envpocket test suite.

Autouse fixtures below isolate tests from the live installation:
  - Audit logger -> temp directory  (keeps test events out of ~/.envpocket)
  - Environment  -> ENVPOCKET_HOME in a temp directory, cwd moved there too
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

from envpocket.store.memory import InMemoryAttributeStore
from envpocket.vault import ExportCodec, VersionedVault


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Install a fresh global AuditLogger writing under tmp_path.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger()`` creates ``~/.envpocket/audit_logs`` and writes
    test events into the real audit trail.
    """
    import envpocket.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod.set_audit_logger(audit_logger)

    yield audit_logger

    audit_logger.close()
    audit_mod.set_audit_logger(old_logger)


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path, monkeypatch):
    """Point ENVPOCKET_HOME at tmp_path and drop any other ENVPOCKET_* vars."""
    for name in list(os.environ):
        if name.startswith("ENVPOCKET_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ENVPOCKET_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


class SteppingClock:
    """Deterministic clock: every call advances by ``step``."""

    def __init__(self, start=None, step=timedelta(minutes=1)):
        self.now = start or datetime(2025, 1, 15, 9, 30, 0, tzinfo=timezone.utc)
        self.step = step
        self.calls = 0

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        self.calls += 1
        return current


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def store():
    return InMemoryAttributeStore()


@pytest.fixture
def vault(store, clock):
    return VersionedVault(store, clock=clock)


@pytest.fixture
def codec(vault):
    return ExportCodec(vault)


@pytest.fixture
def clock_factory():
    """Build extra clocks, e.g. ``clock_factory(step=timedelta(0))``."""
    return SteppingClock
