"""
Pytest configuration and shared fixtures for the sentinel tests.
"""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from sentinel.cgroups import Unit
from sentinel.events import RemediationOutcome, RemediationStatus


class FakeResponder:
    """Records remediation requests and answers with a fixed status."""

    def __init__(self, status: RemediationStatus = RemediationStatus.RESTARTED):
        self.status = status
        self.calls: list[str] = []

    async def remediate(self, unit_id: str) -> RemediationOutcome:
        self.calls.append(unit_id)
        now = datetime.now(UTC)
        finished_at = None if self.status is RemediationStatus.STOP_FAILED else now
        return RemediationOutcome(
            unit_id=unit_id,
            status=self.status,
            started_at=now,
            finished_at=finished_at,
        )


@pytest.fixture
def cgroup_root(tmp_path) -> Path:
    """Empty stand-in for /sys/fs/cgroup/system.slice."""
    root = tmp_path / "system.slice"
    root.mkdir()
    return root


@pytest.fixture
def make_unit(cgroup_root):
    """Create a scope directory with a cgroup.procs file and return the Unit."""

    def _make(container_id: str, pids=(), content: str | None = None) -> Unit:
        name = f"docker-{container_id}.scope"
        scope = cgroup_root / name
        scope.mkdir()
        procs = scope / "cgroup.procs"
        if content is None:
            content = "".join(f"{pid}\n" for pid in pids)
        procs.write_text(content)
        return Unit(id=container_id, name=name, procs_path=procs)

    return _make


@pytest.fixture
def responder() -> FakeResponder:
    return FakeResponder()
