import pytest
from click.testing import CliRunner

from pveups.config import OrchestratorConfig, settings
from pveups.inventory.models import Workload
from pveups.shutdown.lock import RunLock
from pveups.shutdown.orchestrator import ShutdownOrchestrator
from tests.fakes import CT, VM, FakeControl, FakeHost, FakePowerSource


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "run" / "pveups.lock"


@pytest.fixture
def fast_config():
    """Configuration with every delay disabled."""
    return OrchestratorConfig.model_validate({
        "timing": {"power_failure_wait": 0, "action_delay": 0, "shutdown_timeout": 0},
    })


@pytest.fixture
def sample_workloads():
    return [
        Workload(CT, 101, "web", "running"),
        Workload(VM, 200, "db", "running"),
        Workload(VM, 300, "files", "running"),
        Workload(VM, 400, "old", "stopped"),
    ]


@pytest.fixture
def sample_config():
    return OrchestratorConfig.model_validate({
        "timing": {"power_failure_wait": 0, "action_delay": 0, "shutdown_timeout": 0},
        "overrides": {
            "ct": {101: {"priority": 10, "action": "shutdown"}},
            "vm": {200: {"priority": 50}, 300: {"priority": 90, "action": "hibernate"}},
        },
    })


@pytest.fixture
def make_orchestrator(lock_path, fast_config):
    """Factory for an orchestrator wired to fakes."""

    def _make(config=None, control=None, power_source=None, host=None, path=None):
        return ShutdownOrchestrator(
            config=config or fast_config,
            control=control if control is not None else FakeControl(),
            power_source=power_source or FakePowerSource(),
            host=host or FakeHost(),
            lock=RunLock(path or lock_path),
        )

    return _make


@pytest.fixture
def cli_runner(monkeypatch, tmp_path):
    """CLI runner with file and syslog logging disabled."""
    monkeypatch.setattr(settings, "LOG_DIR", None)
    monkeypatch.setattr(settings, "SYSLOG_ENABLED", False)
    monkeypatch.setattr(settings, "LOCK_FILE", str(tmp_path / "pveups.lock"))
    monkeypatch.setattr(settings, "CONFIG_FILE", str(tmp_path / "missing.yaml"))
    return CliRunner()
