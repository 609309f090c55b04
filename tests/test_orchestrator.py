"""
Tests for the shutdown orchestrator state machine.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from pveups.config import OrchestratorConfig
from pveups.hosts.power import POWER_OFF_MESSAGE
from pveups.inventory.models import Workload
from pveups.nut.classifier import Decision
from pveups.shutdown.lock import RunLock
from pveups.shutdown.orchestrator import RunOptions, RunState, effective_timing
from tests.fakes import CT, VM, FakeControl, FakeHost, FakePowerSource, reading


class TestRunStates:
    """Test terminal state bookkeeping."""

    def test_terminal_states(self):
        assert RunState.DONE.is_terminal
        assert RunState.ABORTED_POWER_RESTORED.is_terminal
        assert not RunState.EXECUTING.is_terminal
        assert not RunState.IDLE.is_terminal

    def test_test_mode_zeroes_delays(self):
        timing = OrchestratorConfig().timing
        zeroed = effective_timing(timing, test_mode=True)
        assert (zeroed.power_failure_wait, zeroed.action_delay, zeroed.shutdown_timeout) == (0, 0, 0)
        assert zeroed.sync_after_action is False
        assert effective_timing(timing, test_mode=False) is timing


class TestLayeredShutdown:
    """Test the full shutdown sequence."""

    @pytest.mark.asyncio
    async def test_end_to_end_with_dry_run_host(self, make_orchestrator, sample_config, sample_workloads):
        control = FakeControl(sample_workloads)
        host = FakeHost()
        orchestrator = make_orchestrator(config=sample_config, control=control, host=host)

        result = await orchestrator.run(RunOptions(dry_run_host=True, event="onbatt-timer"))

        assert result.state is RunState.DONE
        assert result.exit_code == 0
        assert [entry.id for entry in result.plan] == [101, 200, 300]
        assert control.calls == [
            "pct shutdown 101",
            "qm shutdown 200 --skiplock 1",
            "qm suspend 300 --todisk 1",
        ]
        assert result.forced == []
        assert host.power_off_calls == []
        assert result.host_shutdown_requested is False

    @pytest.mark.asyncio
    async def test_host_powered_off_last(self, make_orchestrator, sample_config, sample_workloads):
        control = FakeControl(sample_workloads)
        host = FakeHost()
        orchestrator = make_orchestrator(config=sample_config, control=control, host=host)

        result = await orchestrator.run()

        assert result.state is RunState.DONE
        assert result.host_shutdown_requested
        assert host.power_off_calls == [POWER_OFF_MESSAGE]
        # One sync per action plus the one before power-off
        assert host.sync_calls == len(control.calls) + 1

    @pytest.mark.asyncio
    async def test_dry_run_host_from_config(self, make_orchestrator, sample_workloads):
        config = OrchestratorConfig.model_validate({
            "dry_run_host": True,
            "timing": {"power_failure_wait": 0, "action_delay": 0, "shutdown_timeout": 0},
        })
        host = FakeHost()
        result = await make_orchestrator(config=config, control=FakeControl(sample_workloads), host=host).run()

        assert result.state is RunState.DONE
        assert host.power_off_calls == []

    @pytest.mark.asyncio
    async def test_no_running_guests(self, make_orchestrator, caplog):
        caplog.set_level(logging.INFO)
        control = FakeControl([Workload(VM, 100, "off", "stopped")])
        result = await make_orchestrator(control=control).run(RunOptions(dry_run_host=True))

        assert result.state is RunState.DONE
        assert result.plan == ()
        assert control.calls == []
        assert "No running guests found." in caplog.text

    @pytest.mark.asyncio
    async def test_unknown_override_action_shuts_down(self, make_orchestrator, caplog):
        caplog.set_level(logging.WARNING)
        config = OrchestratorConfig.model_validate({
            "timing": {"power_failure_wait": 0, "action_delay": 0, "shutdown_timeout": 0},
            "overrides": {"vm": {200: {"action": "suspend"}}},
        })
        control = FakeControl([Workload(VM, 200, "db", "running")])

        result = await make_orchestrator(config=config, control=control).run(RunOptions(dry_run_host=True))

        assert result.state is RunState.DONE
        assert control.calls == ["qm shutdown 200 --skiplock 1"]
        assert result.plan[0].action == "suspend"
        assert result.outcomes[0].succeeded
        assert "Unknown action 'suspend' for vm 200. Falling back to shutdown." in caplog.text

    @pytest.mark.asyncio
    async def test_failing_guest_does_not_abort_plan(self, make_orchestrator, sample_config, sample_workloads):
        control = FakeControl(sample_workloads, fail=[(CT, 101)])
        result = await make_orchestrator(config=sample_config, control=control).run(RunOptions(dry_run_host=True))

        assert result.state is RunState.DONE
        assert control.calls[:3] == [
            "pct shutdown 101",
            "qm shutdown 200 --skiplock 1",
            "qm suspend 300 --todisk 1",
        ]
        assert result.failed_actions >= 1
        assert not result.outcomes[0].succeeded

    @pytest.mark.asyncio
    async def test_stragglers_are_force_stopped_once(self, make_orchestrator, sample_config, sample_workloads):
        control = FakeControl(sample_workloads, stops_guests=False)
        result = await make_orchestrator(config=sample_config, control=control).run(RunOptions(dry_run_host=True))

        assert result.state is RunState.DONE
        assert control.calls[3:] == [
            "pct stop 101 --skiplock 1",
            "qm stop 200 --skiplock 1",
            "qm stop 300 --skiplock 1",
        ]
        for command in control.calls[3:]:
            assert control.calls.count(command) == 1
        assert [outcome.id for outcome in result.forced] == [101, 200, 300]
        assert all(outcome.forced for outcome in result.forced)

    @pytest.mark.asyncio
    async def test_inventory_read_fresh_for_force_stop(self, make_orchestrator, sample_workloads):
        control = FakeControl(sample_workloads)
        await make_orchestrator(control=control).run(RunOptions(dry_run_host=True))
        # One read per kind for the plan, one per kind for the sweep
        assert control.list_calls == 4

    @pytest.mark.asyncio
    async def test_initial_wait(self, make_orchestrator, sample_workloads, monkeypatch, caplog):
        caplog.set_level(logging.INFO)
        sleep = AsyncMock()
        monkeypatch.setattr("pveups.shutdown.orchestrator.asyncio.sleep", sleep)
        config = OrchestratorConfig.model_validate({
            "timing": {"power_failure_wait": "2m", "action_delay": 0, "shutdown_timeout": 0},
        })
        orchestrator = make_orchestrator(config=config, control=FakeControl(sample_workloads))

        await orchestrator.run(RunOptions(dry_run_host=True, event="ONBATT"))

        sleep.assert_any_await(120)
        assert "Event=ONBATT. Waiting 120s for power restoration..." in caplog.text

    @pytest.mark.asyncio
    async def test_no_wait_skips_initial_wait(self, make_orchestrator, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("pveups.shutdown.orchestrator.asyncio.sleep", sleep)
        config = OrchestratorConfig.model_validate({
            "timing": {"power_failure_wait": 300, "action_delay": 0, "shutdown_timeout": 0},
        })

        await make_orchestrator(config=config).run(RunOptions(dry_run_host=True, skip_initial_wait=True))

        assert 300 not in [call.args[0] for call in sleep.await_args_list]


class TestPowerChecks:
    """Test how the UPS reading gates the sequence."""

    @pytest.mark.asyncio
    async def test_power_restored(self, make_orchestrator, sample_workloads):
        control = FakeControl(sample_workloads)
        host = FakeHost()
        orchestrator = make_orchestrator(
            control=control, host=host, power_source=FakePowerSource(reading("OL", 80)),
        )

        result = await orchestrator.run()

        assert result.state is RunState.ABORTED_POWER_RESTORED
        assert result.exit_code == 0
        assert result.decision.decision is Decision.ABSTAIN
        assert control.calls == []
        assert host.power_off_calls == []

    @pytest.mark.asyncio
    async def test_unknown_power_refuses(self, make_orchestrator, sample_workloads):
        control = FakeControl(sample_workloads)
        orchestrator = make_orchestrator(control=control, power_source=FakePowerSource(reading()))

        result = await orchestrator.run()

        assert result.state is RunState.ABORTED_UNKNOWN_POWER
        assert result.exit_code == 1
        assert control.calls == []

    @pytest.mark.asyncio
    async def test_unknown_power_with_override(self, make_orchestrator, sample_workloads):
        config = OrchestratorConfig.model_validate({
            "proceed_on_unknown": True,
            "dry_run_host": True,
            "timing": {"power_failure_wait": 0, "action_delay": 0, "shutdown_timeout": 0},
        })
        control = FakeControl(sample_workloads)
        orchestrator = make_orchestrator(config=config, control=control, power_source=FakePowerSource(reading()))

        result = await orchestrator.run()

        assert result.state is RunState.DONE
        assert len(control.calls) == 3

    @pytest.mark.asyncio
    async def test_boost_low_battery_proceeds(self, make_orchestrator, sample_workloads, caplog):
        caplog.set_level(logging.WARNING)
        orchestrator = make_orchestrator(
            control=FakeControl(sample_workloads),
            power_source=FakePowerSource(reading("OL BOOST", 15)),
        )

        result = await orchestrator.run(RunOptions(dry_run_host=True))

        assert result.state is RunState.DONE
        assert "BOOST and battery low" in caplog.text

    @pytest.mark.asyncio
    async def test_simulate_skips_power_read(self, make_orchestrator, sample_workloads):
        power = FakePowerSource(reading("OL", 100))
        control = FakeControl(sample_workloads)

        result = await make_orchestrator(control=control, power_source=power).run(
            RunOptions(simulate_failure=True, dry_run_host=True)
        )

        assert power.reads == 0
        assert result.state is RunState.DONE
        assert result.reading is None
        assert len(control.calls) == 3

    @pytest.mark.asyncio
    async def test_status_line_logged(self, make_orchestrator, caplog):
        caplog.set_level(logging.INFO, logger="pveups.status")
        power = FakePowerSource(reading("OB DISCHRG", 40, 600))

        await make_orchestrator(power_source=power).run(RunOptions(dry_run_host=True))

        records = [r for r in caplog.records if r.name == "pveups.status"]
        assert len(records) == 1
        assert records[0].getMessage() == "ups=myups@localhost status=OB DISCHRG charge=40% runtime=600s"


class TestGuards:
    """Test preflight, locking and test mode."""

    @pytest.mark.asyncio
    async def test_no_control_surface(self, make_orchestrator, lock_path):
        power = FakePowerSource()
        orchestrator = make_orchestrator(control=FakeControl(available=()), power_source=power)

        result = await orchestrator.run()

        assert result.state is RunState.ABORTED_NO_CONTROL_SURFACE
        assert result.exit_code == 1
        assert power.reads == 0
        assert not orchestrator.lock.held

    @pytest.mark.asyncio
    async def test_already_running(self, make_orchestrator, lock_path, sample_workloads):
        control = FakeControl(sample_workloads)
        power = FakePowerSource()
        holder = RunLock(lock_path)
        assert holder.acquire()
        try:
            result = await make_orchestrator(control=control, power_source=power).run()
        finally:
            holder.release()

        assert result.state is RunState.ABORTED_ALREADY_RUNNING
        assert result.exit_code == 0
        assert power.reads == 0
        assert control.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_exclusive(self, make_orchestrator, sample_config, sample_workloads):
        control = FakeControl(sample_workloads)
        first = make_orchestrator(config=sample_config, control=control)
        second = make_orchestrator(config=sample_config, control=control)

        results = await asyncio.gather(
            first.run(RunOptions(dry_run_host=True)),
            second.run(RunOptions(dry_run_host=True)),
        )

        states = sorted(result.state.value for result in results)
        assert states == [RunState.ABORTED_ALREADY_RUNNING.value, RunState.DONE.value]
        assert len(control.calls) == 3

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, make_orchestrator, lock_path):
        await make_orchestrator().run(RunOptions(dry_run_host=True))
        lock = RunLock(lock_path)
        assert lock.acquire()
        lock.release()

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self, make_orchestrator, lock_path):
        power = FakePowerSource()
        power.read = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = make_orchestrator(power_source=power)

        with pytest.raises(RuntimeError):
            await orchestrator.run()

        assert not orchestrator.lock.held

    @pytest.mark.asyncio
    async def test_test_mode_is_a_no_op(self, make_orchestrator, sample_config, sample_workloads, caplog):
        caplog.set_level(logging.INFO)
        # Long delays in the config must not be honoured in test mode
        config = sample_config.model_copy(update={"timing": OrchestratorConfig().timing})
        control = FakeControl(sample_workloads)
        host = FakeHost()

        result = await make_orchestrator(config=config, control=control, host=host).run(RunOptions(test_mode=True))

        assert result.state is RunState.DONE
        assert control.calls == []
        assert host.power_off_calls == []
        assert host.sync_calls == 0
        assert caplog.text.count("[TEST] Would run: ") >= 3
        assert "[TEST] Would run: ct 101 -> shutdown" in caplog.text
        assert "[TEST] Would run: vm 300 -> hibernate" in caplog.text
        assert all(outcome.simulated for outcome in result.outcomes)
