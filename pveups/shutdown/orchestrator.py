"""
Layered shutdown orchestration for UPS power events.

A single-shot state machine: take the run lock, optionally wait for power
to return, check the UPS, shut guests down least important first, force
off stragglers after a grace period and finally power off the host.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol

from pveups.config import OrchestratorConfig, TimingConfig
from pveups.hosts.power import POWER_OFF_MESSAGE, HostPower, LocalHostPower
from pveups.inventory.base import WorkloadControl
from pveups.inventory.models import Workload, WorkloadKind
from pveups.inventory.proxmox import ProxmoxControl
from pveups.nut.classifier import REASON_BOOST_LOW_BATTERY, Decision, PowerDecision, classify
from pveups.nut.client import NUTPowerSource
from pveups.nut.models import PowerReading
from pveups.policies.plan import NO_GUESTS_MESSAGE, build_plan, describe_entry
from pveups.policies.schemas import ExecutionPlan
from pveups.shutdown.executor import ActionExecutor, ActionOutcome, ExecutionSettings
from pveups.shutdown.lock import RunLock
from pveups.utils.logging import STATUS_LOGGER_NAME

logger = logging.getLogger(__name__)
status_logger = logging.getLogger(STATUS_LOGGER_NAME)

# Force-stop sweeps containers first, mirroring the inventory order
INVENTORY_ORDER = (WorkloadKind.CT, WorkloadKind.VM)


class RunState(Enum):
    """States of a shutdown run."""
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    WAITING = "waiting"
    CLASSIFYING = "classifying"
    EXECUTING = "executing"
    GRACE_PERIOD = "grace_period"
    FORCE_STOP = "force_stop"
    HOST_SHUTDOWN = "host_shutdown"
    DONE = "done"
    ABORTED_ALREADY_RUNNING = "aborted_already_running"
    ABORTED_NO_CONTROL_SURFACE = "aborted_no_control_surface"
    ABORTED_UNKNOWN_POWER = "aborted_unknown_power"
    ABORTED_POWER_RESTORED = "aborted_power_restored"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    RunState.DONE,
    RunState.ABORTED_ALREADY_RUNNING,
    RunState.ABORTED_NO_CONTROL_SURFACE,
    RunState.ABORTED_UNKNOWN_POWER,
    RunState.ABORTED_POWER_RESTORED,
})

# Terminal states reported as a failed invocation
FAILURE_STATES = frozenset({
    RunState.ABORTED_NO_CONTROL_SURFACE,
    RunState.ABORTED_UNKNOWN_POWER,
})


class PowerSource(Protocol):
    """Anything that can produce a single power reading."""

    async def read(self) -> PowerReading:
        ...


@dataclass(frozen=True)
class RunOptions:
    """Caller flags for one orchestrator invocation."""

    test_mode: bool = False
    dry_run_host: bool = False
    simulate_failure: bool = False
    skip_initial_wait: bool = False
    event: Optional[str] = None


@dataclass
class RunResult:
    """What a run did and where it ended."""

    state: RunState = RunState.IDLE
    event: Optional[str] = None
    reading: Optional[PowerReading] = None
    decision: Optional[PowerDecision] = None
    plan: ExecutionPlan = ()
    outcomes: List[ActionOutcome] = field(default_factory=list)
    forced: List[ActionOutcome] = field(default_factory=list)
    host_shutdown_requested: bool = False

    @property
    def exit_code(self) -> int:
        return 1 if self.state in FAILURE_STATES else 0

    @property
    def failed_actions(self) -> int:
        return sum(1 for outcome in self.outcomes + self.forced if not outcome.succeeded)


def effective_timing(timing: TimingConfig, test_mode: bool) -> TimingConfig:
    """Test mode runs the same sequence with every delay set to zero."""
    if not test_mode:
        return timing
    return timing.model_copy(update={
        "power_failure_wait": 0,
        "action_delay": 0,
        "shutdown_timeout": 0,
        "sync_after_action": False,
    })


class ShutdownOrchestrator:
    """
    Runs the layered shutdown sequence once per call to ``run()``.

    All collaborators are passed in; nothing is read from global state
    during a run.
    """

    def __init__(
        self,
        config: OrchestratorConfig,
        control: WorkloadControl,
        power_source: PowerSource,
        host: HostPower,
        lock: RunLock,
    ):
        self.config = config
        self.control = control
        self.power_source = power_source
        self.host = host
        self.lock = lock

    def _transition(self, result: RunResult, state: RunState) -> None:
        logger.debug("Shutdown run state %s -> %s", result.state.value, state.value)
        result.state = state

    async def run(self, options: RunOptions = RunOptions()) -> RunResult:
        """
        Execute the shutdown sequence.

        Returns:
            The run result; its state is always terminal.
        """
        result = RunResult(event=options.event)

        if not self.lock.acquire():
            logger.info("Another shutdown run is already in progress. Exiting.")
            self._transition(result, RunState.ABORTED_ALREADY_RUNNING)
            return result

        try:
            self._transition(result, RunState.LOCK_ACQUIRED)
            logger.info(
                "Shutdown run started (event=%s test=%s dry_run_host=%s simulate=%s no_wait=%s)",
                options.event or "unknown", options.test_mode, options.dry_run_host,
                options.simulate_failure, options.skip_initial_wait,
            )
            await self._run_locked(options, result)
        finally:
            self.lock.release()

        return result

    async def _run_locked(self, options: RunOptions, result: RunResult) -> None:
        if not any(self.control.available(kind) for kind in INVENTORY_ORDER):
            logger.error("Neither 'qm' nor 'pct' found. Are you running this on a Proxmox host?")
            self._transition(result, RunState.ABORTED_NO_CONTROL_SURFACE)
            return

        timing = effective_timing(self.config.timing, options.test_mode)
        executor = ActionExecutor(self.control, self.host, ExecutionSettings.from_timing(timing))

        if not options.skip_initial_wait and timing.power_failure_wait > 0:
            self._transition(result, RunState.WAITING)
            logger.info(
                "Event=%s. Waiting %ss for power restoration...",
                options.event or "unknown", timing.power_failure_wait,
            )
            await asyncio.sleep(timing.power_failure_wait)

        self._transition(result, RunState.CLASSIFYING)
        if not await self._check_power(options, result):
            return

        self._transition(result, RunState.EXECUTING)
        await self._execute_plan(executor, options, result)

        self._transition(result, RunState.GRACE_PERIOD)
        if timing.shutdown_timeout > 0:
            logger.info("Waiting %ss for guests to stop gracefully...", timing.shutdown_timeout)
            await asyncio.sleep(timing.shutdown_timeout)

        self._transition(result, RunState.FORCE_STOP)
        for workload in await self._running_workloads():
            result.forced.append(await executor.force_stop(workload, options.test_mode))
        logger.info("Guest shutdown complete.")

        if options.test_mode:
            logger.info("[TEST] Host shutdown skipped.")
        elif options.dry_run_host or self.config.dry_run_host:
            logger.info("Dry-run-host enabled. Host shutdown skipped.")
        else:
            self._transition(result, RunState.HOST_SHUTDOWN)
            await self._shutdown_host(result)

        self._transition(result, RunState.DONE)

    async def _check_power(self, options: RunOptions, result: RunResult) -> bool:
        """Classify the power state; False means the run must stop here."""
        if options.simulate_failure:
            logger.info("Simulating power failure. Proceeding with shutdown sequence.")
            return True

        reading = await self.power_source.read()
        result.reading = reading
        status_logger.info("%s", reading.status_line())

        decision = classify(
            reading,
            proceed_on_unknown=self.config.proceed_on_unknown,
            boost_low_battery_threshold=self.config.boost_low_battery_threshold,
        )
        result.decision = decision
        status = reading.status or "UNKNOWN"
        charge = reading.battery_charge if reading.battery_charge is not None else "unknown"

        if decision.decision is Decision.ABSTAIN:
            logger.info("Power restored / UPS online (status=%s, battery=%s%%). Exiting.", status, charge)
            self._transition(result, RunState.ABORTED_POWER_RESTORED)
            return False

        if decision.decision is Decision.FAIL:
            logger.error(
                "Could not read UPS status (%s). Refusing to proceed "
                "(set proceed_on_unknown: true to override).",
                reading.source,
            )
            self._transition(result, RunState.ABORTED_UNKNOWN_POWER)
            return False

        if decision.reason == REASON_BOOST_LOW_BATTERY:
            logger.warning("UPS is online but BOOST and battery low (%s%%). Proceeding with shutdown.", charge)
        logger.warning(
            "UPS status=%s, battery=%s%%. Power not restored. Starting layered shutdown.", status, charge
        )
        return True

    async def _running_workloads(self) -> List[Workload]:
        """Fresh inventory read of every running guest."""
        running = []
        for kind in INVENTORY_ORDER:
            if not self.control.available(kind):
                continue
            running.extend(w for w in await self.control.list_workloads(kind) if w.is_running)
        return running

    async def build_plan(self) -> ExecutionPlan:
        inventory = []
        for kind in INVENTORY_ORDER:
            if self.control.available(kind):
                inventory.extend(await self.control.list_workloads(kind))
        return build_plan(inventory, self.config.override_table(), self.config.defaults)

    async def _execute_plan(self, executor: ActionExecutor, options: RunOptions, result: RunResult) -> None:
        result.plan = await self.build_plan()
        if not result.plan:
            logger.info(NO_GUESTS_MESSAGE)
            return

        logger.info("Shutdown plan (least important first):")
        for entry in result.plan:
            logger.info("  %s", describe_entry(entry))

        # Strictly sequential: an entry is issued only after the previous one
        for entry in result.plan:
            result.outcomes.append(await executor.apply(entry, options.test_mode))

        failed = sum(1 for outcome in result.outcomes if not outcome.succeeded)
        if failed:
            logger.warning("%d of %d planned actions failed", failed, len(result.outcomes))

    async def _shutdown_host(self, result: RunResult) -> None:
        logger.warning("Shutting down host now.")
        await self.host.sync()
        result.host_shutdown_requested = True
        await self.host.power_off(POWER_OFF_MESSAGE)


def create_orchestrator(config: OrchestratorConfig, lock_path: str) -> ShutdownOrchestrator:
    """Build an orchestrator wired to the local Proxmox node and NUT server."""
    return ShutdownOrchestrator(
        config=config,
        control=ProxmoxControl(),
        power_source=NUTPowerSource(config.ups_identifier),
        host=LocalHostPower(),
        lock=RunLock(lock_path),
    )
