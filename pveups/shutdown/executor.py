"""
Guest action execution with logging and error absorption.

Applies one planned action to one guest through the control surface.
A failing guest never aborts the rest of the plan: every control-call
failure is captured in the returned ActionOutcome.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pveups.config import TimingConfig
from pveups.hosts.power import HostPower
from pveups.inventory.base import WorkloadControl
from pveups.inventory.models import SUPPORTED_ACTIONS, Action, Workload, WorkloadKind
from pveups.policies.schemas import PlanEntry
from pveups.utils.process import CommandResult

logger = logging.getLogger(__name__)

ACTION_MESSAGES = {
    (WorkloadKind.CT, Action.SHUTDOWN): "Shutting down CT %s",
    (WorkloadKind.CT, Action.STOP): "Stopping CT %s",
    (WorkloadKind.VM, Action.SHUTDOWN): "Shutting down VM %s",
    (WorkloadKind.VM, Action.HIBERNATE): "Hibernating VM %s (suspend to disk)",
    (WorkloadKind.VM, Action.STOP): "Stopping VM %s",
}

FORCE_STOP_COMMANDS = {
    WorkloadKind.CT: "pct stop {id} --skiplock 1",
    WorkloadKind.VM: "qm stop {id} --skiplock 1",
}


@dataclass
class ExecutionSettings:
    """Per-action pacing, passed explicitly to the executor."""

    action_delay: float = 1.0
    sync_after_action: bool = True

    @classmethod
    def from_timing(cls, timing: TimingConfig) -> "ExecutionSettings":
        return cls(action_delay=timing.action_delay, sync_after_action=timing.sync_after_action)


@dataclass
class ActionOutcome:
    """Result of applying one action to one guest."""

    kind: WorkloadKind
    id: int
    action: Action
    attempted: bool
    succeeded: bool
    error: Optional[str] = None
    simulated: bool = False
    forced: bool = False
    command: Optional[str] = None
    execution_time: Optional[float] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/reporting."""
        return {
            'kind': self.kind.value,
            'id': self.id,
            'action': self.action.value,
            'attempted': self.attempted,
            'succeeded': self.succeeded,
            'error': self.error,
            'simulated': self.simulated,
            'forced': self.forced,
            'command': self.command,
            'execution_time': self.execution_time,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }


class ActionExecutor:
    """
    Applies planned and forced actions to guests.

    In test mode no control call is made; the executor logs what would run
    and reports success, keeping the same log and pacing shape as a real
    run.
    """

    def __init__(
        self,
        control: WorkloadControl,
        host: HostPower,
        settings: Optional[ExecutionSettings] = None,
    ):
        self.control = control
        self.host = host
        self.settings = settings or ExecutionSettings()

    @staticmethod
    def resolve_action(kind: WorkloadKind, action: Union[Action, str], workload_id: int) -> Action:
        """
        Return the action to run, falling back to a graceful shutdown when
        the action is unknown or not supported for the guest kind.
        """
        name = action.value if isinstance(action, Action) else str(action).strip().lower()
        try:
            resolved = Action(name)
        except ValueError:
            resolved = None
        if resolved in SUPPORTED_ACTIONS[kind]:
            return resolved
        logger.warning(
            "Unknown action '%s' for %s %s. Falling back to shutdown.",
            name, kind.value, workload_id,
        )
        return Action.SHUTDOWN

    async def _dispatch(self, kind: WorkloadKind, workload_id: int, action: Action) -> CommandResult:
        if action is Action.HIBERNATE:
            return await self.control.suspend_to_disk(workload_id)
        if action is Action.STOP:
            return await self.control.force_stop(kind, workload_id)
        return await self.control.graceful_stop(kind, workload_id)

    async def _run_control_call(self, outcome: ActionOutcome, call) -> ActionOutcome:
        # Per-guest failures are recorded and never propagated
        try:
            result = await call
        except Exception as e:
            logger.error("%s %s: %s failed: %s", outcome.kind.label, outcome.id, outcome.action.value, e)
            outcome.succeeded = False
            outcome.error = str(e)
            return outcome

        outcome.command = result.command
        outcome.execution_time = result.execution_time
        outcome.succeeded = result.success
        if not result.success:
            outcome.error = result.failure_reason
            logger.error(
                "%s %s: '%s' failed: %s",
                outcome.kind.label, outcome.id, result.command, result.failure_reason,
            )
        return outcome

    async def _sync(self, test_mode: bool) -> None:
        if test_mode or not self.settings.sync_after_action:
            return
        try:
            await self.host.sync()
        except Exception as e:
            logger.warning("sync after action failed: %s", e)

    async def apply(self, entry: PlanEntry, test_mode: bool = False) -> ActionOutcome:
        """
        Apply one plan entry, then sync (if configured) and wait the
        inter-action delay.

        Returns:
            The outcome; never raises for a failing guest.
        """
        action = self.resolve_action(entry.kind, entry.action, entry.id)
        outcome = ActionOutcome(kind=entry.kind, id=entry.id, action=action, attempted=True, succeeded=False)

        if test_mode:
            logger.info("[TEST] Would run: %s %s -> %s", entry.kind.value, entry.id, action.value)
            outcome.succeeded = True
            outcome.simulated = True
        else:
            logger.info(ACTION_MESSAGES[(entry.kind, action)], entry.id)
            await self._run_control_call(outcome, self._dispatch(entry.kind, entry.id, action))

        await self._sync(test_mode)
        await asyncio.sleep(self.settings.action_delay)
        return outcome

    async def force_stop(self, workload: Workload, test_mode: bool = False) -> ActionOutcome:
        """
        Forcefully stop a guest that is still running after the grace period.
        """
        logger.warning("%s %s still running. Forcing stop.", workload.kind.label, workload.id)
        outcome = ActionOutcome(
            kind=workload.kind,
            id=workload.id,
            action=Action.STOP,
            attempted=True,
            succeeded=False,
            forced=True,
        )

        if test_mode:
            command = FORCE_STOP_COMMANDS[workload.kind].format(id=workload.id)
            logger.info("[TEST] Would run: %s", command)
            outcome.command = command
            outcome.succeeded = True
            outcome.simulated = True
        else:
            await self._run_control_call(outcome, self.control.force_stop(workload.kind, workload.id))

        await self._sync(test_mode)
        return outcome
