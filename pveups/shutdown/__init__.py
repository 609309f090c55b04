"""
Shutdown orchestration for pveups.

Provides the run lock, the per-guest action executor, the layered
shutdown state machine and the upssched event dispatcher.
"""

from pveups.shutdown.executor import ActionExecutor, ActionOutcome, ExecutionSettings
from pveups.shutdown.lock import AlreadyRunningError, RunLock
from pveups.shutdown.orchestrator import (
    RunOptions,
    RunResult,
    RunState,
    ShutdownOrchestrator,
    create_orchestrator,
)
from pveups.shutdown.triggers import dispatch_event

__all__ = [
    "ActionExecutor",
    "ActionOutcome",
    "AlreadyRunningError",
    "ExecutionSettings",
    "RunLock",
    "RunOptions",
    "RunResult",
    "RunState",
    "ShutdownOrchestrator",
    "create_orchestrator",
    "dispatch_event",
]
