"""
Data models for the Proxmox workload inventory.

Workloads are read-only snapshots fetched from ``qm``/``pct`` on every
run; they are never cached between orchestrator invocations.
"""

from dataclasses import dataclass
from enum import Enum

RUNNING = "running"


class WorkloadKind(str, Enum):
    """Kind of guest hosted on the node."""
    CT = "ct"
    VM = "vm"

    @property
    def sort_rank(self) -> int:
        """Containers order before VMs at equal priority."""
        return 0 if self is WorkloadKind.CT else 1

    @property
    def label(self) -> str:
        return self.value.upper()


class Action(str, Enum):
    """Shutdown action applied to a workload."""
    SHUTDOWN = "shutdown"
    HIBERNATE = "hibernate"
    STOP = "stop"


SUPPORTED_ACTIONS = {
    WorkloadKind.VM: frozenset({Action.SHUTDOWN, Action.HIBERNATE, Action.STOP}),
    WorkloadKind.CT: frozenset({Action.SHUTDOWN, Action.STOP}),
}


@dataclass(frozen=True)
class Workload:
    """A VM or container as reported by the inventory."""

    kind: WorkloadKind
    id: int
    name: str
    state: str

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING

    @staticmethod
    def fallback_name(kind: WorkloadKind, workload_id: int) -> str:
        return f"{kind.value}-{workload_id}"
