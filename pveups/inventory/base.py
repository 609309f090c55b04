"""
Base interface for the workload control surface.
"""
from typing import List, Protocol

from pveups.inventory.models import WorkloadKind, Workload
from pveups.utils.process import CommandResult


class WorkloadControl(Protocol):
    """
    Protocol for listing and controlling the workloads on a node.

    Every control call returns a CommandResult; implementations must not
    raise for an ordinary command failure.
    """

    def available(self, kind: WorkloadKind) -> bool:
        """
        Whether the control surface for a workload kind is reachable.
        """
        ...

    async def list_workloads(self, kind: WorkloadKind) -> List[Workload]:
        """
        Lists all workloads of a kind with their current run state.

        Returns an empty list when the listing itself fails.
        """
        ...

    async def graceful_stop(self, kind: WorkloadKind, workload_id: int) -> CommandResult:
        """
        Asks the guest to shut itself down.
        """
        ...

    async def force_stop(self, kind: WorkloadKind, workload_id: int) -> CommandResult:
        """
        Halts the guest immediately.
        """
        ...

    async def suspend_to_disk(self, workload_id: int) -> CommandResult:
        """
        Hibernates a VM, saving its state to storage.
        """
        ...
