"""
Proxmox VE control surface backed by the ``qm`` and ``pct`` tools.

Lists guests with their run state and issues the lifecycle commands used
by the shutdown sequence. Command failures are returned as CommandResult
values; a failed listing yields an empty inventory.
"""

import logging
from typing import Callable, Dict, List, Optional

from pveups.inventory.models import Workload, WorkloadKind
from pveups.utils.process import CommandResult, have_command, run_command

logger = logging.getLogger(__name__)

TOOLS: Dict[WorkloadKind, str] = {
    WorkloadKind.VM: "qm",
    WorkloadKind.CT: "pct",
}

# Key holding the guest name in `qm config` / `pct config` output
CONFIG_NAME_KEYS: Dict[WorkloadKind, str] = {
    WorkloadKind.VM: "name",
    WorkloadKind.CT: "hostname",
}


def parse_qm_list(output: str) -> List[Workload]:
    """
    Parse `qm list` output.

    Columns: VMID NAME STATUS MEM(MB) BOOTDISK(GB) PID
    """
    workloads = []
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 3 or not fields[0].isdigit():
            continue
        workloads.append(Workload(
            kind=WorkloadKind.VM,
            id=int(fields[0]),
            name=fields[1],
            state=fields[2],
        ))
    return workloads


# Values of the Lock column of `pct list`
PCT_LOCK_STATES = frozenset({
    "backup", "create", "destroyed", "disk", "fstrim", "migrate", "mounted",
    "rollback", "snapshot", "snapshot-delete", "suspended", "suspending",
})


def parse_pct_list(output: str) -> List[Workload]:
    """
    Parse `pct list` output.

    Columns: VMID Status Lock Name, where Lock is usually empty. A third
    column that is a lock state means the name is missing; such guests get
    an empty name and are looked up later.
    """
    workloads = []
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 2 or not fields[0].isdigit():
            continue
        name = ""
        if len(fields) >= 4 or (len(fields) == 3 and fields[2] not in PCT_LOCK_STATES):
            name = fields[-1]
        workloads.append(Workload(
            kind=WorkloadKind.CT,
            id=int(fields[0]),
            name=name,
            state=fields[1],
        ))
    return workloads


def parse_config_value(output: str, key: str) -> Optional[str]:
    """Return the value for `key` from `qm config` / `pct config` output."""
    prefix = f"{key}: "
    for line in output.splitlines():
        if line.startswith(prefix):
            value = line[len(prefix):].strip()
            return value or None
    return None


LIST_PARSERS: Dict[WorkloadKind, Callable[[str], List[Workload]]] = {
    WorkloadKind.VM: parse_qm_list,
    WorkloadKind.CT: parse_pct_list,
}


class ProxmoxControl:
    """
    Workload control through the local Proxmox command-line tools.
    """

    def __init__(self, command_timeout: Optional[float] = 120.0):
        self.command_timeout = command_timeout

    def available(self, kind: WorkloadKind) -> bool:
        return have_command(TOOLS[kind])

    async def _tool(self, kind: WorkloadKind, *args: str) -> CommandResult:
        return await run_command([TOOLS[kind], *args], self.command_timeout)

    async def list_workloads(self, kind: WorkloadKind) -> List[Workload]:
        if not self.available(kind):
            return []

        result = await self._tool(kind, "list")
        if not result.success:
            logger.error("Listing %s guests failed: %s", kind.label, result.failure_reason)
            return []

        workloads = []
        for workload in LIST_PARSERS[kind](result.stdout):
            if not workload.name:
                workload = Workload(
                    kind=workload.kind,
                    id=workload.id,
                    name=await self.lookup_name(kind, workload.id),
                    state=workload.state,
                )
            workloads.append(workload)
        logger.debug("Found %d %s guests", len(workloads), kind.label)
        return workloads

    async def lookup_name(self, kind: WorkloadKind, workload_id: int) -> str:
        """
        Best-effort guest name from its config, falling back to `<kind>-<id>`.
        """
        result = await self._tool(kind, "config", str(workload_id))
        name = parse_config_value(result.stdout, CONFIG_NAME_KEYS[kind]) if result.success else None
        if not name:
            logger.debug("No name found for %s %s", kind.label, workload_id)
            return Workload.fallback_name(kind, workload_id)
        return name

    async def graceful_stop(self, kind: WorkloadKind, workload_id: int) -> CommandResult:
        if kind is WorkloadKind.CT:
            return await self._tool(kind, "shutdown", str(workload_id))
        return await self._tool(kind, "shutdown", str(workload_id), "--skiplock", "1")

    async def force_stop(self, kind: WorkloadKind, workload_id: int) -> CommandResult:
        return await self._tool(kind, "stop", str(workload_id), "--skiplock", "1")

    async def suspend_to_disk(self, workload_id: int) -> CommandResult:
        return await self._tool(WorkloadKind.VM, "suspend", str(workload_id), "--todisk", "1")
