from typing import Iterable, List

from pveups.config import DefaultsConfig, OverrideTable
from pveups.inventory.models import Workload
from .schemas import ExecutionPlan, PlanEntry

NO_GUESTS_MESSAGE = "No running guests found."

_HEADER = (
    "Priority  Type  ID    Action     Name\n"
    "--------  ----  ----  ---------  ----------------"
)


def resolve_entry(workload: Workload, overrides: OverrideTable, defaults: DefaultsConfig) -> PlanEntry:
    """
    Resolve priority and action for one guest.

    An override may set either value; whatever it leaves out comes from the
    kind-level default.
    """
    override = overrides.get((workload.kind, workload.id))
    priority = defaults.priority_for(workload.kind)
    action = defaults.action_for(workload.kind)
    if override is not None:
        if override.priority is not None:
            priority = override.priority
        if override.action is not None:
            action = override.action

    return PlanEntry(
        priority=priority,
        kind=workload.kind,
        id=workload.id,
        name=workload.name,
        action=action,
    )


def build_plan(
    inventory: Iterable[Workload],
    overrides: OverrideTable,
    defaults: DefaultsConfig,
) -> ExecutionPlan:
    """
    Compile the inventory into an ordered shutdown plan.
    This is a pure function with no I/O.

    Only running guests are planned. Entries are ordered by ascending
    priority, then containers before VMs, then ascending id, so the same
    inventory always yields the same plan.
    """
    entries: List[PlanEntry] = [
        resolve_entry(workload, overrides, defaults)
        for workload in inventory
        if workload.is_running
    ]
    return tuple(sorted(entries, key=lambda entry: entry.sort_key))


def describe_entry(entry: PlanEntry) -> str:
    """Single-line rendering used in the action log."""
    return f"prio={entry.priority}  {entry.kind.value} {entry.id}  action={entry.action}  name={entry.name}"


def format_plan(plan: ExecutionPlan) -> str:
    """Render the plan as the operator table printed by `--plan`."""
    if not plan:
        return NO_GUESTS_MESSAGE

    rows = [
        f"{entry.priority:<8}  {entry.kind.value:<4}  {entry.id:<4}  {entry.action:<9}  {entry.name}"
        for entry in plan
    ]
    return "\n".join([_HEADER, *rows])
