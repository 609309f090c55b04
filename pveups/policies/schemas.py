from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field

from pveups.config import ActionName
from pveups.inventory.models import WorkloadKind


class PlanEntry(BaseModel):
    """One planned action against one running guest."""

    model_config = ConfigDict(frozen=True)

    priority: int = Field(..., description="Lower numbers are shut down earlier")
    kind: WorkloadKind
    id: int
    name: str
    # Free-form action name, resolved when the entry is executed
    action: ActionName

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return (self.priority, self.kind.sort_rank, self.id)


# Ordered, immutable sequence of entries; built fresh on every run.
ExecutionPlan = Tuple[PlanEntry, ...]
