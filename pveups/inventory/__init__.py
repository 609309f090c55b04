"""
Workload inventory and control surface for pveups.

Provides the guest model and the qm/pct backed control surface consumed
by the shutdown orchestrator.
"""

from .base import WorkloadControl
from .models import Action, Workload, WorkloadKind
from .proxmox import ProxmoxControl

__all__ = [
    "Action",
    "ProxmoxControl",
    "Workload",
    "WorkloadControl",
    "WorkloadKind",
]
