"""
Shutdown plan construction for pveups.
"""

from .plan import build_plan, format_plan
from .schemas import ExecutionPlan, PlanEntry

__all__ = ["ExecutionPlan", "PlanEntry", "build_plan", "format_plan"]
