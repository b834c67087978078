from .dag import PrerequisiteGraph
from .plan import ExecutionPlan, Stage, build_plan
from .types import CycleError, GraphError, PlanError

__all__ = [
    "PrerequisiteGraph",
    "ExecutionPlan",
    "Stage",
    "build_plan",
    "CycleError",
    "GraphError",
    "PlanError",
]
