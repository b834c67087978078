from .context import OrchestratorContext
from .orchestrator import Orchestrator
from .parallel import ParallelGroupExecutor
from .sequential import SequentialExecutor
from .types import NETWORK_UNAVAILABLE, PREREQUISITE_NOT_SATISFIED, RunReport

__all__ = [
    "OrchestratorContext",
    "Orchestrator",
    "ParallelGroupExecutor",
    "SequentialExecutor",
    "NETWORK_UNAVAILABLE",
    "PREREQUISITE_NOT_SATISFIED",
    "RunReport",
]
