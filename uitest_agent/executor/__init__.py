from .orchestrator import OrchestratorState, StepByStepOrchestrator
from .parallel_executor import ParallelTestExecutor
from .parallel_mode import ParallelMode
from .repair import RepairCycle, RepairOutcome
from .unified_agent import FastGenerator, UnifiedTestAgent

__all__ = [
    "FastGenerator",
    "OrchestratorState",
    "ParallelMode",
    "ParallelTestExecutor",
    "RepairCycle",
    "RepairOutcome",
    "StepByStepOrchestrator",
    "UnifiedTestAgent",
]
