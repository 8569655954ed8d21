from .test_structures import (
    ActionType,
    ExecutionResult,
    GenerationMode,
    Instruction,
    PageState,
    Step,
    StepRecord,
    TestArtifact,
    TestCase,
    TestCaseResult,
    TestStatus,
)

__all__ = [
    "ActionType",
    "ExecutionResult",
    "GenerationMode",
    "Instruction",
    "PageState",
    "Step",
    "StepRecord",
    "TestArtifact",
    "TestCase",
    "TestCaseResult",
    "TestStatus",
]
