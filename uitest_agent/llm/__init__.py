from .code_generator import CodeSynthesizer, LLMCodeGenerator, RepairDiagnostics
from .llm_api import LLMAPI
from .step_analyzer import DecisionOracle, LLMStepAnalyzer, parse_instruction

__all__ = [
    "CodeSynthesizer",
    "DecisionOracle",
    "LLMAPI",
    "LLMCodeGenerator",
    "LLMStepAnalyzer",
    "RepairDiagnostics",
    "parse_instruction",
]
