import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel

from uitest_agent.data import StepRecord, TestArtifact, TestCase
from uitest_agent.llm.llm_api import LLMAPI
from uitest_agent.llm.prompt import (
    LLMPrompt,
    get_code_generation_prompt,
    get_fast_generation_prompt,
    get_repair_prompt,
)


class RepairDiagnostics(BaseModel):
    """Everything the synthesizer is shown when asked to fix a failing test."""

    failed_source: str
    message: str = ""
    stack_trace: Optional[str] = None
    screenshot: Optional[str] = None
    trace_path: Optional[str] = None
    dom_snapshot: Optional[str] = None


class CodeSynthesizer(ABC):
    @abstractmethod
    async def synthesize(self, test_case: TestCase, records: List[StepRecord], start_url: str) -> TestArtifact:
        """Build a test program from the recorded steps."""

    @abstractmethod
    async def repair(self, test_case: TestCase, failed: TestArtifact, diagnostics: RepairDiagnostics) -> TestArtifact:
        """Return a corrected program for a failing one."""

    @abstractmethod
    async def generate(self, test_case: TestCase, start_url: str, dom_snapshot: str) -> TestArtifact:
        """Build a test program from the steps and a single DOM snapshot."""


class LLMCodeGenerator(CodeSynthesizer):
    """Emits pytest modules that drive Playwright."""

    def __init__(self, llm_config: dict, llm: LLMAPI = None):
        self.llm_config = llm_config
        self.llm = llm or LLMAPI(llm_config)

    async def synthesize(self, test_case, records, start_url):
        prompt = get_code_generation_prompt(test_case, records, start_url)
        source = await self.llm.get_llm_response(LLMPrompt.code_generator_system_prompt, prompt)
        logging.info(f"Generated test code for '{test_case.title}' from {len(records)} recorded steps")
        return self._artifact(source)

    async def repair(self, test_case, failed, diagnostics):
        prompt = get_repair_prompt(
            test_case,
            failed_source=diagnostics.failed_source,
            message=diagnostics.message,
            stack_trace=diagnostics.stack_trace,
            trace_path=diagnostics.trace_path,
            dom_snapshot=diagnostics.dom_snapshot,
            has_screenshot=bool(diagnostics.screenshot),
        )
        source = await self.llm.get_llm_response(
            LLMPrompt.code_repairer_system_prompt,
            prompt,
            images=diagnostics.screenshot,
        )
        logging.info(f"Repaired test code for '{test_case.title}'")
        return self._artifact(source)

    async def generate(self, test_case, start_url, dom_snapshot):
        prompt = get_fast_generation_prompt(test_case, start_url, dom_snapshot)
        source = await self.llm.get_llm_response(LLMPrompt.code_generator_system_prompt, prompt)
        logging.info(f"Generated test code for '{test_case.title}' in a single pass")
        return self._artifact(source)

    @staticmethod
    def _artifact(source: str) -> TestArtifact:
        cleaned = LLMAPI._clean_response(source) or ""
        if not cleaned.strip():
            raise ValueError("Code generator returned an empty program")
        return TestArtifact(source=cleaned + ("\n" if not cleaned.endswith("\n") else ""))
