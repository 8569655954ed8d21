import logging
from typing import List

from uitest_agent.actions.instruction_executor import InstructionExecutor
from uitest_agent.cache import DecisionCache, create_cache_backend
from uitest_agent.config import AgentConfig
from uitest_agent.data import GenerationMode, TestCase, TestCaseResult
from uitest_agent.executor.orchestrator import StepByStepOrchestrator
from uitest_agent.executor.parallel_executor import ParallelTestExecutor
from uitest_agent.executor.repair import RepairCycle
from uitest_agent.executor.unified_agent import FastGenerator, UnifiedTestAgent
from uitest_agent.llm import LLMAPI, LLMCodeGenerator, LLMStepAnalyzer
from uitest_agent.runner import LocalArtifactStore, PytestArtifactRunner
from uitest_agent.utils import GetLog


class ParallelMode:
    """Wires the configured collaborators together and runs a batch of test
    cases.

    The decision cache is opened before the first worker starts and closed
    after the last one finishes.
    """

    def __init__(self, config: AgentConfig):
        self.config = config

    def build_agent(self, cache: DecisionCache, llm: LLMAPI) -> UnifiedTestAgent:
        llm_config = self.config.llm_config.model_dump()
        generation = self.config.generation

        synthesizer = LLMCodeGenerator(llm_config, llm=llm)
        verifier = PytestArtifactRunner(
            timeout_seconds=generation.run_timeout_seconds,
            headless=self.config.browser_config.headless,
        )
        repair_cycle = RepairCycle(
            synthesizer,
            verifier,
            LocalArtifactStore(generation.output_dir),
            max_attempts=generation.max_repair_attempts,
        )
        orchestrator = StepByStepOrchestrator(
            oracle=LLMStepAnalyzer(llm_config, llm=llm),
            synthesizer=synthesizer,
            repair_cycle=repair_cycle,
            cache=cache,
            executor=InstructionExecutor(),
            fail_fast=generation.fail_fast,
        )
        return UnifiedTestAgent(orchestrator, FastGenerator(synthesizer, repair_cycle), default_mode=generation.mode)

    async def run(self, test_cases: List[TestCase], url: str = None,
                  mode: GenerationMode = None) -> List[TestCaseResult]:
        GetLog.get_log(level=self.config.log.get("level", "info"))
        target_url = url or self.config.target.url
        if not target_url:
            raise ValueError("No target url configured")

        cache = DecisionCache(create_cache_backend(self.config.cache))
        llm = LLMAPI(self.config.llm_config.model_dump())
        await cache.start()
        try:
            await llm.initialize()
            executor = ParallelTestExecutor(
                self.build_agent(cache, llm),
                max_concurrent_tests=self.config.target.max_concurrent_tests,
                test_timeout=self.config.target.test_timeout_seconds,
                browser_config=self.config.browser_settings(),
                dom_config=self.config.dom,
            )
            logging.info(f"Generating {len(test_cases)} test cases against {target_url}")
            return await executor.execute_parallel_tests(test_cases, target_url, mode)
        finally:
            await cache.close()
            await llm.close()
