import logging

from uitest_agent.data import GenerationMode, TestCase, TestCaseResult, TestStatus
from uitest_agent.executor.orchestrator import StepByStepOrchestrator
from uitest_agent.executor.repair import RepairCycle
from uitest_agent.llm.code_generator import CodeSynthesizer


class FastGenerator:
    """One-shot flow: a single DOM snapshot, one generation call, then the
    same repair cycle the step-by-step flow uses. The step cache is not
    consulted."""

    def __init__(self, synthesizer: CodeSynthesizer, repair_cycle: RepairCycle):
        self.synthesizer = synthesizer
        self.repair_cycle = repair_cycle

    async def run(self, test_case: TestCase, url: str, driver) -> TestCaseResult:
        result = TestCaseResult(title=test_case.title, mode=GenerationMode.FAST)
        result.start()

        try:
            await driver.navigate(url)
            dom_snapshot = await driver.full_snapshot()
        except Exception as e:
            logging.error(f"Navigation to {url} failed: {e}")
            result.complete(TestStatus.FAILED, f"Navigation failed: {e}")
            return result

        try:
            artifact = await self.synthesizer.generate(test_case, url, dom_snapshot)
        except Exception as e:
            logging.error(f"Code generation for '{test_case.title}' failed: {e}")
            result.complete(TestStatus.FAILED, f"Code generation failed: {e}")
            return result

        outcome = await self.repair_cycle.run(test_case, artifact, driver)
        result.artifact = outcome.artifact
        result.execution = outcome.execution
        result.verify_calls = outcome.verify_calls
        result.repair_attempts = outcome.repair_attempts
        result.persisted_to = outcome.persisted_to
        if outcome.success:
            result.complete(TestStatus.PASSED)
        else:
            result.complete(TestStatus.FAILED, outcome.error_message)
        return result


class UnifiedTestAgent:
    """Picks the generation flow for a test case and runs it."""

    def __init__(self, orchestrator: StepByStepOrchestrator, fast_generator: FastGenerator,
                 default_mode: GenerationMode = GenerationMode.AUTO):
        self.orchestrator = orchestrator
        self.fast_generator = fast_generator
        self.default_mode = GenerationMode(default_mode)

    async def generate_and_run(self, test_case: TestCase, url: str, driver,
                               mode: GenerationMode = None) -> TestCaseResult:
        requested = GenerationMode(mode) if mode is not None else self.default_mode
        resolved = requested.resolve(len(test_case.steps))
        logging.info(f"Generating '{test_case.title}' ({len(test_case.steps)} steps) in {resolved.value} mode")

        if resolved == GenerationMode.FAST:
            return await self.fast_generator.run(test_case, url, driver)
        return await self.orchestrator.process_test_case(test_case, url, driver)
