import logging
from typing import Optional

from pydantic import BaseModel

from uitest_agent.data import ExecutionResult, TestArtifact, TestCase
from uitest_agent.llm.code_generator import CodeSynthesizer, RepairDiagnostics
from uitest_agent.runner.artifact_runner import ArtifactStore, Verifier


class RepairOutcome(BaseModel):
    success: bool
    artifact: TestArtifact
    execution: Optional[ExecutionResult] = None
    verify_calls: int = 0
    repair_attempts: int = 0
    persisted_to: Optional[str] = None
    error_message: str = ""
    # True only when every allowed verification ran and failed
    exhausted: bool = False


class RepairCycle:
    """Verify, and on failure repair and verify again, at most
    ``max_attempts`` verifications in total."""

    def __init__(self, synthesizer: CodeSynthesizer, verifier: Verifier, store: ArtifactStore,
                 max_attempts: int = 3):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.synthesizer = synthesizer
        self.verifier = verifier
        self.store = store
        self.max_attempts = max_attempts

    async def run(self, test_case: TestCase, artifact: TestArtifact, driver) -> RepairOutcome:
        verify_calls = 0
        repair_attempts = 0

        while True:
            verify_calls += 1
            logging.info(f"Verifying '{test_case.title}' (attempt {verify_calls}/{self.max_attempts})")
            result = await self._verify(artifact, driver)

            if result.success:
                return RepairOutcome(
                    success=True,
                    artifact=artifact,
                    execution=result,
                    verify_calls=verify_calls,
                    repair_attempts=repair_attempts,
                    persisted_to=self._persist(test_case, artifact),
                )

            if verify_calls >= self.max_attempts:
                logging.error(f"'{test_case.title}' still failing after {verify_calls} attempts: {result.message}")
                return RepairOutcome(
                    success=False,
                    artifact=artifact,
                    execution=result,
                    verify_calls=verify_calls,
                    repair_attempts=repair_attempts,
                    error_message=f"Failed after {verify_calls} attempts: {result.message}",
                    exhausted=True,
                )

            diagnostics = await self._diagnose(artifact, result, driver)
            try:
                artifact = await self.synthesizer.repair(test_case, artifact, diagnostics)
            except Exception as e:
                logging.error(f"Repair of '{test_case.title}' failed: {e}")
                return RepairOutcome(
                    success=False,
                    artifact=artifact,
                    execution=result,
                    verify_calls=verify_calls,
                    repair_attempts=repair_attempts,
                    error_message=f"Repair failed: {e}",
                )
            repair_attempts += 1

    async def _verify(self, artifact: TestArtifact, driver) -> ExecutionResult:
        try:
            return await self.verifier.run_artifact(artifact, driver)
        except Exception as e:
            logging.error(f"Verifier raised: {e}")
            return ExecutionResult(success=False, message=f"Verifier error: {e}")

    @staticmethod
    async def _diagnose(artifact: TestArtifact, result: ExecutionResult, driver) -> RepairDiagnostics:
        dom = None
        screenshot = result.screenshot
        try:
            dom = await driver.full_snapshot()
        except Exception as e:
            logging.warning(f"Could not capture DOM for repair: {e}")
        if screenshot is None:
            try:
                screenshot = await driver.screenshot()
            except Exception as e:
                logging.warning(f"Could not capture screenshot for repair: {e}")
        return RepairDiagnostics(
            failed_source=artifact.source,
            message=result.message,
            stack_trace=result.stack_trace,
            screenshot=screenshot,
            trace_path=result.trace_path,
            dom_snapshot=dom,
        )

    def _persist(self, test_case: TestCase, artifact: TestArtifact) -> Optional[str]:
        try:
            return self.store.persist(test_case.title, artifact)
        except Exception as e:
            logging.error(f"Could not save passing test '{test_case.title}': {e}")
            return None
