import logging
import time
from typing import Optional

from uitest_agent.data import Instruction, PageState, Step, StepRecord


class InstructionExecutor:
    """Runs one instruction against the page and records what happened.

    ``duration_ms`` covers the action alone; the state capture that follows
    is not timed. There are no retries here.
    """

    async def execute(
        self,
        instruction: Instruction,
        step: Step,
        driver,
        fingerprint: Optional[str] = None,
        cache_hit: bool = False,
    ) -> StepRecord:
        logging.info(f"Executing step {step.index}: {instruction.action_type.value} - {instruction.description}")

        error_message = None
        start = time.perf_counter()
        try:
            await driver.execute(instruction)
        except Exception as e:
            error_message = str(e) or type(e).__name__
        duration_ms = int((time.perf_counter() - start) * 1000)

        if error_message is None:
            try:
                state_after = await driver.capture_state()
            except Exception as e:
                logging.error(f"Step {step.index} ran but the page state could not be captured: {e}")
                return self._record(step, instruction, False, None, f"State capture failed: {e}",
                                    duration_ms, fingerprint, cache_hit)
            logging.info(f"Step {step.index} completed successfully in {duration_ms}ms")
            return self._record(step, instruction, True, state_after, None, duration_ms, fingerprint, cache_hit)

        logging.error(f"Step {step.index} failed: {error_message}")
        state_after = await self._capture_after_failure(driver, step)
        return self._record(step, instruction, False, state_after, error_message, duration_ms, fingerprint, cache_hit)

    @staticmethod
    async def _capture_after_failure(driver, step: Step) -> Optional[PageState]:
        try:
            return await driver.capture_state()
        except Exception as e:
            logging.warning(f"Could not capture state after failure of step {step.index}: {e}")
            return None

    @staticmethod
    def _record(step, instruction, success, state_after, error_message, duration_ms, fingerprint, cache_hit):
        return StepRecord(
            step_index=step.index,
            step_description=step.description,
            instruction=instruction,
            success=success,
            state_after=state_after,
            error_message=error_message,
            duration_ms=duration_ms,
            fingerprint=fingerprint,
            cache_hit=cache_hit,
        )
