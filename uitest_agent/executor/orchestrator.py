"""Step-by-step generation of one test case as a LangGraph workflow.

navigate -> process_step (once per step) -> synthesize -> verify_and_repair
-> finish, with invalidate_cache in front of finish when the repair budget is
exhausted. A failed navigation goes straight to finish.
"""

import logging
import operator
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from langgraph.graph import END, StateGraph

from uitest_agent.actions.instruction_executor import InstructionExecutor
from uitest_agent.cache.decision_cache import DecisionCache
from uitest_agent.cache.fingerprint import safe_fingerprint
from uitest_agent.data import (
    GenerationMode,
    Instruction,
    PageState,
    StepRecord,
    TestArtifact,
    TestCase,
    TestCaseResult,
    TestStatus,
)
from uitest_agent.executor.repair import RepairCycle, RepairOutcome
from uitest_agent.llm.code_generator import CodeSynthesizer
from uitest_agent.llm.step_analyzer import DecisionOracle


class OrchestratorState(TypedDict, total=False):
    test_case: TestCase
    url: str
    driver: Any
    fail_fast: bool
    current_index: int
    current_state: Optional[PageState]
    records: Annotated[List[StepRecord], operator.add]
    fingerprints: Annotated[List[str], operator.add]
    stop_steps: bool
    navigation_failed: bool
    artifact: Optional[TestArtifact]
    outcome: Optional[RepairOutcome]
    invalidated: List[str]
    error_message: str


class StepByStepOrchestrator:
    def __init__(
        self,
        oracle: DecisionOracle,
        synthesizer: CodeSynthesizer,
        repair_cycle: RepairCycle,
        cache: DecisionCache,
        executor: InstructionExecutor = None,
        fail_fast: bool = False,
        fingerprint_fn=safe_fingerprint,
    ):
        self.oracle = oracle
        self.synthesizer = synthesizer
        self.repair_cycle = repair_cycle
        self.cache = cache
        self.executor = executor or InstructionExecutor()
        self.fail_fast = fail_fast
        self.fingerprint_fn = fingerprint_fn
        self.app = self._build_graph()

    def _build_graph(self):
        workflow = StateGraph(OrchestratorState)

        workflow.add_node("navigate", self.navigate)
        workflow.add_node("process_step", self.process_step)
        workflow.add_node("synthesize", self.synthesize)
        workflow.add_node("verify_and_repair", self.verify_and_repair)
        workflow.add_node("invalidate_cache", self.invalidate_cache)
        workflow.add_node("finish", self.finish)

        workflow.set_entry_point("navigate")

        workflow.add_conditional_edges(
            "navigate",
            self.route_after_navigate,
            {"process_step": "process_step", "synthesize": "synthesize", "finish": "finish"},
        )
        workflow.add_conditional_edges(
            "process_step",
            self.route_after_step,
            {"process_step": "process_step", "synthesize": "synthesize"},
        )
        workflow.add_conditional_edges(
            "synthesize",
            self.route_after_synthesize,
            {"verify_and_repair": "verify_and_repair", "finish": "finish"},
        )
        workflow.add_conditional_edges(
            "verify_and_repair",
            self.route_after_verify,
            {"invalidate_cache": "invalidate_cache", "finish": "finish"},
        )
        workflow.add_edge("invalidate_cache", "finish")
        workflow.add_edge("finish", END)

        return workflow.compile()

    # nodes

    async def navigate(self, state: OrchestratorState) -> Dict[str, Any]:
        driver = state["driver"]
        url = state["url"]
        logging.info(f"Navigating to {url}")
        try:
            await driver.navigate(url)
            page_state = await driver.capture_state()
        except Exception as e:
            logging.error(f"Navigation to {url} failed: {e}")
            return {"navigation_failed": True, "error_message": f"Navigation failed: {e}"}
        return {"navigation_failed": False, "current_state": page_state, "current_index": 0}

    async def process_step(self, state: OrchestratorState) -> Dict[str, Any]:
        test_case = state["test_case"]
        step = test_case.steps[state["current_index"]]
        current = state["current_state"]
        driver = state["driver"]
        logging.info(f"Processing step {step.index}/{len(test_case.steps)}: {step.description}")

        key = self.fingerprint_fn(step.description, current.url, current.dom_snapshot)
        update: Dict[str, Any] = {"current_index": state["current_index"] + 1}
        if key is not None:
            update["fingerprints"] = [key]

        instruction = await self.cache.get(key)
        cache_hit = instruction is not None
        if cache_hit:
            logging.info(f"Step {step.index}: reusing cached instruction {instruction.action_type.value}")
        else:
            previous = [r.instruction for r in state.get("records", []) if r.success and r.instruction]
            try:
                instruction = await self.oracle.analyze(test_case, step, current, previous)
            except Exception as e:
                logging.error(f"Step {step.index}: decision oracle failed: {e}")
                record = StepRecord(
                    step_index=step.index,
                    step_description=step.description,
                    success=False,
                    state_after=current,
                    error_message=f"Step analysis failed: {e}",
                    fingerprint=key,
                )
                update["records"] = [record]
                update["stop_steps"] = bool(state.get("fail_fast"))
                return update
            await self.cache.put(key, instruction)

        record = await self.executor.execute(instruction, step, driver, fingerprint=key, cache_hit=cache_hit)
        update["records"] = [record]
        if record.state_after is not None:
            update["current_state"] = record.state_after
        if not record.success:
            if state.get("fail_fast"):
                logging.warning(f"Stopping after failed step {step.index}")
                update["stop_steps"] = True
            else:
                logging.warning(f"Step {step.index} failed, continuing with the next step")
        return update

    async def synthesize(self, state: OrchestratorState) -> Dict[str, Any]:
        test_case = state["test_case"]
        records = state.get("records", [])
        try:
            artifact = await self.synthesizer.synthesize(test_case, records, state["url"])
        except Exception as e:
            logging.error(f"Code synthesis for '{test_case.title}' failed: {e}")
            return {"artifact": None, "error_message": f"Code synthesis failed: {e}"}
        return {"artifact": artifact}

    async def verify_and_repair(self, state: OrchestratorState) -> Dict[str, Any]:
        outcome = await self.repair_cycle.run(state["test_case"], state["artifact"], state["driver"])
        update: Dict[str, Any] = {"outcome": outcome, "artifact": outcome.artifact}
        if not outcome.success:
            update["error_message"] = outcome.error_message
        return update

    async def invalidate_cache(self, state: OrchestratorState) -> Dict[str, Any]:
        keys = list(dict.fromkeys(state.get("fingerprints", [])))
        logging.warning(f"Repair budget exhausted, invalidating {len(keys)} cached step decisions")
        for key in keys:
            await self.cache.invalidate(key)
        return {"invalidated": keys}

    async def finish(self, state: OrchestratorState) -> Dict[str, Any]:
        records = state.get("records", [])
        passed = sum(1 for r in records if r.success)
        logging.info(f"'{state['test_case'].title}' finished: {passed}/{len(records)} steps succeeded")
        return {}

    # routing

    def route_after_navigate(self, state: OrchestratorState) -> str:
        if state.get("navigation_failed"):
            return "finish"
        return "process_step" if state["test_case"].steps else "synthesize"

    def route_after_step(self, state: OrchestratorState) -> str:
        if state.get("stop_steps") or state["current_index"] >= len(state["test_case"].steps):
            return "synthesize"
        return "process_step"

    def route_after_synthesize(self, state: OrchestratorState) -> str:
        return "verify_and_repair" if state.get("artifact") is not None else "finish"

    def route_after_verify(self, state: OrchestratorState) -> str:
        outcome = state.get("outcome")
        return "invalidate_cache" if outcome is not None and outcome.exhausted else "finish"

    # entry points

    async def process_test_case(self, test_case: TestCase, url: str, driver,
                                fail_fast: bool = None) -> TestCaseResult:
        """Run the whole workflow and fold the final graph state into a result.

        Never raises for run failures; they come back as a FAILED result.
        """
        result = TestCaseResult(title=test_case.title, mode=GenerationMode.STEP_BY_STEP)
        result.start()

        initial_state: OrchestratorState = {
            "test_case": test_case,
            "url": url,
            "driver": driver,
            "fail_fast": self.fail_fast if fail_fast is None else fail_fast,
            "current_index": 0,
            "records": [],
            "fingerprints": [],
            "stop_steps": False,
            "navigation_failed": False,
            "artifact": None,
            "outcome": None,
            "invalidated": [],
            "error_message": "",
        }
        config = {"recursion_limit": len(test_case.steps) + 20}

        try:
            final_state = await self.app.ainvoke(initial_state, config=config)
        except Exception as e:
            logging.error(f"Orchestration of '{test_case.title}' failed: {e}", exc_info=True)
            result.complete(TestStatus.FAILED, f"Orchestration error: {e}")
            return result

        return self._to_result(result, final_state)

    @staticmethod
    def _to_result(result: TestCaseResult, final_state: Dict[str, Any]) -> TestCaseResult:
        outcome: Optional[RepairOutcome] = final_state.get("outcome")
        result.records = list(final_state.get("records", []))
        result.artifact = final_state.get("artifact")
        result.invalidated_fingerprints = list(final_state.get("invalidated", []))
        if outcome is not None:
            result.execution = outcome.execution
            result.verify_calls = outcome.verify_calls
            result.repair_attempts = outcome.repair_attempts
            result.persisted_to = outcome.persisted_to
        if outcome is not None and outcome.success:
            result.complete(TestStatus.PASSED)
        else:
            result.complete(TestStatus.FAILED, final_state.get("error_message") or "Test generation failed")
        return result

    async def analyze_only(self, test_case: TestCase, url: str, driver) -> List[Instruction]:
        """Plan one instruction per step without executing anything.

        The page is never changed, so every step is planned against the start
        page. Planning stops at the first step the oracle cannot answer, and
        nothing is planned when the start page cannot be opened.
        """
        try:
            await driver.navigate(url)
            page_state = await driver.capture_state()
        except Exception as e:
            logging.error(f"Navigation to {url} failed, nothing planned: {e}")
            return []
        planned: List[Instruction] = []
        for step in test_case.steps:
            try:
                instruction = await self.oracle.analyze(test_case, step, page_state, list(planned))
            except Exception as e:
                logging.error(f"Could not plan step {step.index}: {e}")
                break
            planned.append(instruction)
        return planned
