import json
import logging
from abc import ABC, abstractmethod
from typing import List

from pydantic import ValidationError

from uitest_agent.data import Instruction, PageState, Step, TestCase
from uitest_agent.exceptions import InstructionParseError
from uitest_agent.llm.llm_api import LLMAPI
from uitest_agent.llm.prompt import LLMPrompt, get_step_analysis_prompt


class DecisionOracle(ABC):
    """Chooses the instruction that performs one step on the current page."""

    @abstractmethod
    async def analyze(
        self,
        test_case: TestCase,
        step: Step,
        state: PageState,
        previous_instructions: List[Instruction],
    ) -> Instruction:
        ...


class LLMStepAnalyzer(DecisionOracle):
    def __init__(self, llm_config: dict, llm: LLMAPI = None):
        self.llm_config = llm_config
        self.llm = llm or LLMAPI(llm_config)

    async def analyze(self, test_case, step, state, previous_instructions):
        prompt = get_step_analysis_prompt(test_case, step, state, previous_instructions)
        logging.debug(f"Step analysis prompt for step {step.index}: {prompt[:500]}")
        response = await self.llm.get_llm_response(
            LLMPrompt.step_analyzer_system_prompt,
            prompt,
            images=state.screenshot,
        )
        instruction = parse_instruction(response)
        logging.info(
            f"Step {step.index} analyzed: {instruction.action_type.value} "
            f"locator={instruction.locator!r} value={instruction.value!r}"
        )
        return instruction


def parse_instruction(response: str) -> Instruction:
    """Turn the oracle's JSON answer into an Instruction.

    Accepts ``actionType`` or ``action_type`` keys and tolerates text around
    the JSON object.
    """
    if not response or not isinstance(response, str):
        raise InstructionParseError("Empty response from step analyzer")

    text = LLMAPI._clean_response(response)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise InstructionParseError(f"Response is not JSON: {text[:200]}")
        try:
            payload = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise InstructionParseError(f"Response is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise InstructionParseError(f"Expected a JSON object, got {type(payload).__name__}")

    action = payload.get("actionType", payload.get("action_type"))
    if not action:
        raise InstructionParseError("Response is missing 'actionType'")

    value = payload.get("value")
    try:
        return Instruction(
            action_type=action,
            locator=payload.get("locator") or None,
            value=None if value is None else str(value),
            description=payload.get("description") or "",
        )
    except ValidationError as e:
        raise InstructionParseError(f"Invalid instruction {action!r}: {e.errors()[0].get('msg')}") from e
