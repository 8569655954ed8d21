import asyncio

import pytest

from uitest_agent.data import ActionType, PageState, StepRecord, TestArtifact, TestCase
from uitest_agent.exceptions import InstructionParseError
from uitest_agent.llm import LLMAPI, LLMCodeGenerator, LLMStepAnalyzer, RepairDiagnostics, parse_instruction
from uitest_agent.llm.prompt import get_code_generation_prompt, sanitize_identifier

LLM_CONFIG = {"api": "openai", "model": "gpt-4o-mini", "api_key": "sk-test"}
CASE = TestCase.from_descriptions("Login flow", ["open page", "click login"])
STATE = PageState(dom_snapshot='{"tag": "body"}', screenshot="c2NyZWVu", url="https://example.com")


class ScriptedLLM:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def get_llm_response(self, system_prompt, prompt, images=None, temperature=None):
        self.calls.append({"system": system_prompt, "prompt": prompt, "images": images})
        return self.responses.pop(0)


def test_parse_instruction_plain_json():
    instruction = parse_instruction(
        '{"actionType": "click", "locator": "#login", "value": null, "description": "Click login"}'
    )
    assert instruction.action_type == ActionType.CLICK
    assert instruction.locator == "#login"
    assert instruction.value is None


def test_parse_instruction_fenced_and_surrounded():
    response = '```json\n{"action_type": "FILL", "locator": "#q", "value": 42}\n```'
    instruction = parse_instruction(response)
    assert instruction.action_type == ActionType.FILL
    assert instruction.value == "42"

    instruction = parse_instruction('Sure! {"actionType": "WAIT_TIME", "locator": "body", "value": "500"} done')
    assert instruction.action_type == ActionType.WAIT_TIME
    assert instruction.locator is None


@pytest.mark.parametrize(
    "response",
    [
        "",
        "I cannot help with that",
        "[1, 2]",
        '{"locator": "#x"}',
        '{"actionType": "TELEPORT", "locator": "#x"}',
        '{"actionType": "CLICK", "locator": ""}',
    ],
)
def test_parse_instruction_rejects_bad_output(response):
    with pytest.raises(InstructionParseError):
        parse_instruction(response)


def test_clean_response_strips_fences():
    assert LLMAPI._clean_response("```python\nprint('x')\n```") == "print('x')"
    assert LLMAPI._clean_response("  plain  ") == "plain"
    assert LLMAPI._clean_response(None) is None


def test_step_analyzer_sends_screenshot_and_parses():
    llm = ScriptedLLM('{"actionType": "CLICK", "locator": "#login", "description": "Click login"}')
    analyzer = LLMStepAnalyzer(LLM_CONFIG, llm=llm)
    instruction = asyncio.run(analyzer.analyze(CASE, CASE.steps[1], STATE, []))

    assert instruction.locator == "#login"
    assert llm.calls[0]["images"] == "c2NyZWVu"
    assert "Step 2 of 2: **click login**" in llm.calls[0]["prompt"]


def test_code_generator_synthesize_and_repair():
    llm = ScriptedLLM("```python\ndef test_login_flow(page):\n    pass\n```", "def test_login_flow(page):\n    page.goto('x')")
    generator = LLMCodeGenerator(LLM_CONFIG, llm=llm)
    record = StepRecord(step_index=1, step_description="open page", success=False, error_message="boom")

    artifact = asyncio.run(generator.synthesize(CASE, [record], "https://example.com"))
    assert artifact.source == "def test_login_flow(page):\n    pass\n"
    assert "[FAILED]" in llm.calls[0]["prompt"]

    diagnostics = RepairDiagnostics(failed_source=artifact.source, message="Timeout", screenshot="c2NyZWVu",
                                    dom_snapshot="<html/>")
    repaired = asyncio.run(generator.repair(CASE, artifact, diagnostics))
    assert repaired.source.endswith("page.goto('x')\n")
    assert "## Current DOM for analysis" in llm.calls[1]["prompt"]
    assert llm.calls[1]["images"] == "c2NyZWVu"


def test_code_generator_rejects_empty_program():
    generator = LLMCodeGenerator(LLM_CONFIG, llm=ScriptedLLM("   "))
    with pytest.raises(ValueError):
        asyncio.run(generator.generate(CASE, "https://example.com", "<html/>"))


def test_code_generation_prompt_names_the_test_function():
    prompt = get_code_generation_prompt(CASE, [], "https://example.com")
    assert "`test_login_flow`" in prompt


@pytest.mark.parametrize(
    "title, expected",
    [("Login flow", "login_flow"), ("  Add -> Cart!! ", "add_cart"), ("2FA setup", "case_2fa_setup"), ("???", "generated")],
)
def test_sanitize_identifier(title, expected):
    assert sanitize_identifier(title) == expected


def test_llm_api_requires_key():
    with pytest.raises(ValueError):
        asyncio.run(LLMAPI({"api": "openai", "model": "m", "api_key": ""}).initialize())


class CountingOpenAI:
    built = 0

    def __init__(self, **kwargs):
        type(self).built += 1
        self.chat = self
        self.completions = self

    async def create(self, **kwargs):
        await asyncio.sleep(0)
        message = type("Message", (), {"content": "```json\n{}\n```"})()
        choice = type("Choice", (), {"message": message})()
        return type("Completion", (), {"choices": [choice]})()

    async def close(self):
        pass


def test_llm_api_builds_one_client_for_concurrent_callers(monkeypatch):
    monkeypatch.setattr("uitest_agent.llm.llm_api.AsyncOpenAI", CountingOpenAI)
    CountingOpenAI.built = 0
    llm = LLMAPI(LLM_CONFIG)

    async def scenario():
        return await asyncio.gather(*[llm.get_llm_response("system", f"prompt {i}") for i in range(5)])

    responses = asyncio.run(scenario())
    assert responses == ["{}"] * 5
    assert CountingOpenAI.built == 1
