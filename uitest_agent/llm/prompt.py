from typing import List, Optional

from uitest_agent.data import ActionType, Instruction, PageState, Step, StepRecord, TestCase


class LLMPrompt:
    step_analyzer_system_prompt = (
        "You are a senior QA automation engineer. You translate one natural-language test step "
        "into exactly one Playwright action for the page you are shown. You answer with a single "
        "JSON object and nothing else."
    )

    code_generator_system_prompt = (
        "You are a senior QA automation engineer who writes clean, reliable Python UI tests "
        "with pytest and the Playwright sync API. You answer with Python source only."
    )

    code_repairer_system_prompt = (
        "You are a senior QA automation engineer who fixes failing Python Playwright tests. "
        "You read the failure, the stack trace and the current page, and answer with the full "
        "corrected Python source only."
    )


SUPPORTED_ACTIONS = ", ".join(kind.value for kind in ActionType)

TEST_FILE_TEMPLATE = '''import re

import pytest
from playwright.sync_api import Page, expect


START_URL = "<start url>"


def test_<name>(page: Page):
    page.goto(START_URL)
    # one block per recorded step
'''


def get_step_analysis_prompt(
    test_case: TestCase,
    step: Step,
    state: PageState,
    previous_instructions: List[Instruction],
) -> str:
    parts = [
        "## Task",
        "Analyze the current page state and determine the exact Playwright action needed to perform "
        "the following test step.",
        "",
        "## Test Case",
        f"Title: {test_case.title}",
        f"Step {step.index} of {len(test_case.steps)}: **{step.description}**",
        "",
        "## Current Page State",
        f"URL: {state.url}",
        "",
        "### DOM Structure",
        "```json",
        state.dom_snapshot,
        "```",
        "",
    ]

    if previous_instructions:
        parts.append("## Previously Executed Actions")
        for i, prev in enumerate(previous_instructions, start=1):
            line = f"{i}. {prev.action_type.value} on '{prev.locator}'"
            if prev.value is not None:
                line += f" with value '{prev.value}'"
            parts.append(line)
        parts.append("")

    if state.screenshot:
        parts += [
            "## Visual Context",
            "A screenshot of the current page is attached. Use it to verify element visibility and positioning.",
            "",
        ]

    parts += [
        "## Output",
        "Return a JSON object with the following structure:",
        "```json",
        "{",
        '  "actionType": "<ACTION_TYPE>",',
        '  "locator": "<CSS_OR_XPATH_LOCATOR or null>",',
        '  "value": "<VALUE_IF_NEEDED or null>",',
        '  "description": "<BRIEF_DESCRIPTION>"',
        "}",
        "```",
        "",
        "### Supported Action Types",
        SUPPORTED_ACTIONS,
        "WAIT_TIME takes milliseconds in value; NAVIGATE and ASSERT_URL take the URL (fragment) in value.",
        "",
        "### Locator Strategy (in order of preference)",
        '1. data-testid attribute: `[data-testid="value"]`',
        "2. id attribute: `#elementId`",
        "3. Accessible name/label: `text=Button Label`",
        "4. CSS selector: `button.primary-btn`",
        "5. XPath (last resort): `//button[contains(text(),'Submit')]`",
        "",
        "Return ONLY the JSON object, no additional text or markdown formatting.",
    ]
    return "\n".join(parts)


def get_code_generation_prompt(test_case: TestCase, records: List[StepRecord], start_url: str) -> str:
    parts = [
        "## Task",
        "Generate a complete pytest module that drives Playwright (sync API, `page` fixture from "
        "pytest-playwright) based on the following step recordings.",
        "",
        "## Test Case",
        f"Title: **{test_case.title}**",
        f"Start URL: `{start_url}`",
        "",
        "## Original Steps",
        test_case.formatted_steps(),
        "",
        "## Recorded Playwright Instructions",
        "These are the instructions that were executed in the browser. Steps marked FAILED did not "
        "work as recorded; use the step description and the result URL to write a better action.",
        "",
    ]
    for record in records:
        status = "OK" if record.success else "FAILED"
        parts.append(f"### Step {record.step_index}: {record.step_description} [{status}]")
        instruction = record.instruction
        if instruction is not None:
            parts.append(f"- Action: `{instruction.action_type.value}`")
            if instruction.locator is not None:
                parts.append(f"- Locator: `{instruction.locator}`")
            if instruction.value is not None:
                parts.append(f"- Value: `{instruction.value}`")
            parts.append(f"- Description: {instruction.description}")
        parts.append(f"- Execution Time: {record.duration_ms}ms")
        if record.state_after is not None:
            parts.append(f"- Result URL: `{record.state_after.url}`")
        if record.error_message:
            parts.append(f"- Error: {record.error_message}")
        parts.append("")

    parts += _code_requirements(test_case)
    return "\n".join(parts)


def get_fast_generation_prompt(test_case: TestCase, start_url: str, dom_snapshot: str) -> str:
    parts = [
        "## Task",
        "Write a complete pytest module that drives Playwright (sync API, `page` fixture from "
        "pytest-playwright) and implements every step below, in order.",
        "",
        f"Test Title: {test_case.title}",
        "Steps to execute:",
        test_case.formatted_steps(),
        f"Target URL: {start_url}",
        "",
        "## Current DOM Structure",
        dom_snapshot,
        "",
        "For 'click' steps, find the element in the provided DOM and use an appropriate locator "
        "(test id, id, text, css). For steps that open a new tab, use `page.context.expect_page()`.",
        "",
    ]
    parts += _code_requirements(test_case)
    return "\n".join(parts)


def get_repair_prompt(
    test_case: TestCase,
    failed_source: str,
    message: str,
    stack_trace: Optional[str],
    trace_path: Optional[str],
    dom_snapshot: Optional[str],
    has_screenshot: bool,
) -> str:
    parts = [
        "The previous test execution failed. Please repair the test code.",
        "",
        "## Original Test Case",
        f"Title: {test_case.title}",
        test_case.formatted_steps(),
        "",
        "## Failed Code",
        "```python",
        failed_source,
        "```",
        "",
        "## Error Message",
        message or "(no message)",
        "",
    ]
    if stack_trace:
        parts += ["## Stack Trace", stack_trace, ""]
    if has_screenshot:
        parts += [
            "## Visual Analysis",
            "A screenshot of the page at the moment of failure is attached. Use it to understand "
            "element positions, visibility, pop-ups and overlays.",
            "",
        ]
    if trace_path:
        parts += [f"(Playwright trace saved to: {trace_path})", ""]
    if dom_snapshot:
        parts += ["## Current DOM for analysis", dom_snapshot, ""]
    parts += [
        "## Instructions",
        "1. Use the error and stack trace to identify the exact failing line.",
        "2. Use the DOM structure to find correct locators.",
        "3. Keep every step of the test case, in order.",
        "4. Return ONLY the complete Python module, no markdown formatting.",
    ]
    return "\n".join(parts)


def _code_requirements(test_case: TestCase) -> List[str]:
    return [
        "## Requirements",
        f"1. Exactly one test function named `test_{sanitize_identifier(test_case.title)}`",
        "2. Use the `page` fixture; do not launch browsers yourself",
        "3. Use the exact locators from the recorded instructions where they worked",
        "4. Use `expect(...)` assertions and explicit waits instead of sleeps",
        "5. One short comment per step",
        "6. Return ONLY Python code, no markdown formatting",
        "",
        "## Code Template Structure",
        TEST_FILE_TEMPLATE,
    ]


def sanitize_identifier(title: str) -> str:
    """Lower-case snake identifier built from a free-text title."""
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in title.lower())
    cleaned = "_".join(part for part in cleaned.split("_") if part)
    if not cleaned:
        return "generated"
    if cleaned[0].isdigit():
        cleaned = f"case_{cleaned}"
    return cleaned
