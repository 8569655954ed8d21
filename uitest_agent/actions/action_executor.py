import logging

from playwright.async_api import Page

from uitest_agent.data import ActionType, Instruction

DEFAULT_WAIT_MS = 1000


class ActionExecutor:
    """Applies one instruction to a Playwright page.

    Every handler raises on failure; assertion kinds raise AssertionError.
    """

    def __init__(self, page: Page):
        self.page = page
        self._action_map = {
            ActionType.CLICK: self._execute_click,
            ActionType.DOUBLE_CLICK: self._execute_double_click,
            ActionType.FILL: self._execute_fill,
            ActionType.TYPE: self._execute_type,
            ActionType.NAVIGATE: self._execute_navigate,
            ActionType.WAIT: self._execute_wait,
            ActionType.WAIT_TIME: self._execute_wait_time,
            ActionType.HOVER: self._execute_hover,
            ActionType.SELECT: self._execute_select,
            ActionType.PRESS: self._execute_press,
            ActionType.ASSERT_TEXT: self._execute_assert_text,
            ActionType.ASSERT_VISIBLE: self._execute_assert_visible,
            ActionType.ASSERT_URL: self._execute_assert_url,
            ActionType.SCROLL: self._execute_scroll,
            ActionType.CLEAR: self._execute_clear,
            ActionType.CHECK: self._execute_check,
            ActionType.UNCHECK: self._execute_uncheck,
            ActionType.FOCUS: self._execute_focus,
            ActionType.SCREENSHOT: self._execute_screenshot,
        }

    async def execute(self, instruction: Instruction) -> None:
        execute_func = self._action_map.get(instruction.action_type)
        if not execute_func:
            raise ValueError(f"Unknown action type: {instruction.action_type}")

        logging.info(
            f"Executing: {instruction.action_type.value} on '{instruction.locator}' with value '{instruction.value}'"
        )
        await execute_func(instruction)
        # Let navigation or XHR triggered by the action settle
        await self.page.wait_for_load_state()

    def _locator(self, instruction: Instruction):
        return self.page.locator(instruction.locator)

    async def _execute_click(self, instruction: Instruction):
        await self._locator(instruction).click()

    async def _execute_double_click(self, instruction: Instruction):
        await self._locator(instruction).dblclick()

    async def _execute_fill(self, instruction: Instruction):
        await self._locator(instruction).fill(instruction.value or "")

    async def _execute_type(self, instruction: Instruction):
        await self._locator(instruction).press_sequentially(instruction.value or "")

    async def _execute_navigate(self, instruction: Instruction):
        if not instruction.value:
            raise ValueError("NAVIGATE requires a URL value")
        await self.page.goto(instruction.value, wait_until="domcontentloaded")

    async def _execute_wait(self, instruction: Instruction):
        await self._locator(instruction).wait_for(state="visible")

    async def _execute_wait_time(self, instruction: Instruction):
        time_ms = int(instruction.value) if instruction.value else DEFAULT_WAIT_MS
        await self.page.wait_for_timeout(time_ms)

    async def _execute_hover(self, instruction: Instruction):
        await self._locator(instruction).hover()

    async def _execute_select(self, instruction: Instruction):
        await self._locator(instruction).select_option(instruction.value)

    async def _execute_press(self, instruction: Instruction):
        if not instruction.value:
            raise ValueError("PRESS requires a key value")
        if instruction.locator and instruction.locator.strip():
            await self._locator(instruction).press(instruction.value)
        else:
            await self.page.keyboard.press(instruction.value)

    async def _execute_assert_text(self, instruction: Instruction):
        actual_text = await self._locator(instruction).text_content() or ""
        if (instruction.value or "") not in actual_text:
            raise AssertionError(f"Expected text '{instruction.value}' not found in '{actual_text}'")

    async def _execute_assert_visible(self, instruction: Instruction):
        if not await self._locator(instruction).is_visible():
            raise AssertionError(f"Element not visible: {instruction.locator}")

    async def _execute_assert_url(self, instruction: Instruction):
        current_url = self.page.url
        if (instruction.value or "") not in current_url:
            raise AssertionError(f"Expected URL to contain '{instruction.value}' but was '{current_url}'")

    async def _execute_scroll(self, instruction: Instruction):
        await self._locator(instruction).scroll_into_view_if_needed()

    async def _execute_clear(self, instruction: Instruction):
        await self._locator(instruction).clear()

    async def _execute_check(self, instruction: Instruction):
        await self._locator(instruction).check()

    async def _execute_uncheck(self, instruction: Instruction):
        await self._locator(instruction).uncheck()

    async def _execute_focus(self, instruction: Instruction):
        await self._locator(instruction).focus()

    async def _execute_screenshot(self, instruction: Instruction):
        # The post-action state capture already includes a screenshot
        logging.info("Screenshot captured during step execution")
