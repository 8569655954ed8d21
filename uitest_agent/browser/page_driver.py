import base64
import logging
from typing import Optional, Protocol

from uitest_agent.actions.action_executor import ActionExecutor
from uitest_agent.browser.session import BrowserSession
from uitest_agent.browser.snapshot import full_dom_snapshot, pruned_dom_snapshot
from uitest_agent.data import Instruction, PageState
from uitest_agent.exceptions import NavigationError


class PageDriver(Protocol):
    """What the orchestrator needs from a live browser page."""

    async def navigate(self, url: str) -> None: ...

    async def capture_state(self) -> PageState: ...

    async def execute(self, instruction: Instruction) -> None: ...

    async def full_snapshot(self) -> str: ...

    async def screenshot(self) -> Optional[str]: ...

    async def save_trace(self, name: str) -> Optional[str]: ...


class PlaywrightPageDriver:
    """PageDriver over the single page of a BrowserSession."""

    def __init__(self, session: BrowserSession, dom_config=None):
        self.session = session
        self.dom_config = dom_config

    @property
    def page(self):
        return self.session.get_page()

    async def navigate(self, url: str) -> None:
        try:
            await self.session.navigate_to(url)
        except Exception as e:
            raise NavigationError(f"Failed to open {url}: {e}") from e

    async def capture_state(self) -> PageState:
        """DOM, screenshot and URL taken back to back from the same page."""
        page = self.page
        dom = await pruned_dom_snapshot(page, self.dom_config)
        screenshot = await self.screenshot()
        return PageState(dom_snapshot=dom, screenshot=screenshot, url=page.url)

    async def execute(self, instruction: Instruction) -> None:
        await ActionExecutor(self.page).execute(instruction)

    async def full_snapshot(self) -> str:
        return await full_dom_snapshot(self.page)

    async def screenshot(self) -> Optional[str]:
        raw = await self.page.screenshot()
        return base64.b64encode(raw).decode("utf-8")

    async def save_trace(self, name: str) -> Optional[str]:
        driver = self.session.driver
        if driver is None:
            return None
        try:
            return await driver.save_trace(name)
        except Exception as e:
            logging.warning(f"Could not save trace for {name}: {e}")
            return None

    async def close(self) -> None:
        await self.session.close()
