import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from playwright.async_api import BrowserContext, Page

from uitest_agent.browser.config import DEFAULT_CONFIG
from uitest_agent.browser.driver import Driver


class BrowserSession:
    """Browser exclusively used by one test-case worker.

    Settings missing from ``browser_config`` fall back to ``DEFAULT_CONFIG``.
    """

    def __init__(self, session_id: str = None, browser_config: Dict[str, Any] = None):
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.browser_config = {**DEFAULT_CONFIG, **(browser_config or {})}
        self.driver: Optional[Driver] = None
        self._closed = False
        self._lock = asyncio.Lock()

    async def initialize(self) -> "BrowserSession":
        async with self._lock:
            if self._closed:
                raise RuntimeError(f"Browser session {self.session_id} is closed")
            if self.driver is None:
                self.driver = await Driver.launch(self.browser_config)
                logging.debug(f"Browser session {self.session_id} ready")
        return self

    def _live_driver(self) -> Driver:
        if self._closed or self.driver is None:
            raise RuntimeError(f"Browser session {self.session_id} not initialized or closed")
        return self.driver

    async def navigate_to(self, url: str, timeout: int = 60000, wait_until: str = "domcontentloaded"):
        """Open ``url``; waits for network idle when the page gets there."""
        page = self._live_driver().get_page()
        logging.info(f"Session {self.session_id} navigating to: {url}")
        await page.goto(url, timeout=timeout, wait_until=wait_until)
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout)
        except Exception as e:
            # Pages with long polling never go idle
            logging.warning(f"Network did not settle after navigation to {url}: {e}")

    def get_page(self) -> Page:
        return self._live_driver().get_page()

    def get_context(self) -> BrowserContext:
        return self._live_driver().get_context()

    def is_closed(self) -> bool:
        return self._closed

    async def close(self):
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            driver, self.driver = self.driver, None
        if driver is not None:
            try:
                await driver.close_browser()
            except Exception as e:
                logging.error(f"Error closing browser session {self.session_id}: {e}")
        logging.info(f"Closed browser session {self.session_id}")

    async def __aenter__(self):
        return await self.initialize()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class BrowserSessionManager:
    """Keeps every open session so a finished or cancelled run can close
    whatever its workers left behind."""

    def __init__(self):
        self.sessions: Dict[str, BrowserSession] = {}

    async def create_session(self, browser_config: Dict[str, Any] = None) -> BrowserSession:
        session = BrowserSession(browser_config=browser_config)
        self.sessions[session.session_id] = session
        try:
            await session.initialize()
        except Exception:
            self.sessions.pop(session.session_id, None)
            raise
        logging.info(f"Created browser session: {session.session_id}")
        return session

    async def close_session(self, session_id: str):
        session = self.sessions.pop(session_id, None)
        if session is not None:
            await session.close()

    async def close_all_sessions(self):
        sessions = list(self.sessions.values())
        self.sessions.clear()
        if sessions:
            await asyncio.gather(*[session.close() for session in sessions], return_exceptions=True)
            logging.info(f"Closed {len(sessions)} browser sessions")
