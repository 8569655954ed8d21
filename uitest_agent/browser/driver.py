import asyncio
import logging
import os
import re
from typing import Any, Dict, Optional

from playwright.async_api import BrowserContext, Page, async_playwright


def chromium_args(browser_config: Dict[str, Any]) -> list:
    viewport = browser_config["viewport"]
    return [
        "--disable-dev-shm-usage",  # small /dev/shm in Docker
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-gpu",
        "--force-device-scale-factor=1",
        f'--window-size={viewport["width"]},{viewport["height"]}',
    ]


class Driver:
    """Owns one Playwright instance, browser, context and page."""

    # Launching many Chromium processes at the same instant is flaky
    _launch_lock = asyncio.Lock()

    def __init__(self, browser_config: Dict[str, Any]):
        self.config = browser_config
        self.playwright = None
        self.browser = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._tracing = False
        self._is_closed = False

    @classmethod
    async def launch(cls, browser_config: Dict[str, Any]) -> "Driver":
        logging.debug(f"Launching browser with config: {browser_config}")
        driver = cls(browser_config)
        async with cls._launch_lock:
            await driver._start()
        return driver

    async def _start(self):
        config = self.config
        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=config["headless"], args=chromium_args(config)
            )
            self.context = await self.browser.new_context(
                viewport=dict(config["viewport"]),
                device_scale_factor=1,
                is_mobile=False,
                locale=config["language"],
            )
            self.context.set_default_timeout(config.get("timeout_ms", 30000))
            if config.get("tracing"):
                # Recorded for the whole session; saved only when a generated test fails
                await self.context.tracing.start(screenshots=True, snapshots=True, sources=True)
                self._tracing = True
            self.page = await self.context.new_page()
        except Exception:
            logging.error("Failed to launch browser.", exc_info=True)
            await self.close_browser()
            raise

    def is_closed(self) -> bool:
        return self._is_closed

    def get_context(self) -> BrowserContext:
        return self.context

    def get_page(self) -> Page:
        return self.page

    async def save_trace(self, name: str) -> Optional[str]:
        """Stop tracing and write the archive; returns its absolute path, or
        None when tracing is off or already saved."""
        if not self._tracing:
            return None
        trace_dir = self.config.get("trace_dir", "./traces")
        os.makedirs(trace_dir, exist_ok=True)
        trace_path = os.path.abspath(os.path.join(trace_dir, re.sub(r"\W", "_", name) + "-trace.zip"))
        await self.context.tracing.stop(path=trace_path)
        self._tracing = False
        logging.info(f"Saved Playwright trace to {trace_path}")
        return trace_path

    async def close_browser(self):
        if self._is_closed:
            return
        self._is_closed = True
        if self._tracing and self.context is not None:
            try:
                await self.context.tracing.stop()
            except Exception as e:
                logging.debug(f"Tracing already stopped: {e}")
            self._tracing = False
        if self.browser is not None:
            await self.browser.close()
        if self.playwright is not None:
            await self.playwright.stop()
        logging.debug("Browser closed")
