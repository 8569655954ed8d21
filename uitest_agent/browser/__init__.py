from .page_driver import PageDriver, PlaywrightPageDriver
from .session import BrowserSession, BrowserSessionManager

__all__ = ["BrowserSession", "BrowserSessionManager", "PageDriver", "PlaywrightPageDriver"]
