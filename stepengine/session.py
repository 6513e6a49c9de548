"""Browser session owned by one worker thread."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from playwright.sync_api import Browser, BrowserContext, Error as PwError, Page, Playwright, sync_playwright

from .config import RunConfig

log = logging.getLogger(__name__)

VIEWPORT = {"width": 1570, "height": 780}
LOCALE = "en-US"


class BrowserSession:
    """Playwright process, browser, isolated context and the active page.

    The sync Playwright API is bound to the thread that started it, so a
    session must only be used from the thread that called :meth:`start`.
    """

    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def started(self) -> bool:
        return self._page is not None

    def start(self) -> "BrowserSession":
        if self.started:
            return self
        log.info("Starting %s browser for thread %s", self.config.browser_type, threading.current_thread().name)
        self._playwright = sync_playwright().start()
        browser_type = self._browser_type(self._playwright)
        self._browser = browser_type.launch(headless=self.config.headless, slow_mo=self.config.slow_mo_ms)
        self._context = self._browser.new_context(viewport=VIEWPORT, locale=LOCALE, accept_downloads=True)
        self._page = self.new_page()
        return self

    def _browser_type(self, playwright: Playwright) -> Any:
        name = self.config.browser_type.lower()
        if name == "firefox":
            return playwright.firefox
        if name in {"webkit", "safari"}:
            return playwright.webkit
        return playwright.chromium

    @property
    def page(self) -> Page:
        if self._page is None or self._page.is_closed():
            if self._context is None:
                self.start()
            else:
                remaining = self.pages
                self._page = remaining[-1] if remaining else self.new_page()
        assert self._page is not None
        return self._page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            self.start()
        assert self._context is not None
        return self._context

    @property
    def pages(self) -> List[Page]:
        if self._context is None:
            return []
        return [page for page in self._context.pages if not page.is_closed()]

    def new_page(self) -> Page:
        page = self.context.new_page()
        page.set_default_timeout(self.config.browser_timeout_ms)
        return page

    def switch_to(self, page: Page) -> Page:
        page.set_default_timeout(self.config.browser_timeout_ms)
        page.bring_to_front()
        self._page = page
        log.info("Active page is now %s", page.url)
        return page

    def screenshot(self) -> Optional[bytes]:
        if self._page is None or self._page.is_closed():
            return None
        try:
            return self._page.screenshot(full_page=True)
        except PwError as exc:
            log.warning("Full page screenshot failed, trying viewport: %s", exc)
            return self._page.screenshot(full_page=False)

    def close(self) -> None:
        for name, resource in (("context", self._context), ("browser", self._browser)):
            if resource is None:
                continue
            try:
                resource.close()
            except PwError as exc:
                log.warning("Error closing %s: %s", name, exc)
        if self._playwright is not None:
            self._playwright.stop()
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        log.info("Browser closed for thread %s", threading.current_thread().name)

    def __enter__(self) -> "BrowserSession":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class SessionPool:
    """One lazily created :class:`BrowserSession` per thread."""

    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self._sessions: Dict[int, BrowserSession] = {}
        self._lock = threading.Lock()

    def current(self) -> BrowserSession:
        ident = threading.get_ident()
        with self._lock:
            session = self._sessions.get(ident)
            if session is None:
                session = BrowserSession(self.config)
                self._sessions[ident] = session
        return session

    def release(self) -> None:
        with self._lock:
            session = self._sessions.pop(threading.get_ident(), None)
        if session is not None:
            session.close()

    def __len__(self) -> int:
        return len(self._sessions)
