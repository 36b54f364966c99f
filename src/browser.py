"""Playwright page source for index and listing pages.

One Chromium instance and one context serve the whole crawl. The index walk
reuses a single long-lived page, while every listing is fetched through
``visit()``, which opens a fresh page and always closes it, so concurrent
listing visits never share page state.

Any failed navigation (no response, HTTP status >= 400, timeout, network
error) surfaces as ``NavigationError`` carrying the URL and status.
"""

import random
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from config.settings import GlobalConfig, get_config
from src.exceptions import BrowserInitializationError, NavigationError
from src.logger import get_logger

log = get_logger(__name__)

LAUNCH_ARGS = ["--disable-dev-shm-usage", "--no-sandbox"]


class BrowserManager:
    """Owns the Playwright lifecycle for one crawl.

    Attributes:
        config: GlobalConfig with headless flag and page timeouts.
        user_agent: User-agent picked once per crawl from the configured pool.

    Example:
        async with BrowserManager.create() as browser:
            async with browser.visit("https://example.com/item/1") as page:
                text = await page.locator("p.list_price").first.inner_text()
    """

    def __init__(self, config: GlobalConfig) -> None:
        self.config = config
        self.user_agent: str = random.choice(config.user_agents)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Launch Chromium for the duration of the ``async with`` block.

        Raises:
            BrowserInitializationError: If Chromium cannot be started.
        """
        instance = cls(config or get_config())
        try:
            await instance._initialize()
            yield instance
        finally:
            await instance._cleanup()

    async def _initialize(self) -> None:
        log.info("Launching browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=self.user_agent,
                locale="sv-SE",
            )
        except Exception as exc:
            await self._cleanup()
            raise BrowserInitializationError(reason=str(exc)) from exc

        log.info("Browser ready", user_agent=self.user_agent[:50] + "...")

    async def new_page(self) -> Page:
        """Open a page in the shared context with the configured timeouts.

        Raises:
            BrowserInitializationError: If called outside ``create()``.
        """
        if self._context is None:
            raise BrowserInitializationError(reason="Browser context not initialized")

        page = await self._context.new_page()
        page.set_default_timeout(self.config.request_timeout_ms)
        page.set_default_navigation_timeout(self.config.request_timeout_ms)
        return page

    async def navigate(
        self,
        page: Page,
        url: str,
        wait_until: str = "domcontentloaded",
    ) -> int:
        """Load ``url`` in ``page`` and return the HTTP status.

        Raises:
            NavigationError: On a missing response, a status >= 400, a
                timeout or any other Playwright failure.
        """
        log.debug("Navigating", url=url)

        try:
            response = await page.goto(url, wait_until=wait_until)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                url=url,
                reason=f"Navigation timeout after {self.config.request_timeout_ms}ms",
            ) from exc
        except Exception as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        if response is None:
            raise NavigationError(url=url, reason="No response received")
        if response.status >= 400:
            raise NavigationError(
                url=url,
                reason=f"HTTP {response.status}",
                status_code=response.status,
            )
        return response.status

    @asynccontextmanager
    async def visit(self, url: str) -> AsyncIterator[Page]:
        """Yield a fresh page already navigated to ``url``; close it on exit.

        Raises:
            NavigationError: If the page cannot be loaded. The page is
                closed before the error propagates.
        """
        page = await self.new_page()
        try:
            await self.navigate(page, url)
            yield page
        finally:
            await page.close()

    async def _cleanup(self) -> None:
        """Close context, browser and Playwright, in that order.

        Errors are logged and do not stop the remaining steps.
        """
        steps = [
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ]
        for name, resource, method in steps:
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as exc:
                log.warning("Error releasing browser resource", resource=name, error=str(exc))

        self._context = None
        self._browser = None
        self._playwright = None
        log.info("Browser resources released")

    @property
    def is_initialized(self) -> bool:
        return None not in (self._playwright, self._browser, self._context)
