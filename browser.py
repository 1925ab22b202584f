"""Playwright browser lifecycle: one browser per run, one context and page per test case."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Literal, Optional

from playwright.async_api import (
    Browser,
    Page,
    Playwright,
    async_playwright,
    TimeoutError as PlaywrightTimeout,
)

from config.models import BrowserConfig
from exceptions import BrowserError, BrowserNotStartedError, NavigationError, ScreenshotError

BrowserType = Literal["chromium", "firefox", "webkit"]


class BrowserSession:
    """Owns the Playwright driver and browser; hands out isolated pages."""

    def __init__(
        self,
        config: Optional[BrowserConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or BrowserConfig()
        self.logger = logger or logging.getLogger("browser")
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None

    @property
    def browser_type(self) -> BrowserType:
        return self.config.browser

    def _ensure_started(self) -> None:
        """Raise if browser not started."""
        if self.browser is None:
            raise BrowserNotStartedError()

    async def start(self) -> None:
        """Start the configured browser engine."""
        self._playwright = await async_playwright().start()

        browser_launcher = getattr(self._playwright, self.config.browser)
        launch_options: dict[str, Any] = {"headless": self.config.headless}
        if self.config.slow_mo > 0:
            launch_options["slow_mo"] = self.config.slow_mo

        try:
            self.browser = await browser_launcher.launch(**launch_options)
        except Exception as e:
            await self._playwright.stop()
            self._playwright = None
            raise BrowserError(f"Failed to launch {self.config.browser}: {e}") from e
        self.logger.info(f"Browser started: {self.config.browser} (headless={self.config.headless})")

    async def close(self) -> None:
        """Close the browser and clean up resources."""
        if self.browser:
            await self.browser.close()
            self.browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        self.logger.info("Browser closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def new_page(self) -> AsyncIterator[Page]:
        """A fresh context and page; nothing is shared between test cases."""
        self._ensure_started()
        context = await self.browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height}
        )
        try:
            page = await context.new_page()
            yield page
        finally:
            await context.close()


async def goto(
    page: Page,
    url: str,
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded",
    timeout: float = 30000,
) -> None:
    """Navigate to a URL, raising NavigationError on failure."""
    try:
        await page.goto(url, wait_until=wait_until, timeout=timeout)
    except PlaywrightTimeout as e:
        raise NavigationError(f"Navigation timed out: {url}", url=url, timeout=timeout) from e
    except Exception as e:
        raise NavigationError(f"Navigation failed: {e}", url=url) from e


async def save_screenshot(page: Page, path: Path, full_page: bool = True) -> Path:
    """Write a screenshot of the page to ``path``."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        await page.screenshot(path=str(path), full_page=full_page)
    except Exception as e:
        raise ScreenshotError(f"Screenshot failed: {e}") from e
    return path
