"""Patchright (stealth Playwright) browser automation engine.

One page drives one game session; every game interaction runs through it
sequentially.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from patchright.async_api import async_playwright, Browser, BrowserContext, Page

from dorfbot.core.exceptions import SessionClosedError, is_closed_error
from dorfbot.core.logging import get_logger

if TYPE_CHECKING:
    from dorfbot.core.humanizer import Humanizer

log = get_logger("browser")

STORAGE_STATE_FILE = "storage_state.json"


class BrowserClient:
    """Full browser automation engine for game interaction."""

    def __init__(
        self,
        session_dir: Path,
        base_url: str,
        humanizer: Humanizer | None = None,
        headless: bool = False,
        viewport_width: int = 1366,
        viewport_height: int = 768,
        locale: str = "es-ES",
        user_agent: str | None = None,
        screenshot_dir: Path | None = None,
    ) -> None:
        self.session_dir = session_dir
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self.humanizer = humanizer
        self.headless = headless
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self.locale = locale
        self.user_agent = user_agent
        self.screenshot_dir = screenshot_dir or session_dir.parent / "screenshots"
        self._playwright = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Browser not launched")
        return self._page

    @property
    def storage_path(self) -> Path:
        return self.session_dir / STORAGE_STATE_FILE

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def launch(self) -> None:
        """Launch the browser, restoring a saved session when present."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--disable-infobars",
                f"--window-size={self.viewport_width},{self.viewport_height}",
            ],
        )

        context_kwargs: dict[str, Any] = {
            "locale": self.locale,
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
        }
        if self.user_agent:
            context_kwargs["user_agent"] = self.user_agent
        if self.storage_path.exists():
            context_kwargs["storage_state"] = str(self.storage_path)
            log.info("session_loaded", path=str(self.storage_path))

        self._context = await self._browser.new_context(**context_kwargs)
        self._page = await self._context.new_page()
        log.info("browser_launched", headless=self.headless)

    async def save_session(self) -> None:
        """Persist browser session (cookies + localStorage) to disk."""
        if self._context:
            await self._context.storage_state(path=str(self.storage_path))
            log.debug("session_saved")

    async def close(self) -> None:
        """Save session and close browser."""
        if self._page and not self._page.is_closed():
            try:
                await self.save_session()
            except Exception as e:
                log.warning("session_save_failed", error=str(e))
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()
        self._browser = None
        self._context = None
        self._page = None
        self._playwright = None
        log.info("browser_closed")

    def is_closed(self) -> bool:
        return self._page is None or self._page.is_closed()

    def _ensure_open(self) -> Page:
        if self.is_closed():
            raise SessionClosedError("Target page, context or browser has been closed")
        return self.page

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def url(self, path: str) -> str:
        """Absolute game URL for a path such as 'build.php?id=3'."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def goto(self, path: str) -> None:
        """Load a game page without waiting afterwards."""
        page = self._ensure_open()
        try:
            await page.goto(self.url(path), wait_until="domcontentloaded")
        except Exception as e:
            if is_closed_error(e):
                raise SessionClosedError(str(e)) from e
            raise

    async def navigate(self, path: str, delay: tuple[float, float] | None = None) -> str:
        """Load a game page and return its HTML after a human-like pause."""
        await self.goto(path)
        if self.humanizer:
            if delay:
                await self.humanizer.pause(*delay)
            else:
                await self.humanizer.wait(f"navigate_{path.split('?')[0]}")
        return await self.content()

    async def content(self) -> str:
        """Return the current page HTML."""
        page = self._ensure_open()
        try:
            return await page.content()
        except Exception as e:
            if is_closed_error(e):
                raise SessionClosedError(str(e)) from e
            raise

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a page function and return its serializable result."""
        page = self._ensure_open()
        try:
            if arg is None:
                return await page.evaluate(script)
            return await page.evaluate(script, arg)
        except Exception as e:
            if is_closed_error(e):
                raise SessionClosedError(str(e)) from e
            raise

    async def wait(self, ms: float) -> None:
        """Idle on the page for the given number of milliseconds."""
        await self._ensure_open().wait_for_timeout(ms)

    async def settle(self, low: float = 0.9, high: float = 1.5) -> None:
        """Give the page time to react after a click."""
        if self.humanizer:
            await self.humanizer.pause(low, high)
        else:
            await asyncio.sleep(low)

    # ------------------------------------------------------------------
    # Browser interactions
    # ------------------------------------------------------------------

    async def element_exists(self, selector: str) -> bool:
        page = self._ensure_open()
        return await page.query_selector(selector) is not None

    async def fill_input(self, selector: str, value: str) -> bool:
        """Fill the first element matching selector; False when absent."""
        page = self._ensure_open()
        el = await page.query_selector(selector)
        if el is None:
            return False
        if self.humanizer:
            await self.humanizer.short_wait()
        await el.fill(value)
        return True

    async def click_element(self, selector: str) -> bool:
        page = self._ensure_open()
        el = await page.query_selector(selector)
        if el is None:
            return False
        if self.humanizer:
            await self.humanizer.short_wait()
        await el.click()
        return True

    async def screenshot(self, name: str) -> Path | None:
        """Save a full-page screenshot for diagnostics; never raises."""
        if self.is_closed():
            return None
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        path = self.screenshot_dir / name
        try:
            await self.page.screenshot(path=str(path))
        except Exception as e:
            log.warning("screenshot_failed", name=name, error=str(e))
            return None
        log.info("screenshot_saved", path=str(path))
        return path
