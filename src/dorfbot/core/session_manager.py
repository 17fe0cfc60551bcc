"""Authentication lifecycle: reuse the persisted session or log in with credentials."""

from __future__ import annotations

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.exceptions import LoginError, SessionClosedError
from dorfbot.core.logging import get_logger

log = get_logger("session")

LOGGED_IN_SELECTOR = '#stockBar, .villageList, #sidebarBoxVillagelist, a[href*="logout"], .playerName'
USERNAME_SELECTOR = 'input[name="name"], input[name="username"]'
PASSWORD_SELECTOR = 'input[name="password"]'
SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'


class SessionManager:
    """Manages game session lifecycle with a persistent browser instance."""

    def __init__(self, browser: BrowserClient, username: str, password: str) -> None:
        self.browser = browser
        self.username = username
        self.password = password

    async def is_logged_in(self) -> bool:
        if self.browser.is_closed():
            return False
        return await self.browser.element_exists(LOGGED_IN_SELECTOR)

    async def login(self) -> None:
        """Open the game; submit credentials unless the restored session is valid."""
        await self.browser.navigate("", delay=(3.0, 5.0))
        if await self.is_logged_in():
            log.info("session_valid_login_skipped")
            return

        log.info("login_starting", username=self.username)
        try:
            if await self.browser.fill_input(USERNAME_SELECTOR, self.username):
                await self.browser.fill_input(PASSWORD_SELECTOR, self.password)
                if await self.browser.click_element(SUBMIT_SELECTOR):
                    await self.browser.settle(5.0, 7.0)

            if not await self.is_logged_in():
                raise LoginError("Login failed: logged-in markers not found")
        except SessionClosedError:
            raise
        except Exception:
            await self.browser.screenshot("error-login.png")
            raise

        await self.browser.save_session()
        log.info("login_successful")
