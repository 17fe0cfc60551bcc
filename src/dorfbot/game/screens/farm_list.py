"""Rally point farm-list tab - list selection, creation and target rows."""

from __future__ import annotations

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.extractors import parse_farm_list_names, parse_farm_list_targets
from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import normalize_text
from dorfbot.game.scripts import (
    FILL_LIST_NAME_JS,
    FILL_TARGET_JS,
    SET_TROOPS_JS,
    START_ALL_JS,
    click_text,
)

log = get_logger("screen.farm_list")

TAB_PHRASES = ("lista de vacas", "farm list", "raid list")
LIST_SELECTOR = "a, button, .raidList, .listEntry, .listTitle, .name, .raidListTitle, .listTitleText"
CREATE_PHRASES = (
    "nueva lista", "crear lista", "crear nueva lista", "nueva lista de vacas",
    "new list", "create list", "create new list", "new farm list", "new raid list",
)
CREATE_OK_PHRASES = ("crear", "guardar", "ok", "aceptar", "save", "create")
ADD_TARGET_PHRASES = ("anadir objetivo", "add target", "nuevo objetivo")
ADD_CONFIRM_PHRASES = ("anadir", "agregar", "ok", "aceptar", "guardar", "save")
SAVE_PHRASES = ("guardar", "save")


class FarmListScreen:
    """Farm lists live on the rally point's farm-list tab."""

    def __init__(self, browser: BrowserClient) -> None:
        self.browser = browser

    async def open_tab(self, rally_slot: int) -> None:
        await self.browser.navigate(f"build.php?id={rally_slot}", delay=(1.2, 2.0))
        if not await click_text(self.browser, TAB_PHRASES):
            log.warning("farm_list_tab_not_found", slot=rally_slot)
        await self.browser.settle(0.9, 1.5)

    async def list_names(self) -> list[str]:
        return parse_farm_list_names(await self.browser.content())

    async def select_list(self, name: str) -> bool:
        selected = await click_text(self.browser, [name], selector=LIST_SELECTOR)
        if selected:
            await self.browser.settle(0.8, 1.4)
        return selected

    async def create_list(self, name: str) -> bool:
        if not name.strip():
            return False
        if not await click_text(
            self.browser, CREATE_PHRASES, selector='a, button, input[type="button"], input[type="submit"]'
        ):
            log.warning("farm_list_create_button_not_found", name=name)
            return False
        await self.browser.settle(0.6, 1.0)
        await self.browser.evaluate(FILL_LIST_NAME_JS, name.strip())
        await click_text(
            self.browser, CREATE_OK_PHRASES,
            selector='button, input[type="submit"], input[type="button"], a.button',
        )
        await self.browser.settle(1.2, 2.0)
        log.info("farm_list_created", name=name)
        return True

    async def open_list(self, name: str, rally_slot: int, create_if_missing: bool = False) -> bool:
        """Open the tab and select a list, creating it first when asked to."""
        await self.open_tab(rally_slot)
        if await self.select_list(name):
            return True
        if create_if_missing:
            wanted = normalize_text(name)
            existing = await self.list_names()
            if not any(n == wanted or wanted in n for n in existing):
                await self.create_list(name)
            if await self.select_list(name):
                return True
        log.warning("farm_list_not_selected", name=name)
        return False

    async def targets(self) -> list[tuple[int, int]]:
        return parse_farm_list_targets(await self.browser.content())

    async def add_target(self, x: int, y: int, name: str | None = None) -> bool:
        """Add a coordinate through the open list's own form."""
        if not await click_text(self.browser, ADD_TARGET_PHRASES):
            log.warning("add_target_button_not_found")
            return False
        await self.browser.settle(0.8, 1.4)
        if not await self.browser.evaluate(FILL_TARGET_JS, {"x": x, "y": y, "name": name}):
            log.warning("add_target_inputs_not_found", x=x, y=y)
            return False
        await self.browser.settle(0.4, 0.9)
        if not await click_text(self.browser, ADD_CONFIRM_PHRASES, selector='button, input[type="submit"], a'):
            log.debug("add_target_confirm_not_found", x=x, y=y)
        await self.browser.settle(1.0, 1.6)
        return True

    async def set_troops_for_all(self, troops: dict[str, int]) -> int:
        """Set the troop allocation on every target row; returns rows changed."""
        if not troops:
            return 0
        changed = await self.browser.evaluate(SET_TROOPS_JS, {"counts": troops}) or 0
        if changed:
            await self.browser.settle(0.4, 0.9)
        return int(changed)

    async def save(self) -> bool:
        saved = await click_text(self.browser, SAVE_PHRASES, selector='button, input[type="submit"]')
        if saved:
            await self.browser.settle(1.2, 1.8)
        return saved

    async def start_all(self, rally_slot: int) -> bool:
        await self.open_tab(rally_slot)
        started = bool(await self.browser.evaluate(START_ALL_JS))
        if started:
            await self.browser.settle(1.2, 2.0)
        return started
