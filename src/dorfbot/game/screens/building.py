"""Building slot screen (build.php?id=N) - reading and upgrading."""

from __future__ import annotations

from typing import Any

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.extractors import is_slot_queued, parse_building_info, verify_building_queued
from dorfbot.core.logging import get_logger
from dorfbot.game.scripts import CHOOSE_BUILDING_JS, UPGRADE_JS
from dorfbot.models.village import BuildingInfo

log = get_logger("screen.building")


class BuildingScreen:
    """Interact with a single building slot."""

    def __init__(self, browser: BrowserClient) -> None:
        self.browser = browser

    async def open_slot(self, slot: int) -> str:
        return await self.browser.navigate(f"build.php?id={slot}", delay=(1.2, 2.0))

    async def read_slot(self, slot: int) -> tuple[BuildingInfo, bool]:
        """Open a slot and return its building info plus the queued-at-slot flag."""
        html = await self.open_slot(slot)
        return parse_building_info(html), is_slot_queued(html, slot)

    async def read_open_slot(self) -> BuildingInfo:
        return parse_building_info(await self.browser.content())

    async def upgrade(self) -> dict[str, Any]:
        """Click the upgrade control of the open slot.

        Returns {"success": True} or {"success": False, "reason": ...}.
        """
        result = await self.browser.evaluate(UPGRADE_JS) or {}
        if not result.get("success"):
            reason = result.get("reason") or "not_enough_resources"
            log.info("upgrade_unavailable", reason=reason)
            return {"success": False, "reason": reason}

        url = result.get("url")
        if url:
            await self.browser.navigate(url, delay=(1.5, 2.2))
        else:
            await self.browser.settle(2.0, 3.0)
        return {"success": True}

    async def construct_from_empty(self, building_name: str) -> dict[str, Any]:
        """Pick a building by label on an empty plot, then confirm construction."""
        clicked = await self.browser.evaluate(CHOOSE_BUILDING_JS, building_name)
        if not clicked:
            return {"success": False, "reason": "building_choice_not_found"}
        await self.browser.settle(0.9, 1.5)
        return await self.upgrade()

    async def verify_queued(self, slot: int | None, building_name: str | None) -> tuple[bool, str]:
        html = await self.browser.content()
        return verify_building_queued(html, slot, building_name)
