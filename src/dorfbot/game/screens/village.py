"""Village overview (dorf1) and building view (dorf2) screens."""

from __future__ import annotations

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.extractors import (
    find_building_slot,
    parse_active_village,
    parse_resource_amounts,
    parse_village_list,
    title_matches,
)
from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import BUILDING_GIDS, FALLBACK_SLOTS, building_keywords, normalize_text
from dorfbot.models.village import Resources, Village

log = get_logger("screen.village")


class VillageScreen:
    """Reads stock, village list and building locations."""

    def __init__(self, browser: BrowserClient) -> None:
        self.browser = browser

    async def get_resource_amounts(self) -> Resources:
        html = await self.browser.navigate("dorf1.php")
        resources = parse_resource_amounts(html)
        log.debug("resources_read", **resources.model_dump())
        return resources

    async def get_villages(self) -> list[Village]:
        html = await self.browser.navigate("dorf1.php")
        villages = parse_village_list(html)
        log.info("villages_found", count=len(villages))
        return villages

    async def get_active_village_id(self) -> str | None:
        """Highlighted village, else the first one listed."""
        html = await self.browser.navigate("dorf1.php")
        active = parse_active_village(html)
        if active:
            return active
        villages = parse_village_list(html)
        return villages[0].id if villages else None

    async def switch_to_village(self, village: str) -> bool:
        """Make a village active by numeric id or by (fuzzy) name.

        "main" and empty values keep the current village.
        """
        wanted = (village or "").strip()
        if not wanted or wanted == "main":
            return True
        if wanted.isdigit():
            await self.browser.navigate(f"dorf1.php?newdid={wanted}")
            log.info("village_switched", village=wanted)
            return True

        target = normalize_text(wanted)
        for candidate in await self.get_villages():
            if candidate.name == target or target in candidate.name:
                await self.browser.navigate(f"dorf1.php?newdid={candidate.id}")
                log.info("village_switched", village=candidate.id, name=candidate.name)
                return True
        log.warning("village_not_found", village=wanted)
        return False

    async def find_building_slot(self, building_type: str, explicit_slot: int | None = None) -> int | None:
        """Slot of an existing production building.

        Explicit slot first, then the building view by keyword / gid, then
        probing the usual slots for a matching title.
        """
        if explicit_slot:
            return explicit_slot

        keywords = building_keywords(building_type)
        html = await self.browser.navigate("dorf2.php")
        slot = find_building_slot(html, keywords, BUILDING_GIDS.get(building_type, ()))
        if slot:
            log.debug("building_slot_found", building=building_type, slot=slot)
            return slot

        for probe in FALLBACK_SLOTS.get(building_type, ()):
            html = await self.browser.navigate(f"build.php?id={probe}", delay=(0.6, 1.0))
            if title_matches(html, keywords):
                log.debug("building_slot_probed", building=building_type, slot=probe)
                return probe
        log.warning("building_slot_not_found", building=building_type)
        return None
