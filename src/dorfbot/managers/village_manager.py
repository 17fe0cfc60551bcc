"""Active village bookkeeping: switching invalidates the field cache."""

from __future__ import annotations

from dorfbot.core.logging import get_logger
from dorfbot.game.screens.village import VillageScreen
from dorfbot.managers.field_manager import FieldCache
from dorfbot.models.village import Resources, Village

log = get_logger("manager.village")


class VillageManager:
    """Tracks which village the page is on.

    ``home`` is the village active at login; ``active`` is None while the
    page is still on it.
    """

    def __init__(self, screen: VillageScreen, cache: FieldCache) -> None:
        self.screen = screen
        self.cache = cache
        self.home: str | None = None
        self.active: str | None = None

    async def remember_home(self) -> str | None:
        self.home = await self.screen.get_active_village_id()
        self.active = None
        log.info("home_village", village=self.home)
        return self.home

    async def switch_to_village(self, village: str | None) -> bool:
        """Activate a village by id or name.

        "main" (or nothing) means the home village: a no-op until another
        village has been switched to. Any real switch starts the field
        cache over.
        """
        wanted = (village or "").strip()
        if not wanted or wanted == "main":
            return await self._return_home()
        switched = await self.screen.switch_to_village(wanted)
        self.cache.invalidate()
        if switched:
            self.active = None if wanted == self.home else wanted
        log.info("village_active", village=wanted, switched=switched)
        return switched

    async def _return_home(self) -> bool:
        if self.active is None:
            return True
        if self.home is None:
            villages = await self.screen.get_villages()
            self.home = villages[0].id if villages else None
        self.cache.invalidate()
        if self.home is None:
            log.warning("home_village_unknown", active=self.active)
            return False
        switched = await self.screen.switch_to_village(self.home)
        if switched:
            self.active = None
        log.info("village_active", village="main", home=self.home, switched=switched)
        return switched

    async def villages(self) -> list[Village]:
        return await self.screen.get_villages()

    async def resources(self) -> Resources:
        return await self.screen.get_resource_amounts()
