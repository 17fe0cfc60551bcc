"""Map screen (karte.php) - own coordinates, tile details, add to farm list."""

from __future__ import annotations

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.extractors import parse_map_center, parse_map_tile
from dorfbot.core.logging import get_logger
from dorfbot.game.scripts import SELECT_OPTION_JS, click_text
from dorfbot.models.farm_target import TileInfo

log = get_logger("screen.map")

ADD_TO_LIST_PHRASES = ("agregar a la lista de vacas", "add to farm list", "add to farmlist")
CONFIRM_PHRASES = ("agregar", "anadir", "ok", "aceptar", "guardar", "save")


class MapScreen:
    def __init__(self, browser: BrowserClient) -> None:
        self.browser = browser

    async def read_center(self) -> tuple[int, int] | None:
        """Own village coordinates as shown by the map view."""
        html = await self.browser.navigate("karte.php", delay=(1.2, 2.0))
        return parse_map_center(html)

    async def tile_info(self, x: int, y: int) -> TileInfo | None:
        """Open a tile; None when it is not a village or the population is unreadable."""
        html = await self.browser.navigate(f"karte.php?x={x}&y={y}", delay=(0.9, 1.5))
        return parse_map_tile(html)

    async def add_to_farm_list(self, list_name: str) -> bool:
        """Add the open tile to a farm list from its detail panel."""
        if not await click_text(self.browser, ADD_TO_LIST_PHRASES):
            return False
        await self.browser.settle(0.9, 1.5)
        if await self.browser.evaluate(SELECT_OPTION_JS, list_name):
            await self.browser.settle(0.4, 0.9)
        if await click_text(self.browser, CONFIRM_PHRASES, selector='button, input[type="submit"]'):
            await self.browser.settle(0.9, 1.5)
        return True
