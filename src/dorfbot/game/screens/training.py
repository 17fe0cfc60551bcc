"""Production building screen (barracks, stable, workshop, residence)."""

from __future__ import annotations

from typing import Any

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.extractors import (
    TroopRow,
    detect_page_error,
    find_troop_row,
    parse_troop_rows,
    read_queued_troop_count,
    training_queue_has_entry,
)
from dorfbot.core.logging import get_logger
from dorfbot.game.scripts import TRAIN_JS
from dorfbot.models.village import TroopCounts

log = get_logger("screen.training")


class TrainingScreen:
    """Fill and submit the unit training form of a production building."""

    def __init__(self, browser: BrowserClient) -> None:
        self.browser = browser

    async def open(self, slot: int) -> str:
        return await self.browser.navigate(f"build.php?id={slot}", delay=(1.2, 2.0))

    async def find_row(self, identifier: str | int) -> TroopRow | None:
        return find_troop_row(parse_troop_rows(await self.browser.content()), identifier)

    async def read_counts(self, identifier: str | int) -> tuple[TroopCounts, TroopRow | None]:
        """Existing and queued counts of a troop on the open page."""
        html = await self.browser.content()
        row = find_troop_row(parse_troop_rows(html), identifier)
        name = identifier if isinstance(identifier, str) and not identifier.isdigit() else (row.name if row else None)
        counts = TroopCounts(
            existing=row.existing if row else None,
            queued=read_queued_troop_count(html, name),
        )
        return counts, row

    async def submit(self, row: TroopRow, quantity: int) -> dict[str, Any]:
        """Fill the row input and submit its form."""
        result = await self.browser.evaluate(
            TRAIN_JS, {"index": row.index, "name": row.name or row.text, "quantity": quantity}
        ) or {}
        if result.get("success"):
            log.info("training_submitted", troop=row.name, index=row.index, quantity=quantity)
            await self.browser.settle(2.0, 3.2)
        return result

    async def queue_has_entry(self, troop_name: str | None) -> bool:
        return training_queue_has_entry(await self.browser.content(), troop_name)

    async def page_error(self) -> str | None:
        return detect_page_error(await self.browser.content())
