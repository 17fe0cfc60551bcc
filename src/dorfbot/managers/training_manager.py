"""Troop training executor with post-submit verification."""

from __future__ import annotations

from datetime import datetime

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.exceptions import is_closed_error
from dorfbot.core.logging import get_logger
from dorfbot.game.screens.training import TrainingScreen
from dorfbot.game.screens.village import VillageScreen
from dorfbot.models.results import ActionResult
from dorfbot.models.tasks import TrainingTask
from dorfbot.models.village import TroopCounts

log = get_logger("manager.training")


class TrainingManager:
    """Queues troops and only reports what the page shows was applied."""

    def __init__(
        self,
        screen: TrainingScreen,
        village: VillageScreen,
        browser: BrowserClient | None = None,
    ) -> None:
        self.screen = screen
        self.village = village
        self.browser = browser

    async def _screenshot(self, name: str) -> None:
        if self.browser is not None:
            await self.browser.screenshot(name)

    async def train(
        self,
        building_type: str,
        troop_identifier: str | int,
        quantity: int = -1,
        explicit_slot: int | None = None,
    ) -> ActionResult:
        slot = await self.village.find_building_slot(building_type, explicit_slot)
        if not slot:
            return ActionResult.fail("building_not_found")

        try:
            await self.screen.open(slot)
        except Exception as e:
            if is_closed_error(e):
                raise
            log.warning("training_navigation_failed", slot=slot, error=str(e))
            return ActionResult.fail("navigation_failed", slot=slot)

        before, row = await self.screen.read_counts(troop_identifier)
        if row is None:
            return ActionResult.fail("troop_not_found", slot=slot)

        requested = quantity if quantity != -1 else row.max_quantity
        if requested <= 0:
            return ActionResult.fail("not_enough_resources_or_zero_max", slot=slot)

        outcome = await self.screen.submit(row, requested)
        if not outcome.get("success"):
            return ActionResult.fail(outcome.get("reason") or "troop_not_found", slot=slot)

        await self.screen.open(slot)
        return await self._verify(slot, troop_identifier, row.name, requested, before)

    async def _verify(
        self,
        slot: int,
        identifier: str | int,
        row_name: str | None,
        requested: int,
        before: TroopCounts,
    ) -> ActionResult:
        error = await self.screen.page_error()
        if error:
            log.warning("training_page_error", slot=slot, error=error)
            return ActionResult.fail("page_error", slot=slot, detail={"error": error})

        after, _ = await self.screen.read_counts(identifier)
        if before.total is not None and after.total is not None:
            applied = after.total - before.total
            if applied <= 0:
                log.warning("training_not_applied", before=before.total, after=after.total)
                await self._screenshot("training-total-not-increased.png")
                return ActionResult.fail("training_not_applied", slot=slot)
            if applied < requested:
                log.warning("training_partial", requested=requested, applied=applied)
            return ActionResult.ok(slot=slot, trained=min(requested, applied))

        if before.queued is not None and after.queued is not None:
            applied = after.queued - before.queued
            if applied <= 0:
                log.warning("training_not_applied", queued_before=before.queued, queued_after=after.queued)
                await self._screenshot("training-count-not-increased.png")
                return ActionResult.fail("training_not_applied", slot=slot)
            return ActionResult.ok(slot=slot, trained=min(requested, applied))

        name = identifier if isinstance(identifier, str) and not identifier.isdigit() else row_name
        if await self.screen.queue_has_entry(name):
            log.info("training_verified_by_queue_entry", troop=name)
            return ActionResult.ok(slot=slot, trained=requested)

        log.warning("training_not_verified", troop=name)
        await self._screenshot("training-verify-failed.png")
        return ActionResult.fail("training_not_verified", slot=slot)

    async def run_task(self, task: TrainingTask, now: datetime | None = None) -> ActionResult | None:
        """Train for a queued task; None when the repeat interval has not elapsed.

        Updates trained_total / last_trained_at / status on the task object.
        """
        now = now or datetime.now()
        if not task.is_due(now):
            log.debug("training_not_due", task=task.id)
            return None
        try:
            result = await self.train(task.building_type, task.troop_identifier, task.quantity, task.building_slot)
        except Exception as e:
            if is_closed_error(e):
                raise
            log.error("training_error", task=task.id, error=str(e))
            result = ActionResult.fail("error", detail={"error": str(e)})
        result.task = task
        if result.success:
            task.trained_total += result.trained
            task.last_trained_at = now
            result.detail["completed"] = not task.repeat_forever
        log.info(
            "training_result",
            task=task.id,
            troop=task.troop_identifier,
            success=result.success,
            reason=result.reason,
            trained=result.trained,
        )
        return result
