"""Construction executor for resource fields and slot/name addressed buildings."""

from __future__ import annotations

from typing import Mapping

from dorfbot.core.exceptions import is_closed_error
from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import classify_building, names_match
from dorfbot.game.screens.building import BuildingScreen
from dorfbot.game.screens.village import VillageScreen
from dorfbot.managers.field_manager import FieldCache
from dorfbot.managers.task_selector import FieldCandidate, completed_resource_tasks, select_lowest_field
from dorfbot.models.results import ActionResult
from dorfbot.models.tasks import BuildTask

log = get_logger("manager.building")


class BuildingManager:
    """Runs one build task: resolve, classify, upgrade, verify, reconcile."""

    def __init__(self, screen: BuildingScreen, village: VillageScreen, cache: FieldCache) -> None:
        self.screen = screen
        self.village = village
        self.cache = cache

    async def build(
        self,
        task: BuildTask,
        candidate: FieldCandidate | None = None,
        resource_amounts: Mapping[str, int] | None = None,
    ) -> ActionResult:
        try:
            if task.is_resource_task:
                result = await self._build_resource(task, candidate, resource_amounts)
            else:
                result = await self._build_building(task)
        except Exception as e:
            if is_closed_error(e):
                raise
            log.error("build_error", task=task.id, error=str(e))
            result = ActionResult.fail("error", task=task, detail={"error": str(e)})
        result.task = task
        log.info(
            "build_result",
            task=task.id,
            target=task.label,
            slot=result.slot,
            success=result.success,
            reason=result.reason,
        )
        return result

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    async def _build_resource(
        self,
        task: BuildTask,
        candidate: FieldCandidate | None,
        resource_amounts: Mapping[str, int] | None,
    ) -> ActionResult:
        fields = self.cache.fields or []
        if candidate is None or candidate.task.id != task.id:
            candidate = select_lowest_field([task], fields, resource_amounts)
        if candidate is None:
            if completed_resource_tasks([task], fields):
                return ActionResult.fail("completed_already", detail={"completed": True})
            return ActionResult.fail("fields_busy")

        slot = candidate.field.slot
        info, _ = await self.screen.read_slot(slot)
        log.info(
            "build_started",
            slot=slot,
            type=candidate.field.type.value,
            level=candidate.field.level,
            target=task.target_level,
        )
        result = await self._upgrade_and_verify(slot, info.name)
        if result.success:
            result.detail["completed"] = bool(completed_resource_tasks([task], self.cache.fields or []))
        return result

    async def _resolve_slot(self, task: BuildTask) -> int | None:
        if task.building_slot:
            return task.building_slot
        building_type = classify_building(task.building_name)
        if building_type is None:
            return None
        return await self.village.find_building_slot(building_type)

    async def _build_building(self, task: BuildTask) -> ActionResult:
        slot = await self._resolve_slot(task)
        if not slot:
            return ActionResult.fail("building_not_found")

        info, _ = await self.screen.read_slot(slot)
        if info.empty:
            if not task.building_name:
                return ActionResult.fail("building_choice_not_found", slot=slot)
            log.info("construct_started", slot=slot, building=task.building_name)
            outcome = await self.screen.construct_from_empty(task.building_name)
            if not outcome.get("success"):
                return ActionResult.fail(outcome.get("reason") or "building_choice_not_found", slot=slot)
            result = await self._verify(slot, task.building_name)
            if result.success:
                result.detail["completed"] = 1 >= task.target_level
            return result

        if task.building_slot and task.building_name and not names_match(task.building_name, info.name):
            log.warning("building_mismatch", slot=slot, expected=task.building_name, found=info.name)
            return ActionResult.fail("building_mismatch", slot=slot, detail={"skip": True})

        if info.level >= task.target_level:
            return ActionResult.fail("completed_already", slot=slot, detail={"completed": True})

        log.info("build_started", slot=slot, building=info.name, level=info.level, target=task.target_level)
        result = await self._upgrade_and_verify(slot, info.name)
        if result.success:
            result.detail["completed"] = info.level + 1 >= task.target_level
        return result

    # ------------------------------------------------------------------
    # Upgrade + verification
    # ------------------------------------------------------------------

    async def _upgrade_and_verify(self, slot: int, name: str | None) -> ActionResult:
        outcome = await self.screen.upgrade()
        if not outcome.get("success"):
            return ActionResult.fail(outcome.get("reason") or "not_enough_resources", slot=slot)
        return await self._verify(slot, name)

    async def _verify(self, slot: int, name: str | None) -> ActionResult:
        ok, reason = await self.screen.verify_queued(slot, name)
        if not ok:
            if reason in ("queue_full", "not_enough_resources"):
                return ActionResult.fail(reason, slot=slot)
            log.warning("build_not_verified", slot=slot, building=name)
            return ActionResult.fail("build_not_verified", slot=slot)
        self.cache.update_field_level(slot)
        return ActionResult.ok(slot=slot)
