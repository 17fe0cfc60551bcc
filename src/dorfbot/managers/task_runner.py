"""Scheduler loop: one construction per cycle, then training and farm lists."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import StrEnum

from dorfbot.core.config import BotConfig, FarmingConfig
from dorfbot.core.database import TaskStore
from dorfbot.core.exceptions import DorfbotError, ScanIncompleteError, is_closed_error
from dorfbot.core.humanizer import Humanizer
from dorfbot.core.logging import get_logger
from dorfbot.managers.building_manager import BuildingManager
from dorfbot.managers.farm_list_manager import FarmListBuilder, FarmRunResult
from dorfbot.managers.field_manager import FieldCache, FieldScanner
from dorfbot.managers.task_selector import completed_resource_tasks, select_lowest_field
from dorfbot.managers.training_manager import TrainingManager
from dorfbot.managers.village_manager import VillageManager
from dorfbot.models.results import ActionResult
from dorfbot.models.tasks import BuildTask, TaskStatus

log = get_logger("runner")


class CycleOutcome(StrEnum):
    BUILT = "built"
    QUEUE_FULL = "queue_full"
    NOTHING_POSSIBLE = "nothing_possible"
    NO_TASKS = "no_tasks"
    ERROR = "error"


class TaskRunner:
    """Drives the pending task queue against the single game page."""

    def __init__(
        self,
        store: TaskStore,
        villages: VillageManager,
        scanner: FieldScanner,
        builder: BuildingManager,
        trainer: TrainingManager,
        farm: FarmListBuilder | None = None,
        bot_config: BotConfig | None = None,
        farm_config: FarmingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.villages = villages
        self.scanner = scanner
        self.builder = builder
        self.trainer = trainer
        self.farm = farm
        self.config = bot_config or BotConfig()
        self.farm_config = farm_config or FarmingConfig()
        self._sleep = sleep
        self._clock = clock
        self.running = False
        self.paused = False
        self._next_farm_at: float = 0.0
        self.last_outcome: CycleOutcome | None = None
        self.last_farm_result: FarmRunResult | None = None

    @property
    def cache(self) -> FieldCache:
        return self.scanner.cache

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def stop(self) -> None:
        self.running = False

    def is_night_mode(self, now: datetime | None = None) -> bool:
        """Whether to idle; always False unless night mode is enabled."""
        if not self.config.night_mode:
            return False
        start, end = self.config.night_hours
        hour = (now or datetime.now()).hour
        if start <= end:
            return start <= hour < end
        return hour >= start or hour < end

    def delay_for(self, outcome: CycleOutcome) -> float:
        if outcome is CycleOutcome.BUILT:
            return Humanizer.random_cycle_delay(self.config.built_delay)
        if outcome is CycleOutcome.QUEUE_FULL:
            return self.config.queue_full_delay
        if outcome is CycleOutcome.NOTHING_POSSIBLE:
            return self.config.idle_delay
        if outcome is CycleOutcome.NO_TASKS:
            return self.config.no_tasks_delay
        return self.config.error_delay

    async def run(self) -> None:
        """Loop until stopped or the browser session is gone."""
        self.running = True
        log.info("runner_started")
        while self.running:
            if self.paused:
                await self._sleep(5)
                continue
            if self.is_night_mode():
                log.info("night_mode_sleeping", seconds=self.config.night_sleep)
                await self._sleep(self.config.night_sleep)
                continue
            try:
                outcome = await self.run_cycle()
            except Exception as e:
                if is_closed_error(e):
                    log.info("session_closed_stopping")
                    self.running = False
                    break
                log.error("cycle_error", error=str(e))
                outcome = CycleOutcome.ERROR
            self.last_outcome = outcome
            delay = self.delay_for(outcome)
            log.info("cycle_done", outcome=outcome.value, sleep=round(delay, 1))
            if self.running:
                await self._sleep(delay)
        log.info("runner_stopped")

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleOutcome:
        tasks = await self.store.fetch_pending("build", limit=self.config.task_batch_limit)
        if not tasks:
            outcome = CycleOutcome.NO_TASKS
        else:
            outcome = await self.run_build_tasks(tasks)
        await self.run_training_tasks()
        await self.maybe_run_farm()
        return outcome

    async def run_build_tasks(self, tasks: list[BuildTask]) -> CycleOutcome:
        groups: dict[str, list[BuildTask]] = {}
        for task in tasks:
            groups.setdefault(task.village_id or "main", []).append(task)

        saw_queue_full = False
        saw_error = False
        for village_id, group in groups.items():
            try:
                outcome = await self._process_village(village_id, group)
            except ScanIncompleteError as e:
                log.error("scan_failed", village=village_id, found=e.found, expected=e.expected)
                await self.store.log_action("scan", str(e), success=False, village_id=village_id)
                saw_error = True
                continue
            if outcome is CycleOutcome.BUILT:
                return outcome
            if outcome is CycleOutcome.QUEUE_FULL:
                saw_queue_full = True
        if saw_queue_full:
            return CycleOutcome.QUEUE_FULL
        if saw_error:
            return CycleOutcome.ERROR
        return CycleOutcome.NOTHING_POSSIBLE

    async def _process_village(self, village_id: str, group: list[BuildTask]) -> CycleOutcome:
        if not await self.villages.switch_to_village(village_id):
            log.warning("village_switch_failed", village=village_id)
            return CycleOutcome.NOTHING_POSSIBLE

        resource_tasks = [t for t in group if t.is_resource_task]
        amounts: dict = {}
        done: set[int] = set()
        if resource_tasks:
            amounts = (await self.villages.resources()).amounts()
            fields = await self.scanner.scan_if_needed()
            for task in completed_resource_tasks(resource_tasks, fields):
                done.add(task.id)
                await self.store.update_status("build", task.id, status=TaskStatus.COMPLETED, last_reason="completed")
                await self.store.log_action("build", f"{task.label} -> {task.target_level} already reached", True, village_id)
                log.info("task_completed", task=task.id, target=task.label, level=task.target_level)

        attempted: set[int] = set()
        while True:
            pending = [t for t in group if t.id not in attempted and t.id not in done]
            if not pending:
                return CycleOutcome.NOTHING_POSSIBLE
            task = pending[0]
            candidate = None
            if task.is_resource_task:
                pool = [t for t in pending if t.is_resource_task]
                candidate = select_lowest_field(pool, self.cache.fields or [], amounts)
                if candidate is not None:
                    task = candidate.task
            attempted.add(task.id)

            result = await self.builder.build(task, candidate, amounts)
            await self._record_build(task, result, village_id)
            if result.success:
                return CycleOutcome.BUILT
            if result.reason == "completed_already":
                done.add(task.id)
                continue
            if result.reason == "queue_full":
                return CycleOutcome.QUEUE_FULL
            if result.recoverable:
                continue
            await self._sleep(self.config.between_tasks_delay)

    async def _record_build(self, task: BuildTask, result: ActionResult, village_id: str) -> None:
        fields: dict = {"last_reason": result.reason}
        if result.detail.get("completed"):
            fields["status"] = TaskStatus.COMPLETED
        elif result.detail.get("skip"):
            fields["status"] = TaskStatus.SKIPPED
        await self.store.update_status("build", task.id, **fields)
        detail = f"{task.label} slot={result.slot} reason={result.reason}"
        await self.store.log_action("build", detail, result.success, village_id)

    async def run_training_tasks(self) -> int:
        """Run every due training task once; returns units queued."""
        tasks = await self.store.fetch_pending("training", limit=self.config.task_batch_limit)
        trained = 0
        for task in tasks:
            if not task.is_due(datetime.now()):
                continue
            await self.villages.switch_to_village(task.village_id)
            result = await self.trainer.run_task(task)
            if result is None:
                continue
            fields: dict = {"last_reason": result.reason}
            if result.success:
                trained += result.trained
                fields["trained_total"] = task.trained_total
                fields["last_trained_at"] = task.last_trained_at
                if result.detail.get("completed"):
                    fields["status"] = TaskStatus.COMPLETED
            await self.store.update_status("training", task.id, **fields)
            detail = f"{task.troop_identifier} x{result.trained} reason={result.reason}"
            await self.store.log_action("train", detail, result.success, task.village_id)
        return trained

    async def maybe_run_farm(self, force: bool = False) -> FarmRunResult | None:
        if self.farm is None or not (self.farm_config.enabled or force):
            return None
        now = self._clock()
        if not force and now < self._next_farm_at:
            return None
        self._next_farm_at = now + self.farm_config.interval_minutes * 60
        try:
            result = await self.farm.run()
        except DorfbotError as e:
            if is_closed_error(e):
                raise
            log.warning("farm_run_failed", error=str(e))
            await self.store.log_action("farm", str(e), success=False)
            return None
        self.last_farm_result = result
        await self.store.log_action(
            "farm", f"added={result.added_count} lists={len(result.lists)} source={result.source}", True
        )
        return result
