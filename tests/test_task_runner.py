"""Tests for the scheduler loop."""

from __future__ import annotations

import asyncio
from datetime import datetime

from dorfbot.core.config import BotConfig, FarmingConfig
from dorfbot.core.exceptions import ScanIncompleteError, SessionClosedError
from dorfbot.managers.field_manager import FieldCache
from dorfbot.managers.task_runner import CycleOutcome, TaskRunner
from dorfbot.managers.village_manager import VillageManager
from dorfbot.models.fields import FieldDescriptor, FieldType
from dorfbot.models.results import ActionResult
from dorfbot.models.tasks import BuildTask, TaskStatus, TrainingTask
from dorfbot.models.village import Resources, Village


class FakeStore:
    def __init__(self, build=(), training=()):
        self.tasks = {"build": list(build), "training": list(training)}
        self.updates: list[tuple[str, int, dict]] = []
        self.actions: list[tuple[str, str, bool]] = []
        self.fail_with: Exception | None = None

    async def fetch_pending(self, kind, filters=None, order_by=None, limit=10):
        if self.fail_with is not None:
            raise self.fail_with
        pending = [t for t in self.tasks[kind] if t.status == TaskStatus.PENDING]
        return sorted(pending, key=lambda t: (-t.priority, t.id))[:limit]

    async def update_status(self, kind, task_id, **fields):
        self.updates.append((kind, task_id, fields))
        for task in self.tasks[kind]:
            if task.id == task_id and "status" in fields:
                task.status = fields["status"]

    async def log_action(self, action, detail="", success=True, village_id=None):
        self.actions.append((action, detail, success))


class FakeVillages:
    def __init__(self, resources=None):
        self._resources = resources or Resources()
        self.switched: list[str] = []

    async def switch_to_village(self, village):
        self.switched.append(village)
        return True

    async def resources(self):
        return self._resources


class FakeScanner:
    def __init__(self, fields=None, error=None):
        self.cache = FieldCache()
        if fields is not None:
            self.cache.replace(fields, now=0)
        self.error = error

    async def scan_if_needed(self, force_rescan=False):
        if self.error is not None:
            raise self.error
        return self.cache.fields or []


class FakeBuilder:
    def __init__(self, results=None, cache=None):
        self.results = results or {}
        self.cache = cache
        self.calls: list[tuple[int, object]] = []

    async def build(self, task, candidate=None, resource_amounts=None):
        self.calls.append((task.id, candidate))
        result = self.results.get(task.id, ActionResult.ok())
        if result.success and candidate is not None and self.cache is not None:
            self.cache.update_field_level(candidate.field.slot)
        return result


class FakeTrainer:
    def __init__(self, trained=5):
        self.trained = trained
        self.ran: list[int] = []

    async def run_task(self, task, now=None):
        self.ran.append(task.id)
        task.trained_total += self.trained
        task.last_trained_at = datetime(2026, 1, 1)
        return ActionResult.ok(trained=self.trained, detail={"completed": not task.repeat_forever})


class FakeFarm:
    def __init__(self):
        self.runs = 0

    async def run(self):
        self.runs += 1
        from dorfbot.managers.farm_list_manager import FarmRunResult
        from dorfbot.models.farm_target import MapCenter

        return FarmRunResult(center=MapCenter(x=0, y=0), list_name="raid")


class TrackingVillageScreen:
    """Village screen that only remembers which village is active."""

    def __init__(self, home):
        self.home = home
        self.active = home

    async def get_active_village_id(self):
        return self.active

    async def get_villages(self):
        return [Village(id=self.home), Village(id="222")]

    async def switch_to_village(self, village):
        self.active = village
        return True

    async def get_resource_amounts(self):
        return Resources(wood=100, clay=100, iron=100, crop=100)


class VillageScanner(FakeScanner):
    def __init__(self, screen):
        super().__init__()
        self.screen = screen
        self.scanned: list[str] = []

    async def scan_if_needed(self, force_rescan=False):
        if self.cache.fields is None:
            self.scanned.append(self.screen.active)
            self.cache.replace(_fields({1: (FieldType.WOOD, 1)}), now=0)
        return self.cache.fields


class ActiveVillageBuilder(FakeBuilder):
    def __init__(self, screen):
        super().__init__()
        self.screen = screen
        self.seen: list[tuple[int, str]] = []

    async def build(self, task, candidate=None, resource_amounts=None):
        self.seen.append((task.id, self.screen.active))
        return ActionResult.fail("not_enough_resources")


def _fields(levels):
    return [FieldDescriptor(slot=slot, type=t, level=level) for slot, (t, level) in levels.items()]


async def _no_sleep(seconds):
    return None


def _runner(store, scanner=None, builder=None, trainer=None, villages=None, **kwargs):
    scanner = scanner or FakeScanner(fields=[])
    kwargs.setdefault("sleep", _no_sleep)
    return TaskRunner(
        store=store,
        villages=villages or FakeVillages(),
        scanner=scanner,
        builder=builder or FakeBuilder(cache=scanner.cache),
        trainer=trainer or FakeTrainer(),
        **kwargs,
    )


class TestRunCycle:
    def test_no_tasks(self):
        runner = _runner(FakeStore())
        assert asyncio.run(runner.run_cycle()) is CycleOutcome.NO_TASKS

    def test_building_task_built(self):
        store = FakeStore(build=[BuildTask(id=1, building_slot=26, building_name="Cuartel", target_level=3)])
        builder = FakeBuilder()
        runner = _runner(store, builder=builder)
        assert asyncio.run(runner.run_cycle()) is CycleOutcome.BUILT
        assert builder.calls == [(1, None)]
        assert store.updates[0] == ("build", 1, {"last_reason": "success"})
        assert store.actions[0][0] == "build"

    def test_completion_marks_task(self):
        store = FakeStore(build=[BuildTask(id=1, building_slot=26, target_level=3)])
        builder = FakeBuilder(results={1: ActionResult.ok(detail={"completed": True})})
        asyncio.run(_runner(store, builder=builder).run_cycle())
        assert store.updates[0][2]["status"] is TaskStatus.COMPLETED

    def test_cross_task_selection_picks_scarcest(self):
        fields = _fields({1: (FieldType.WOOD, 1), 2: (FieldType.CROP, 1), 3: (FieldType.CROP, 2)})
        scanner = FakeScanner(fields=fields)
        builder = FakeBuilder(cache=scanner.cache)
        store = FakeStore(build=[
            BuildTask(id=1, building_type="wood", target_level=5, priority=5),
            BuildTask(id=2, building_type="crop", target_level=5),
        ])
        runner = _runner(store, scanner=scanner, builder=builder, villages=FakeVillages(Resources(wood=900, crop=40)))
        assert asyncio.run(runner.run_cycle()) is CycleOutcome.BUILT
        task_id, candidate = builder.calls[0]
        assert task_id == 2
        assert candidate.field.slot == 2

    def test_recoverable_moves_to_next_task(self):
        store = FakeStore(build=[
            BuildTask(id=1, building_slot=26, target_level=3, priority=9),
            BuildTask(id=2, building_slot=27, target_level=3),
        ])
        builder = FakeBuilder(results={1: ActionResult.fail("not_enough_resources")})
        assert asyncio.run(_runner(store, builder=builder).run_cycle()) is CycleOutcome.BUILT
        assert [c[0] for c in builder.calls] == [1, 2]
        assert store.tasks["build"][0].status == TaskStatus.PENDING

    def test_queue_full_stops_village(self):
        store = FakeStore(build=[
            BuildTask(id=1, building_slot=26, target_level=3, priority=9),
            BuildTask(id=2, building_slot=27, target_level=3),
        ])
        builder = FakeBuilder(results={1: ActionResult.fail("queue_full")})
        assert asyncio.run(_runner(store, builder=builder).run_cycle()) is CycleOutcome.QUEUE_FULL
        assert [c[0] for c in builder.calls] == [1]

    def test_nothing_possible(self):
        store = FakeStore(build=[BuildTask(id=1, building_slot=26, target_level=3)])
        builder = FakeBuilder(results={1: ActionResult.fail("building_not_found")})
        assert asyncio.run(_runner(store, builder=builder).run_cycle()) is CycleOutcome.NOTHING_POSSIBLE

    def test_mismatch_is_skipped(self):
        store = FakeStore(build=[BuildTask(id=1, building_slot=26, building_name="Cuartel", target_level=3)])
        builder = FakeBuilder(results={1: ActionResult.fail("building_mismatch", detail={"skip": True})})
        asyncio.run(_runner(store, builder=builder).run_cycle())
        assert store.tasks["build"][0].status is TaskStatus.SKIPPED

    def test_finished_resource_task_completed_without_click(self):
        fields = _fields({1: (FieldType.WOOD, 5), 3: (FieldType.WOOD, 6)})
        scanner = FakeScanner(fields=fields)
        builder = FakeBuilder(cache=scanner.cache)
        store = FakeStore(build=[BuildTask(id=1, building_type="wood", target_level=5)])
        outcome = asyncio.run(_runner(store, scanner=scanner, builder=builder).run_cycle())
        assert outcome is CycleOutcome.NOTHING_POSSIBLE
        assert builder.calls == []
        assert store.tasks["build"][0].status is TaskStatus.COMPLETED

    def test_incomplete_scan_skips_village(self):
        store = FakeStore(build=[BuildTask(id=1, building_type="wood", target_level=5)])
        scanner = FakeScanner(error=ScanIncompleteError(found=17, expected=18))
        builder = FakeBuilder()
        assert asyncio.run(_runner(store, scanner=scanner, builder=builder).run_cycle()) is CycleOutcome.ERROR
        assert builder.calls == []
        assert store.actions == [("scan", "SCAN_INCOMPLETE_RETRY", False)]

    def test_tasks_grouped_by_village(self):
        store = FakeStore(build=[
            BuildTask(id=1, village_id="111", building_slot=26, target_level=3, priority=2),
            BuildTask(id=2, village_id="222", building_slot=26, target_level=3, priority=1),
        ])
        villages = FakeVillages()
        builder = FakeBuilder(results={1: ActionResult.fail("queue_full")})
        outcome = asyncio.run(_runner(store, builder=builder, villages=villages).run_cycle())
        assert outcome is CycleOutcome.BUILT
        assert villages.switched == ["111", "222"]

    def test_main_group_returns_to_home_village(self):
        screen = TrackingVillageScreen(home="111")
        scanner = VillageScanner(screen)
        villages = VillageManager(screen, scanner.cache)
        builder = ActiveVillageBuilder(screen)
        store = FakeStore(build=[
            BuildTask(id=1, village_id="222", building_type="wood", target_level=5, priority=2),
            BuildTask(id=2, village_id="main", building_type="wood", target_level=5, priority=1),
        ])
        runner = _runner(store, scanner=scanner, builder=builder, villages=villages)

        async def scenario():
            await villages.remember_home()
            return await runner.run_cycle()

        assert asyncio.run(scenario()) is CycleOutcome.NOTHING_POSSIBLE
        assert builder.seen == [(1, "222"), (2, "111")]
        assert scanner.scanned == ["222", "111"]


class TestTraining:
    def test_persists_totals(self):
        task = TrainingTask(id=7, troop_name="Legionario", quantity=5)
        store = FakeStore(training=[task])
        trainer = FakeTrainer(trained=5)
        trained = asyncio.run(_runner(store, trainer=trainer).run_training_tasks())
        assert trained == 5
        kind, task_id, fields = store.updates[0]
        assert (kind, task_id) == ("training", 7)
        assert fields["trained_total"] == 5
        assert fields["status"] is TaskStatus.COMPLETED

    def test_repeating_task_stays_pending(self):
        task = TrainingTask(id=7, troop_name="Legionario", repeat_forever=True, repeat_interval=30)
        store = FakeStore(training=[task])
        asyncio.run(_runner(store).run_training_tasks())
        assert "status" not in store.updates[0][2]


class TestFarmTimer:
    def test_runs_on_interval(self):
        now = [1000.0]
        farm = FakeFarm()
        runner = _runner(
            FakeStore(),
            farm=farm,
            farm_config=FarmingConfig(enabled=True, interval_minutes=10),
            clock=lambda: now[0],
        )
        asyncio.run(runner.maybe_run_farm())
        asyncio.run(runner.maybe_run_farm())
        assert farm.runs == 1
        now[0] += 601
        asyncio.run(runner.maybe_run_farm())
        assert farm.runs == 2

    def test_disabled_unless_forced(self):
        farm = FakeFarm()
        runner = _runner(FakeStore(), farm=farm, farm_config=FarmingConfig(enabled=False))
        assert asyncio.run(runner.maybe_run_farm()) is None
        assert asyncio.run(runner.maybe_run_farm(force=True)) is not None
        assert farm.runs == 1


class TestLoop:
    def test_stops_after_sleep(self):
        sleeps: list[float] = []
        store = FakeStore()

        async def sleep(seconds):
            sleeps.append(seconds)
            runner.stop()

        runner = _runner(store, sleep=sleep, bot_config=BotConfig(no_tasks_delay=60))
        asyncio.run(runner.run())
        assert sleeps == [60]
        assert runner.last_outcome is CycleOutcome.NO_TASKS

    def test_closed_session_ends_loop(self):
        store = FakeStore()
        store.fail_with = SessionClosedError("Target page, context or browser has been closed")
        sleeps: list[float] = []

        async def sleep(seconds):
            sleeps.append(seconds)

        runner = _runner(store, sleep=sleep)
        asyncio.run(runner.run())
        assert not runner.running
        assert sleeps == []

    def test_cycle_error_backs_off(self):
        store = FakeStore()
        store.fail_with = ValueError("boom")

        async def sleep(seconds):
            runner.stop()

        runner = _runner(store, sleep=sleep)
        asyncio.run(runner.run())
        assert runner.last_outcome is CycleOutcome.ERROR

    def test_delays(self):
        runner = _runner(FakeStore())
        assert 10 <= runner.delay_for(CycleOutcome.BUILT) <= 15
        assert runner.delay_for(CycleOutcome.QUEUE_FULL) == 120
        assert runner.delay_for(CycleOutcome.NOTHING_POSSIBLE) == 300
        assert runner.delay_for(CycleOutcome.ERROR) == 10

    def test_night_mode(self):
        runner = _runner(FakeStore(), bot_config=BotConfig(night_mode=True, night_hours=(22, 6)))
        assert runner.is_night_mode(datetime(2026, 1, 1, 23, 0))
        assert runner.is_night_mode(datetime(2026, 1, 1, 3, 0))
        assert not runner.is_night_mode(datetime(2026, 1, 1, 12, 0))
        assert not _runner(FakeStore()).is_night_mode(datetime(2026, 1, 1, 3, 0))
