"""Tests for the SQLite task store."""

from __future__ import annotations

import asyncio
from datetime import datetime

from dorfbot.core.database import Database, TaskStore
from dorfbot.models.tasks import BuildTask, TaskStatus, TrainingTask


def _with_store(tmp_path, scenario):
    async def runner():
        db = Database(tmp_path / "dorfbot.db")
        await db.init()
        try:
            return await scenario(TaskStore(db))
        finally:
            await db.close()

    return asyncio.run(runner())


class TestTaskStore:
    def test_pending_ordered_by_priority(self, tmp_path):
        async def scenario(store):
            low = await store.add_build_task(BuildTask(building_type="wood", target_level=3, priority=1))
            high = await store.add_build_task(BuildTask(building_slot=26, building_name="Cuartel", priority=9))
            tasks = await store.fetch_pending("build")
            return low, high, tasks

        low, high, tasks = _with_store(tmp_path, scenario)
        assert [t.id for t in tasks] == [high, low]
        assert tasks[0].building_name == "Cuartel"
        assert tasks[1].building_type == "wood"
        assert tasks[0].status is TaskStatus.PENDING

    def test_filters_and_limit(self, tmp_path):
        async def scenario(store):
            await store.add_build_task(BuildTask(village_id="111", building_slot=20))
            await store.add_build_task(BuildTask(village_id="222", building_slot=21))
            await store.add_build_task(BuildTask(village_id="222", building_slot=22))
            return (
                await store.fetch_pending("build", filters={"village_id": "222"}),
                await store.fetch_pending("build", limit=1),
            )

        filtered, limited = _with_store(tmp_path, scenario)
        assert [t.building_slot for t in filtered] == [21, 22]
        assert len(limited) == 1

    def test_completed_tasks_leave_queue(self, tmp_path):
        async def scenario(store):
            task_id = await store.add_build_task(BuildTask(building_slot=26, target_level=2))
            await store.update_status("build", task_id, status=TaskStatus.COMPLETED, last_reason="success")
            return await store.fetch_pending("build"), await store.list_tasks("build", "completed")

        pending, completed = _with_store(tmp_path, scenario)
        assert pending == []
        assert completed[0].completed_at is not None

    def test_training_totals(self, tmp_path):
        when = datetime(2026, 3, 1, 8, 30)

        async def scenario(store):
            task_id = await store.add_training_task(
                TrainingTask(troop_name="Legionario", quantity=5, repeat_forever=True, repeat_interval=30)
            )
            await store.update_status("training", task_id, trained_total=15, last_trained_at=when)
            return await store.fetch_pending("training")

        (task,) = _with_store(tmp_path, scenario)
        assert task.trained_total == 15
        assert task.last_trained_at == when
        assert task.repeat_forever is True

    def test_clear_pending(self, tmp_path):
        async def scenario(store):
            await store.add_build_task(BuildTask(building_slot=20))
            await store.add_build_task(BuildTask(building_slot=21))
            cleared = await store.clear_pending("build")
            return cleared, await store.fetch_pending("build"), await store.list_tasks("build", "skipped")

        cleared, pending, skipped = _with_store(tmp_path, scenario)
        assert cleared == 2
        assert pending == []
        assert len(skipped) == 2

    def test_action_log_newest_first(self, tmp_path):
        async def scenario(store):
            await store.log_action("build", "wood slot=1", True, "main")
            await store.log_action("train", "legionario x5", False)
            return await store.recent_actions(10)

        actions = _with_store(tmp_path, scenario)
        assert [a["action"] for a in actions] == ["train", "build"]
        assert actions[0]["success"] is False
        assert actions[1]["village_id"] == "main"

    def test_in_memory_database(self):
        async def scenario():
            db = Database()
            await db.init()
            store = TaskStore(db)
            await store.add_build_task(BuildTask(building_slot=20))
            tasks = await store.fetch_pending("build")
            await db.close()
            return tasks

        assert len(asyncio.run(scenario())) == 1
