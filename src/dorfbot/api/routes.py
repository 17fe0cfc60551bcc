"""REST API routes for task queue, field cache and bot control."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from dorfbot.models.fields import FieldType
from dorfbot.models.tasks import BuildTask, TrainingTask

if TYPE_CHECKING:
    from dorfbot.app import Application

router = APIRouter(prefix="/api")

# Application reference, set by server.py at startup
_app: Application | None = None


def set_app(app: Application | None) -> None:
    global _app
    _app = app


def _get_app() -> Application:
    if _app is None:
        raise HTTPException(503, "Bot not initialized")
    return _app


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------


@router.get("/health")
async def health() -> dict[str, Any]:
    app = _get_app()
    return {"status": "ok", **app.status()}


# ------------------------------------------------------------------
# Fields
# ------------------------------------------------------------------


@router.get("/fields")
async def get_fields() -> dict[str, Any]:
    cache = _get_app().cache
    fields = cache.fields or []
    return {
        "last_scan_time": cache.last_scan_time,
        "fields": [f.model_dump(mode="json") for f in fields],
        "summary": cache.summary(),
    }


# ------------------------------------------------------------------
# Tasks
# ------------------------------------------------------------------


@router.get("/tasks")
async def get_tasks(status: str | None = None) -> dict[str, Any]:
    store = _get_app().store
    if store is None:
        raise HTTPException(503, "Task store not ready")
    build = await store.list_tasks("build", status)
    training = await store.list_tasks("training", status)
    return {
        "build": [t.model_dump(mode="json") for t in build],
        "training": [t.model_dump(mode="json") for t in training],
    }


class BuildTaskRequest(BaseModel):
    village_id: str = "main"
    building_type: str | None = None
    building_slot: int | None = None
    building_name: str = ""
    target_level: int = 1
    priority: int = 0


class TrainingTaskRequest(BaseModel):
    village_id: str = "main"
    building_type: str = "barracks"
    building_slot: int | None = None
    troop_name: str | None = None
    troop_index: int | None = None
    quantity: int = -1
    repeat_forever: bool = False
    repeat_interval: int = 0
    priority: int = 0


@router.post("/tasks/build")
async def add_build_task(req: BuildTaskRequest) -> dict[str, Any]:
    store = _get_app().store
    if not (req.building_type or req.building_slot or req.building_name):
        raise HTTPException(400, "Need building_type, building_slot or building_name")
    if req.building_type and req.building_type not in {t.value for t in FieldType}:
        raise HTTPException(400, f"Unknown resource type: {req.building_type}")
    task_id = await store.add_build_task(BuildTask(**req.model_dump()))
    return {"status": "ok", "id": task_id}


@router.post("/tasks/training")
async def add_training_task(req: TrainingTaskRequest) -> dict[str, Any]:
    store = _get_app().store
    if req.troop_name is None and req.troop_index is None:
        raise HTTPException(400, "Need troop_name or troop_index")
    task_id = await store.add_training_task(TrainingTask(**req.model_dump()))
    return {"status": "ok", "id": task_id}


@router.get("/actions")
async def get_actions(limit: int = 50) -> list[dict[str, Any]]:
    return await _get_app().store.recent_actions(limit)


# ------------------------------------------------------------------
# Control
# ------------------------------------------------------------------


@router.post("/control/{action}")
async def control(action: str) -> dict[str, Any]:
    app = _get_app()
    runner = app.runner
    if runner is None:
        raise HTTPException(503, "Runner not ready")
    if action == "pause":
        runner.paused = True
    elif action == "resume":
        runner.paused = False
    elif action == "stop":
        runner.stop()
    else:
        raise HTTPException(400, f"Unknown action: {action}")
    return {"status": "ok", **app.status()}
