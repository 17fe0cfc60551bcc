"""Pydantic data models for game state and task queues."""

from dorfbot.models.farm_target import FarmTarget, MapCenter, TileInfo
from dorfbot.models.fields import FieldDescriptor, FieldType
from dorfbot.models.results import ActionResult
from dorfbot.models.tasks import BuildTask, TaskStatus, TrainingTask
from dorfbot.models.village import BuildingInfo, Resources, TroopCounts, Village

__all__ = [
    "ActionResult",
    "BuildTask",
    "BuildingInfo",
    "FarmTarget",
    "FieldDescriptor",
    "FieldType",
    "MapCenter",
    "Resources",
    "TaskStatus",
    "TileInfo",
    "TrainingTask",
    "TroopCounts",
    "Village",
]
