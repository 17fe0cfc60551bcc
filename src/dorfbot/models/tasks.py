"""Task queue models for construction and troop training."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class BuildTask(BaseModel):
    """Resource-typed when building_type is set, otherwise slot/name addressed."""

    id: int = 0
    village_id: str = "main"
    building_type: str | None = None
    building_slot: int | None = None
    building_name: str = ""
    target_level: int = 1
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def is_resource_task(self) -> bool:
        return bool(self.building_type)

    @property
    def label(self) -> str:
        return self.building_name or self.building_type or f"slot {self.building_slot}"


class TrainingTask(BaseModel):
    id: int = 0
    village_id: str = "main"
    building_type: str = "barracks"
    building_slot: int | None = None
    troop_name: str | None = None
    troop_index: int | None = None
    quantity: int = -1  # -1 trains the maximum available
    repeat_forever: bool = False
    repeat_interval: int = 0  # minutes
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    trained_total: int = 0
    last_trained_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def troop_identifier(self) -> str | int:
        if self.troop_index is not None:
            return self.troop_index
        return self.troop_name or ""

    def is_due(self, now: datetime) -> bool:
        """Repeating tasks wait repeat_interval minutes after the last success."""
        if self.last_trained_at is None or self.repeat_interval <= 0:
            return True
        return now - self.last_trained_at >= timedelta(minutes=self.repeat_interval)
