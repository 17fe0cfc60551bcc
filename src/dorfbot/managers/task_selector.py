"""Cross-task resource field selection, scarcest resource first."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

from dorfbot.core.logging import get_logger
from dorfbot.models.fields import FieldDescriptor
from dorfbot.models.tasks import BuildTask

log = get_logger("manager.selector")


@dataclass(frozen=True)
class FieldCandidate:
    task: BuildTask
    field: FieldDescriptor
    resource_value: float

    @property
    def sort_key(self) -> tuple[float, int, int, int, int]:
        return (
            self.resource_value,
            -self.task.priority,
            self.field.level,
            self.task.target_level,
            self.field.slot,
        )


def select_lowest_field(
    tasks: list[BuildTask],
    fields: list[FieldDescriptor],
    resource_amounts: Mapping[str, int] | None = None,
) -> FieldCandidate | None:
    """Pick the field to upgrade next across all resource tasks.

    Order: stock of the field's resource (missing = infinite), task priority
    descending, field level, task target level, slot.
    """
    amounts = resource_amounts or {}
    candidates: list[FieldCandidate] = []
    for task in tasks:
        if not task.is_resource_task:
            continue
        for field in fields:
            if field.type != task.building_type or field.is_building:
                continue
            if field.level >= task.target_level:
                continue
            value = amounts.get(field.type)
            candidates.append(FieldCandidate(
                task=task,
                field=field,
                resource_value=math.inf if value is None else float(value),
            ))
    if not candidates:
        return None
    return min(candidates, key=lambda c: c.sort_key)


def completed_resource_tasks(tasks: list[BuildTask], fields: list[FieldDescriptor]) -> list[BuildTask]:
    """Resource tasks whose every field of the type reached the target level."""
    done: list[BuildTask] = []
    for task in tasks:
        if not task.is_resource_task:
            continue
        of_type = [f for f in fields if f.type == task.building_type]
        if of_type and all(f.level >= task.target_level for f in of_type):
            done.append(task)
    return done
