"""Resource field models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class FieldType(StrEnum):
    WOOD = "wood"
    CLAY = "clay"
    IRON = "iron"
    CROP = "crop"


class FieldDescriptor(BaseModel):
    slot: int
    type: FieldType
    level: int = 0
    is_building: bool = False  # construction accepted during this cache lifetime
