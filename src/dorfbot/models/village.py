"""Village, resource stock and building detail models."""

from __future__ import annotations

from pydantic import BaseModel

from dorfbot.models.fields import FieldType


class Village(BaseModel):
    id: str
    name: str = ""


class Resources(BaseModel):
    """Stock per resource; None where the stock bar could not be read."""

    wood: int | None = None
    clay: int | None = None
    iron: int | None = None
    crop: int | None = None

    def amounts(self) -> dict[FieldType, int]:
        return {
            FieldType(name): value
            for name, value in self.model_dump().items()
            if value is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.amounts()


class BuildingInfo(BaseModel):
    name: str | None = None
    level: int = 0
    empty: bool = False


class TroopCounts(BaseModel):
    """Troop counts read from a production building for one unit."""

    existing: int | None = None
    queued: int | None = None

    @property
    def total(self) -> int | None:
        if self.existing is None or self.queued is None:
            return None
        return self.existing + self.queued
