"""Farm list target model."""

from __future__ import annotations

import math

from pydantic import BaseModel


class FarmTarget(BaseModel):
    x: int
    y: int
    population: int | None = None
    distance: float | None = None
    name: str | None = None
    list_name: str | None = None

    @property
    def key(self) -> str:
        return coord_key(self.x, self.y)

    def distance_from(self, x: int, y: int) -> float:
        return math.hypot(self.x - x, self.y - y)


class MapCenter(BaseModel):
    x: int
    y: int
    source: str = "options"  # options | config | map


class TileInfo(BaseModel):
    """A map tile confirmed to hold a village with a readable population."""

    population: int
    name: str | None = None


def coord_key(x: int, y: int) -> str:
    return f"{x}|{y}"
