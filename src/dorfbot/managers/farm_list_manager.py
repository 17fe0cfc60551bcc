"""Farm-list builder: finds small villages around a center and files them into lists."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from dorfbot.core.config import FarmingConfig
from dorfbot.core.exceptions import CenterNotFoundError, ExtractionError, is_closed_error
from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import normalize_text
from dorfbot.game.inactive_feed import InactiveFeed
from dorfbot.game.screens.farm_list import FarmListScreen
from dorfbot.game.screens.map import MapScreen
from dorfbot.game.screens.village import VillageScreen
from dorfbot.models.farm_target import FarmTarget, MapCenter, coord_key

log = get_logger("manager.farm_list")


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------


def generate_coords_in_radius(cx: int, cy: int, max_distance: float) -> list[tuple[int, int, float]]:
    """Every integer tile with 0 < distance <= max_distance, nearest first."""
    reach = max(0, math.floor(max_distance))
    coords: list[tuple[int, int, float]] = []
    for dx in range(-reach, reach + 1):
        for dy in range(-reach, reach + 1):
            dist = math.hypot(dx, dy)
            if dist == 0 or dist > max_distance:
                continue
            coords.append((cx + dx, cy + dy, dist))
    coords.sort(key=lambda c: c[2])
    return coords


def build_farm_list_sequence(base_name: str, existing_names: list[str], max_lists: int) -> list[tuple[str, bool]]:
    """Ordered (name, exists) list names to fill.

    The base list comes first, followed by existing ``base-N`` lists (or,
    when there are none, existing purely numeric lists), then new names
    continuing whichever scheme is in use.
    """
    base = normalize_text(base_name)
    names = [n for n in existing_names if n]
    entries: list[tuple[str, bool]] = []
    seen: set[str] = set()

    def add(name: str, exists: bool) -> None:
        if name and name not in seen:
            seen.add(name)
            entries.append((name, exists))

    add(base, any(n == base or base in n for n in names))

    hyphen: list[tuple[int, str]] = []
    numeric: list[tuple[int, str]] = []
    for name in names:
        if name == base:
            continue
        if name.startswith(f"{base}-"):
            suffix = name[len(base) + 1:]
            if suffix.isdigit():
                hyphen.append((int(suffix), name))
            continue
        if re.fullmatch(r"\d+", name):
            numeric.append((int(name), name))

    if hyphen:
        for _, name in sorted(hyphen):
            add(name, True)
    elif numeric:
        for _, name in sorted(numeric):
            add(name, True)

    next_hyphen = max(i for i, _ in hyphen) + 1 if hyphen else 2
    next_numeric = max(i for i, _ in numeric) + 1 if numeric else 2
    while len(entries) < max_lists:
        if hyphen or not numeric:
            add(f"{base}-{next_hyphen}", False)
            next_hyphen += 1
        else:
            add(str(next_numeric), False)
            next_numeric += 1
    return entries[:max_lists]


def filter_feed_candidates(
    coords: list[tuple[int, int]],
    center: MapCenter,
    min_distance: float = 0,
    max_distance: float | None = None,
) -> list[tuple[int, int, float]]:
    """Feed coordinates inside the distance band, nearest first."""
    out: list[tuple[int, int, float]] = []
    for x, y in coords:
        dist = math.hypot(x - center.x, y - center.y)
        if dist < min_distance:
            continue
        if max_distance is not None and dist > max_distance:
            continue
        out.append((x, y, dist))
    out.sort(key=lambda c: c[2])
    return out


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------


@dataclass
class FarmListReport:
    list_name: str
    added_count: int = 0
    existing_count: int = 0
    is_full: bool = False


@dataclass
class FarmRunResult:
    center: MapCenter
    list_name: str
    source: str = "map"
    added: list[FarmTarget] = field(default_factory=list)
    lists: list[FarmListReport] = field(default_factory=list)

    @property
    def added_count(self) -> int:
        return len(self.added)


# ----------------------------------------------------------------------
# Builder
# ----------------------------------------------------------------------


class FarmListBuilder:
    """Fills one or more farm lists with verified, de-duplicated targets."""

    def __init__(
        self,
        config: FarmingConfig,
        map_screen: MapScreen,
        farm_screen: FarmListScreen,
        village: VillageScreen,
        feed: InactiveFeed | None = None,
    ) -> None:
        self.config = config
        self.map = map_screen
        self.farm = farm_screen
        self.village = village
        self.feed = feed
        self._rally_slot: int | None = None

    async def get_center(self, x: int | None = None, y: int | None = None) -> MapCenter:
        """Explicit coordinates, then configured ones, then the map view."""
        if x is not None and y is not None:
            return MapCenter(x=x, y=y, source="options")
        if self.config.center_x is not None and self.config.center_y is not None:
            return MapCenter(x=self.config.center_x, y=self.config.center_y, source="config")
        pair = await self.map.read_center()
        if pair is None:
            raise CenterNotFoundError(
                "Could not detect the village coordinates; set FARM_CENTER_X and FARM_CENTER_Y"
            )
        return MapCenter(x=pair[0], y=pair[1], source="map")

    async def rally_slot(self) -> int:
        if self._rally_slot is None:
            slot = await self.village.find_building_slot("rallyPoint", self.config.rally_slot)
            if not slot:
                raise ExtractionError("Rally point not found")
            self._rally_slot = slot
        return self._rally_slot

    async def _candidates(self, center: MapCenter, wanted: int) -> list[tuple[int, int, float]]:
        if self.config.source == "inactivesearch":
            feed = self.feed or InactiveFeed(
                self.config.inactive_search_url, self.config.inactive_search_max_pages
            )
            coords = await feed.coords(limit=max(wanted * 20, wanted))
            return filter_feed_candidates(
                coords, center, self.config.min_distance, self.config.max_distance
            )
        return [
            c for c in generate_coords_in_radius(center.x, center.y, self.config.max_distance)
            if c[2] >= self.config.min_distance
        ]

    async def _verify_tile(self, x: int, y: int, dist: float) -> FarmTarget | None:
        try:
            info = await self.map.tile_info(x, y)
        except Exception as e:
            if is_closed_error(e):
                raise
            log.warning("tile_read_failed", x=x, y=y, error=str(e))
            return None
        if info is None:
            return None
        ceiling = self.config.max_population
        if ceiling is not None and info.population >= ceiling:
            return None
        return FarmTarget(x=x, y=y, population=info.population, distance=round(dist, 2), name=info.name)

    async def _add(self, target: FarmTarget, list_name: str, slot: int) -> bool:
        """Add a verified target; the map tile is the open page at this point."""
        if self.config.add_method == "map" and await self.map.add_to_farm_list(list_name):
            return True
        await self.farm.open_list(list_name, slot)
        return await self.farm.add_target(target.x, target.y, target.name)

    async def run(self, center_x: int | None = None, center_y: int | None = None) -> FarmRunResult:
        cfg = self.config
        center = await self.get_center(center_x, center_y)
        log.info("farm_center", x=center.x, y=center.y, source=center.source)
        result = FarmRunResult(center=center, list_name=cfg.list_name, source=cfg.source)

        per_list = max(0, cfg.max_targets_per_list)
        wanted_total = max(0, cfg.total_targets if cfg.total_targets is not None else per_list)
        if wanted_total == 0:
            return result

        slot = await self.rally_slot()
        await self.farm.open_tab(slot)
        multi = cfg.auto_next_list or wanted_total > per_list
        if multi:
            sequence = build_farm_list_sequence(cfg.list_name, await self.farm.list_names(), cfg.max_lists)
        else:
            sequence = [(normalize_text(cfg.list_name), True)]

        # Existing rows of every list in the run, so no list duplicates another
        known: set[str] = set()
        for name, exists in sequence:
            if not exists:
                continue
            if await self.farm.open_list(name, slot):
                known.update(coord_key(x, y) for x, y in await self.farm.targets())
        log.info("farm_known_targets", count=len(known), lists=len(sequence))

        candidates = await self._candidates(center, wanted_total)
        cursor = 0
        for name, exists in sequence:
            if result.added_count >= wanted_total:
                break
            await self.farm.open_list(name, slot, create_if_missing=not exists)
            if cfg.apply_troops_to_existing:
                await self.farm.set_troops_for_all(cfg.troops)
            existing = await self.farm.targets()
            report = FarmListReport(list_name=name, existing_count=len(existing))
            room = max(0, per_list - len(existing))
            if room == 0:
                if cfg.apply_troops_to_existing:
                    await self.farm.save()
                report.is_full = True
                result.lists.append(report)
                log.info("farm_list_full", list=name, existing=len(existing))
                continue

            to_add = min(room, wanted_total - result.added_count)
            while report.added_count < to_add and cursor < len(candidates):
                x, y, dist = candidates[cursor]
                cursor += 1
                key = coord_key(x, y)
                if key in known:
                    continue
                target = await self._verify_tile(x, y, dist)
                if target is None:
                    continue
                try:
                    added = await self._add(target, name, slot)
                except Exception as e:
                    if is_closed_error(e):
                        raise
                    log.warning("farm_target_add_failed", x=x, y=y, error=str(e))
                    continue
                if not added:
                    continue
                known.add(key)
                target.list_name = name
                result.added.append(target)
                report.added_count += 1
                log.info("farm_target_added", x=x, y=y, population=target.population, list=name)

            await self.farm.open_list(name, slot)
            await self.farm.set_troops_for_all(cfg.troops)
            await self.farm.save()
            report.is_full = report.added_count >= room
            result.lists.append(report)
            if cursor >= len(candidates):
                break

        log.info("farm_run_complete", added=result.added_count, lists=len(result.lists), source=result.source)
        return result

    async def start_all(self) -> bool:
        started = await self.farm.start_all(await self.rally_slot())
        log.info("farm_lists_started", started=started)
        return started
