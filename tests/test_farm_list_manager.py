"""Tests for farm list building."""

from __future__ import annotations

import asyncio

import pytest

from dorfbot.core.config import FarmingConfig
from dorfbot.core.exceptions import CenterNotFoundError, ExtractionError
from dorfbot.managers.farm_list_manager import (
    FarmListBuilder,
    build_farm_list_sequence,
    filter_feed_candidates,
    generate_coords_in_radius,
)
from dorfbot.models.farm_target import MapCenter, TileInfo


class FakeFarmScreen:
    def __init__(self, lists=None):
        self.lists: dict[str, list[tuple[int, int]]] = {k: list(v) for k, v in (lists or {}).items()}
        self.current: str | None = None
        self.created: list[str] = []
        self.troops_applied: list[tuple[str, dict]] = []
        self.saved: list[str] = []
        self.started = False

    async def open_tab(self, rally_slot):
        return None

    async def list_names(self):
        return list(self.lists)

    async def open_list(self, name, rally_slot, create_if_missing=False):
        if name not in self.lists:
            if not create_if_missing:
                return False
            self.lists[name] = []
            self.created.append(name)
        self.current = name
        return True

    async def targets(self):
        return list(self.lists[self.current])

    async def add_target(self, x, y, name=None):
        self.lists[self.current].append((x, y))
        return True

    async def set_troops_for_all(self, troops):
        self.troops_applied.append((self.current, dict(troops)))
        return len(self.lists[self.current])

    async def save(self):
        self.saved.append(self.current)
        return True

    async def start_all(self, rally_slot):
        self.started = True
        return True


class FakeMapScreen:
    def __init__(self, tiles=None, default=None, center=None, farm=None):
        self.tiles = tiles or {}
        self.default = default
        self.center = center
        self.farm = farm
        self.viewed: list[tuple[int, int]] = []

    async def read_center(self):
        return self.center

    async def tile_info(self, x, y):
        self.viewed.append((x, y))
        return self.tiles.get((x, y), self.default)

    async def add_to_farm_list(self, list_name):
        if self.farm is None:
            return False
        self.farm.lists.setdefault(list_name, []).append(self.viewed[-1])
        return True


class FakeVillageScreen:
    def __init__(self, rally=39):
        self.rally = rally

    async def find_building_slot(self, building_type, explicit_slot=None):
        assert building_type == "rallyPoint"
        return explicit_slot or self.rally


class FakeFeed:
    def __init__(self, coords):
        self._coords = coords
        self.limits: list[int] = []

    async def coords(self, limit=200):
        self.limits.append(limit)
        return self._coords


def _config(**overrides):
    values = dict(center_x=0, center_y=0, add_method="list", max_distance=2, max_targets_per_list=3)
    values.update(overrides)
    return FarmingConfig(**values)


class TestGenerateCoords:
    def test_unit_radius(self):
        coords = generate_coords_in_radius(0, 0, 1)
        assert coords == [(-1, 0, 1.0), (0, -1, 1.0), (0, 1, 1.0), (1, 0, 1.0)]

    def test_excludes_center_and_sorts_by_distance(self):
        coords = generate_coords_in_radius(10, -5, 1.5)
        assert len(coords) == 8
        assert (10, -5) not in [(x, y) for x, y, _ in coords]
        distances = [d for _, _, d in coords]
        assert distances == sorted(distances)

    def test_zero_radius(self):
        assert generate_coords_in_radius(0, 0, 0) == []


class TestListSequence:
    def test_hyphen_scheme(self):
        assert build_farm_list_sequence("Raid", ["raid", "raid-3", "raid-2"], 4) == [
            ("raid", True), ("raid-2", True), ("raid-3", True), ("raid-4", False),
        ]

    def test_fresh_account(self):
        assert build_farm_list_sequence("raid", [], 3) == [
            ("raid", False), ("raid-2", False), ("raid-3", False),
        ]

    def test_numeric_scheme(self):
        assert build_farm_list_sequence("raid", ["raid", "2", "3"], 4) == [
            ("raid", True), ("2", True), ("3", True), ("4", False),
        ]

    def test_capped(self):
        assert len(build_farm_list_sequence("raid", ["raid", "raid-2", "raid-3"], 2)) == 2


class TestFeedFilter:
    def test_distance_band(self):
        coords = [(3, 4), (1, 0), (30, 0), (0, 6)]
        assert filter_feed_candidates(coords, MapCenter(x=0, y=0), 2, 10) == [(3, 4, 5.0), (0, 6, 6.0)]


class TestCenter:
    def _builder(self, config, center=None):
        return FarmListBuilder(config, FakeMapScreen(center=center), FakeFarmScreen(), FakeVillageScreen())

    def test_explicit_wins(self):
        center = asyncio.run(self._builder(_config()).get_center(5, 6))
        assert (center.x, center.y, center.source) == (5, 6, "options")

    def test_config(self):
        center = asyncio.run(self._builder(_config(center_x=7, center_y=-8)).get_center())
        assert (center.x, center.y, center.source) == (7, -8, "config")

    def test_map(self):
        builder = self._builder(_config(center_x=None, center_y=None), center=(1, 2))
        center = asyncio.run(builder.get_center())
        assert center.source == "map"

    def test_not_found(self):
        builder = self._builder(_config(center_x=None, center_y=None))
        with pytest.raises(CenterNotFoundError):
            asyncio.run(builder.get_center())


class TestFarmListBuilder:
    def test_fills_single_list(self):
        farm = FakeFarmScreen({"raid": [(1, 0)]})
        tiles = {
            (1, 0): TileInfo(population=10),
            (0, 1): TileInfo(population=60),
            (-1, 0): TileInfo(population=20, name="Pepe"),
            (1, 1): TileInfo(population=5),
        }
        builder = FarmListBuilder(_config(), FakeMapScreen(tiles), farm, FakeVillageScreen())

        result = asyncio.run(builder.run())

        assert [(t.x, t.y) for t in result.added] == [(-1, 0), (1, 1)]
        assert all(t.list_name == "raid" for t in result.added)
        assert farm.lists["raid"] == [(1, 0), (-1, 0), (1, 1)]
        assert result.lists[0].is_full
        assert result.lists[0].existing_count == 1
        assert ("raid", {"t1": 2}) in farm.troops_applied
        assert farm.saved == ["raid"]

    def test_spreads_over_lists_without_duplicates(self):
        farm = FakeFarmScreen({"raid": [(1, 0), (-1, 0)], "raid-2": [(0, 1)]})
        builder = FarmListBuilder(
            _config(max_targets_per_list=2, total_targets=3, auto_next_list=True, max_lists=3),
            FakeMapScreen(default=TileInfo(population=5)),
            farm,
            FakeVillageScreen(),
        )

        result = asyncio.run(builder.run())

        assert result.added_count == 3
        assert farm.lists["raid"] == [(1, 0), (-1, 0)]
        assert farm.lists["raid-2"] == [(0, 1), (0, -1)]
        assert farm.lists["raid-3"] == [(-1, -1), (-1, 1)]
        assert farm.created == ["raid-3"]
        assert [r.list_name for r in result.lists] == ["raid", "raid-2", "raid-3"]
        assert result.lists[0].is_full and result.lists[0].added_count == 0
        every = [xy for coords in farm.lists.values() for xy in coords]
        assert len(every) == len(set(every))

    def test_troops_refreshed_without_new_targets(self):
        farm = FakeFarmScreen({"raid": [(4, 4)]})
        builder = FarmListBuilder(_config(), FakeMapScreen(), farm, FakeVillageScreen())
        result = asyncio.run(builder.run())
        assert result.added_count == 0
        assert farm.troops_applied[-1] == ("raid", {"t1": 2})
        assert farm.saved == ["raid"]

    def test_population_ceiling_disabled(self):
        farm = FakeFarmScreen({"raid": []})
        builder = FarmListBuilder(
            _config(max_population=None, max_targets_per_list=1),
            FakeMapScreen(default=TileInfo(population=900)),
            farm,
            FakeVillageScreen(),
        )
        result = asyncio.run(builder.run())
        assert result.added_count == 1

    def test_map_add_method(self):
        farm = FakeFarmScreen({"raid": []})
        map_screen = FakeMapScreen(default=TileInfo(population=5), farm=farm)
        builder = FarmListBuilder(
            _config(add_method="map", max_targets_per_list=2), map_screen, farm, FakeVillageScreen()
        )
        result = asyncio.run(builder.run())
        assert result.added_count == 2
        assert farm.lists["raid"] == [(-1, 0), (0, -1)]

    def test_inactive_feed_source(self):
        farm = FakeFarmScreen({"raid": []})
        feed = FakeFeed([(50, 50), (3, 4), (1, 1)])
        builder = FarmListBuilder(
            _config(source="inactivesearch", max_distance=10, max_population=None),
            FakeMapScreen(default=TileInfo(population=120)),
            farm,
            FakeVillageScreen(),
            feed,
        )
        result = asyncio.run(builder.run())
        assert feed.limits == [60]
        assert [(t.x, t.y) for t in result.added] == [(1, 1), (3, 4)]

    def test_rally_point_missing(self):
        builder = FarmListBuilder(_config(), FakeMapScreen(), FakeFarmScreen(), FakeVillageScreen(rally=None))
        with pytest.raises(ExtractionError):
            asyncio.run(builder.run())

    def test_start_all(self):
        farm = FakeFarmScreen()
        builder = FarmListBuilder(_config(), FakeMapScreen(), farm, FakeVillageScreen())
        assert asyncio.run(builder.start_all())
        assert farm.started
