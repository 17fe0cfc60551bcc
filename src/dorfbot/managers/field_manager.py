"""Resource field cache and the all-or-nothing slot scanner."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

from dorfbot.core.config import ScanConfig
from dorfbot.core.exceptions import ScanIncompleteError, is_closed_error
from dorfbot.core.logging import get_logger
from dorfbot.core.normalizer import classify_field
from dorfbot.game.screens.building import BuildingScreen
from dorfbot.models.fields import FieldDescriptor, FieldType

log = get_logger("manager.fields")

CACHE_DURATION = 30 * 60  # seconds


class FieldCache:
    """Resource field levels of the active village.

    ``fields`` is either None or a complete list covering every slot; it is
    only ever replaced as a whole.
    """

    def __init__(self, duration: float = CACHE_DURATION) -> None:
        self.duration = duration
        self.fields: list[FieldDescriptor] | None = None
        self.last_scan_time: float | None = None

    def is_fresh(self, now: float | None = None) -> bool:
        if self.fields is None or self.last_scan_time is None:
            return False
        now = time.time() if now is None else now
        return now - self.last_scan_time < self.duration

    def replace(self, fields: list[FieldDescriptor], now: float | None = None) -> None:
        self.fields = sorted(fields, key=lambda f: f.slot)
        self.last_scan_time = time.time() if now is None else now

    def invalidate(self) -> None:
        self.fields = None
        self.last_scan_time = None

    def get(self, slot: int) -> FieldDescriptor | None:
        for field in self.fields or []:
            if field.slot == slot:
                return field
        return None

    def update_field_level(self, slot: int, increment: bool = True) -> bool:
        """Record an accepted construction on one slot; no other slot is touched."""
        field = self.get(slot)
        if field is None:
            return False
        field.is_building = True
        if increment:
            field.level += 1
        log.debug("field_level_updated", slot=slot, level=field.level)
        return True

    def of_type(self, field_type: FieldType | str) -> list[FieldDescriptor]:
        return [f for f in self.fields or [] if f.type == field_type]

    def summary(self) -> dict[str, dict[str, int]]:
        """Per-type count, min/max level and busy slots."""
        result: dict[str, dict[str, int]] = {}
        for field_type in FieldType:
            fields = self.of_type(field_type)
            if not fields:
                continue
            levels = [f.level for f in fields]
            result[field_type.value] = {
                "count": len(fields),
                "min": min(levels),
                "max": max(levels),
                "busy": sum(1 for f in fields if f.is_building),
            }
        return result


class FieldScanner:
    """Reads every resource slot, committing to the cache only on a full read."""

    def __init__(
        self,
        screen: BuildingScreen,
        cache: FieldCache,
        config: ScanConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.screen = screen
        self.cache = cache
        self.config = config or ScanConfig()
        self._sleep = sleep

    async def _scan_once(self) -> tuple[list[FieldDescriptor], bool]:
        """One pass over every slot; (fields read so far, complete)."""
        fields: list[FieldDescriptor] = []
        for slot in range(1, self.config.slot_count + 1):
            try:
                info, queued = await self.screen.read_slot(slot)
            except Exception as e:
                if is_closed_error(e):
                    raise
                log.warning("slot_read_failed", slot=slot, error=str(e))
                return fields, False

            field_type = classify_field(info.name)
            if field_type is None:
                log.warning("slot_type_unknown", slot=slot, label=info.name)
                return fields, False
            level = info.level + 1 if queued else info.level
            fields.append(FieldDescriptor(slot=slot, type=field_type, level=level))
        return fields, True

    async def scan(self) -> list[FieldDescriptor]:
        """Scan all slots, retrying the whole pass.

        Raises ScanIncompleteError after the last failed attempt; the cache is
        left exactly as it was.
        """
        found = 0
        for attempt in range(1, self.config.max_retries + 1):
            fields, complete = await self._scan_once()
            found = len(fields)
            if complete:
                self.cache.replace(fields)
                log.info("scan_complete", attempt=attempt, summary=self.cache.summary())
                return self.cache.fields or []
            log.warning("scan_incomplete", attempt=attempt, found=found, max_retries=self.config.max_retries)
            if attempt < self.config.max_retries:
                await self._sleep(self.config.retry_delay)
        raise ScanIncompleteError(found=found, expected=self.config.slot_count)

    async def scan_if_needed(self, force_rescan: bool = False) -> list[FieldDescriptor]:
        if not force_rescan and self.cache.is_fresh():
            log.debug("scan_cache_hit", age=round(time.time() - (self.cache.last_scan_time or 0)))
            return self.cache.fields or []
        return await self.scan()
