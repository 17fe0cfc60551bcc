"""Human-like delay generation."""

from __future__ import annotations

import asyncio
import random

from dorfbot.core.config import HumanizerConfig
from dorfbot.core.logging import get_logger

log = get_logger("humanizer")


class Humanizer:
    """Generates human-like delays between bot actions."""

    def __init__(self, config: HumanizerConfig | None = None) -> None:
        self.config = config or HumanizerConfig()

    @staticmethod
    def gauss_between(low: float, high: float) -> float:
        """Gaussian value centred in [low, high], clamped to the range."""
        mean = (low + high) / 2
        stddev = (high - low) / 6  # ~99.7% of values within range
        return max(low, min(random.gauss(mean, stddev), high))

    def _gauss_delay(self) -> float:
        low, high = self.config.delay_range
        delay = self.gauss_between(low, high)
        delay += delay * self.config.jitter_factor * random.uniform(-1, 1)
        return max(low * 0.5, min(delay, high * 1.5))

    async def wait(self, label: str = "action") -> None:
        """Wait a human-like delay before the next action."""
        if random.random() < self.config.long_pause_chance:
            low, high = self.config.long_pause_range
            delay = random.uniform(low, high)
            log.debug("long_pause", label=label, seconds=round(delay, 1))
        else:
            delay = self._gauss_delay()
        await asyncio.sleep(delay)

    async def pause(self, low: float, high: float) -> None:
        """Sleep a Gaussian-distributed number of seconds within bounds."""
        await asyncio.sleep(self.gauss_between(low, high))

    async def short_wait(self) -> None:
        """Short delay for rapid consecutive actions (e.g., filling inputs)."""
        low, high = self.config.short_range
        await asyncio.sleep(random.uniform(low, high))

    @staticmethod
    def random_cycle_delay(delay_range: tuple[float, float]) -> float:
        """Generate a random cycle delay within bounds."""
        low, high = delay_range
        return random.uniform(low, high)
