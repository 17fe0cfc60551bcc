"""Configuration management with Pydantic models, TOML loading and env overrides."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    base_url: str = ""
    username: str = ""
    password: str = ""
    locale: str = "es-ES"


class BrowserConfig(BaseModel):
    headless: bool = False
    viewport_width: int = 1366
    viewport_height: int = 768
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )


class BotConfig(BaseModel):
    task_batch_limit: int = 10
    built_delay: tuple[float, float] = (10.0, 15.0)
    queue_full_delay: float = 120.0
    idle_delay: float = 300.0  # nothing could be done this cycle
    no_tasks_delay: float = 60.0
    error_delay: float = 10.0
    between_tasks_delay: float = 2.0
    night_mode: bool = False
    night_hours: tuple[int, int] = (1, 7)
    night_sleep: float = 1800.0


class ScanConfig(BaseModel):
    slot_count: int = 18
    max_retries: int = 3
    retry_delay: float = 3.0


class FarmingConfig(BaseModel):
    enabled: bool = False
    interval_minutes: int = 60
    list_name: str = "raid"
    source: Literal["map", "inactivesearch"] = "map"
    add_method: Literal["map", "list"] = "map"
    max_population: int | None = 50
    min_distance: int = 0
    max_distance: int = 20
    troops: dict[str, int] = Field(default_factory=lambda: {"t1": 2})
    max_targets_per_list: int = 100
    total_targets: int | None = None  # defaults to max_targets_per_list
    auto_next_list: bool = False
    max_lists: int = 20
    apply_troops_to_existing: bool = True
    inactive_search_url: str = ""
    inactive_search_max_pages: int = 30
    center_x: int | None = None
    center_y: int | None = None
    rally_slot: int | None = None


class HumanizerConfig(BaseModel):
    delay_range: tuple[float, float] = (1.2, 2.2)
    short_range: tuple[float, float] = (0.3, 0.9)
    jitter_factor: float = 0.15
    long_pause_chance: float = 0.03
    long_pause_range: tuple[float, float] = (8.0, 20.0)


class APIConfig(BaseModel):
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8000


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    bot: BotConfig = Field(default_factory=BotConfig)
    scan: ScanConfig = Field(default_factory=ScanConfig)
    farming: FarmingConfig = Field(default_factory=FarmingConfig)
    humanizer: HumanizerConfig = Field(default_factory=HumanizerConfig)
    api: APIConfig = Field(default_factory=APIConfig)


def _to_int(raw: str | None, fallback: int | None) -> int | None:
    if raw is None or not raw.strip():
        return fallback
    try:
        return int(raw.strip())
    except ValueError:
        return fallback


def _to_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> AppConfig:
    """Overlay GAME_* / HEADLESS / FARM_* environment values onto a config.

    Integer values that fail to parse keep the configured value.
    """
    server = config.server
    if environ.get("GAME_URL"):
        server.base_url = environ["GAME_URL"].rstrip("/")
    if environ.get("GAME_USERNAME"):
        server.username = environ["GAME_USERNAME"]
    if environ.get("GAME_PASSWORD"):
        server.password = environ["GAME_PASSWORD"]
    if environ.get("HEADLESS"):
        config.browser.headless = _to_bool(environ["HEADLESS"])

    farm = config.farming
    if environ.get("FARM_LIST_NAME", "").strip():
        farm.list_name = environ["FARM_LIST_NAME"].strip()
    if environ.get("FARM_INACTIVESEARCH_URL", "").strip():
        farm.inactive_search_url = environ["FARM_INACTIVESEARCH_URL"].strip()
        farm.source = "inactivesearch"
    source = environ.get("FARM_SOURCE", "").strip().lower()
    if source in ("map", "inactivesearch"):
        farm.source = source  # type: ignore[assignment]
    if "FARM_MAX_POP" in environ:
        raw_pop = environ["FARM_MAX_POP"].strip()
        if raw_pop:
            farm.max_population = _to_int(raw_pop, farm.max_population)
        elif farm.source == "inactivesearch":
            # Empty disables the ceiling for feed runs only
            farm.max_population = None
        elif farm.max_population is None:
            farm.max_population = 50
    farm.max_distance = _to_int(environ.get("FARM_MAX_DIST"), farm.max_distance)
    farm.min_distance = _to_int(environ.get("FARM_MIN_DIST"), farm.min_distance)
    t1 = _to_int(environ.get("FARM_T1"), None)
    if t1 is not None:
        farm.troops = {**farm.troops, "t1": t1}
    farm.max_targets_per_list = _to_int(environ.get("FARM_MAX_TARGETS"), farm.max_targets_per_list)
    farm.total_targets = _to_int(environ.get("FARM_TOTAL_TARGETS"), farm.total_targets)
    if environ.get("FARM_AUTO_NEXT_LIST"):
        farm.auto_next_list = _to_bool(environ["FARM_AUTO_NEXT_LIST"])
    farm.max_lists = _to_int(environ.get("FARM_MAX_LISTS"), farm.max_lists)
    farm.inactive_search_max_pages = _to_int(
        environ.get("FARM_INACTIVESEARCH_MAX_PAGES"), farm.inactive_search_max_pages
    )
    farm.center_x = _to_int(environ.get("FARM_CENTER_X"), farm.center_x)
    farm.center_y = _to_int(environ.get("FARM_CENTER_Y"), farm.center_y)
    farm.rally_slot = _to_int(environ.get("FARM_RALLY_SLOT"), farm.rally_slot)
    return config


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration from a TOML file, falling back to defaults, then apply env."""
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
    config = AppConfig(**data)
    return apply_env_overrides(config, os.environ if environ is None else environ)
