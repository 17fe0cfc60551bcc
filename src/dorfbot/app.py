"""Application orchestrator - pure asyncio with browser automation and API server."""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

from dorfbot.core.browser_client import BrowserClient
from dorfbot.core.config import AppConfig, load_config
from dorfbot.core.database import Database, TaskStore
from dorfbot.core.humanizer import Humanizer
from dorfbot.core.logging import get_logger, setup_logging
from dorfbot.core.session_manager import SessionManager
from dorfbot.game.inactive_feed import InactiveFeed
from dorfbot.game.screens.building import BuildingScreen
from dorfbot.game.screens.farm_list import FarmListScreen
from dorfbot.game.screens.map import MapScreen
from dorfbot.game.screens.training import TrainingScreen
from dorfbot.game.screens.village import VillageScreen
from dorfbot.managers.building_manager import BuildingManager
from dorfbot.managers.farm_list_manager import FarmListBuilder
from dorfbot.managers.field_manager import FieldCache, FieldScanner
from dorfbot.managers.task_runner import TaskRunner
from dorfbot.managers.training_manager import TrainingManager
from dorfbot.managers.village_manager import VillageManager

log = get_logger("app")

PROJECT_ROOT = Path(os.environ.get("DORFBOT_ROOT", Path(__file__).resolve().parent.parent.parent))

T = TypeVar("T")


class Application:
    """Main application orchestrator -- pure asyncio, browser-based."""

    def __init__(
        self,
        profile: str = "default",
        headless: bool = False,
        api_port: int | None = None,
    ) -> None:
        self.profile = profile
        self._headless = headless
        self._api_port = api_port
        # Config: config/<profile>.toml, fallback to config/default.toml
        self.config_dir = PROJECT_ROOT / "config"
        self.config_file = self.config_dir / f"{profile}.toml"
        if not self.config_file.exists():
            self.config_file = self.config_dir / "default.toml"
        # Data and logs are profile-isolated
        self.data_dir = PROJECT_ROOT / "data" / profile
        self.log_dir = PROJECT_ROOT / "logs" / profile

        self.config: AppConfig | None = None
        self.db: Database | None = None
        self.store: TaskStore | None = None
        self.browser: BrowserClient | None = None
        self.session: SessionManager | None = None
        self.humanizer: Humanizer | None = None
        self.cache = FieldCache()
        self.villages: VillageManager | None = None
        self.scanner: FieldScanner | None = None
        self.farm: FarmListBuilder | None = None
        self.runner: TaskRunner | None = None
        self._start_time: float = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """Launch browser, log in and run the scheduler loop."""
        setup_logging(self.log_dir)
        log.info("application_starting", profile=self.profile)
        self._start_time = time.time()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        try:
            await self._initialize()
            await self._login()
            if self._use_api():
                from dorfbot.api.server import run_api_server

                port = self._api_port or self.config.api.port
                await run_api_server(self, self.runner.run(), host=self.config.api.host, port=port)
            else:
                await self.runner.run()
        except KeyboardInterrupt:
            log.info("keyboard_interrupt")
        except Exception as e:
            log.error("fatal_error", error=str(e))
            return 1
        finally:
            await self._shutdown()
        return 0

    async def run_once(self, action: Callable[[Application], Awaitable[T]]) -> T:
        """Log in, run a single action against the game and shut down."""
        setup_logging(self.log_dir)
        self._start_time = time.time()
        try:
            await self._initialize()
            await self._login()
            return await action(self)
        finally:
            await self._shutdown()

    async def open_store(self) -> TaskStore:
        """Task store only, for commands that never touch the browser."""
        self.config = self.config or load_config(self.config_file)
        self.db = Database(self.data_dir / "dorfbot.db")
        await self.db.init()
        self.store = TaskStore(self.db)
        return self.store

    def _use_api(self) -> bool:
        if self._api_port:
            return True
        return bool(self.config and self.config.api.enabled)

    def _handle_signal(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        log.info("signal_received_shutting_down")
        if self.runner:
            self.runner.stop()

    def status(self) -> dict[str, Any]:
        runner = self.runner
        return {
            "profile": self.profile,
            "running": bool(runner and runner.running),
            "paused": bool(runner and runner.paused),
            "last_outcome": runner.last_outcome.value if runner and runner.last_outcome else None,
            "uptime_seconds": round(time.time() - self._start_time) if self._start_time else 0,
        }

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def _initialize(self) -> None:
        """Load config, init DB, launch browser, wire screens and managers."""
        self.config = load_config(self.config_file)
        if self._headless:
            self.config.browser.headless = True
        log.info("config_loaded", base_url=self.config.server.base_url, file=str(self.config_file))

        await self.open_store()
        self.humanizer = Humanizer(self.config.humanizer)
        self.browser = BrowserClient(
            session_dir=self.data_dir / "session",
            base_url=self.config.server.base_url,
            humanizer=self.humanizer,
            headless=self.config.browser.headless,
            viewport_width=self.config.browser.viewport_width,
            viewport_height=self.config.browser.viewport_height,
            locale=self.config.server.locale,
            user_agent=self.config.browser.user_agent,
            screenshot_dir=self.log_dir / "screenshots",
        )
        await self.browser.launch()
        self.session = SessionManager(self.browser, self.config.server.username, self.config.server.password)

        village_screen = VillageScreen(self.browser)
        building_screen = BuildingScreen(self.browser)
        self.villages = VillageManager(village_screen, self.cache)
        self.scanner = FieldScanner(building_screen, self.cache, self.config.scan)
        farming = self.config.farming
        feed = None
        if farming.source == "inactivesearch":
            feed = InactiveFeed(farming.inactive_search_url, farming.inactive_search_max_pages)
        self.farm = FarmListBuilder(
            farming, MapScreen(self.browser), FarmListScreen(self.browser), village_screen, feed
        )
        self.runner = TaskRunner(
            store=self.store,
            villages=self.villages,
            scanner=self.scanner,
            builder=BuildingManager(building_screen, village_screen, self.cache),
            trainer=TrainingManager(TrainingScreen(self.browser), village_screen, self.browser),
            farm=self.farm,
            bot_config=self.config.bot,
            farm_config=farming,
        )

    async def _login(self) -> None:
        await self.session.login()
        await self.villages.remember_home()

    async def _shutdown(self) -> None:
        """Graceful shutdown."""
        if self.browser:
            await self.browser.close()
        if self.db:
            await self.db.close()
        log.info("application_shutdown")
