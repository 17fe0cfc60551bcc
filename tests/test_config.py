"""Tests for TOML config loading and environment overrides."""

from __future__ import annotations

from dorfbot.core.config import AppConfig, apply_env_overrides, load_config


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.toml", environ={})
        assert config.scan.slot_count == 18
        assert config.farming.list_name == "raid"
        assert config.bot.queue_full_delay == 120

    def test_toml_values(self, tmp_path):
        path = tmp_path / "s1.toml"
        path.write_text(
            '[server]\nbase_url = "https://example.test"\n'
            "[farming]\nmax_distance = 7\n[farming.troops]\nt1 = 5\nt3 = 1\n",
            encoding="utf-8",
        )
        config = load_config(path, environ={})
        assert config.server.base_url == "https://example.test"
        assert config.farming.max_distance == 7
        assert config.farming.troops == {"t1": 5, "t3": 1}


class TestEnvOverrides:
    def test_credentials(self):
        config = apply_env_overrides(AppConfig(), {
            "GAME_URL": "https://ts1.example.test/",
            "GAME_USERNAME": "ana",
            "GAME_PASSWORD": "secret",
            "HEADLESS": "true",
        })
        assert config.server.base_url == "https://ts1.example.test"
        assert config.server.username == "ana"
        assert config.browser.headless is True

    def test_farm_values(self):
        config = apply_env_overrides(AppConfig(), {
            "FARM_LIST_NAME": " lejanos ",
            "FARM_MAX_DIST": "12",
            "FARM_MIN_DIST": "3",
            "FARM_T1": "4",
            "FARM_AUTO_NEXT_LIST": "1",
            "FARM_CENTER_X": "-10",
            "FARM_CENTER_Y": "20",
        })
        farm = config.farming
        assert farm.list_name == "lejanos"
        assert (farm.min_distance, farm.max_distance) == (3, 12)
        assert farm.troops["t1"] == 4
        assert farm.auto_next_list is True
        assert (farm.center_x, farm.center_y) == (-10, 20)

    def test_bad_integers_keep_configured_value(self):
        config = apply_env_overrides(AppConfig(), {"FARM_MAX_DIST": "far", "FARM_MAX_TARGETS": ""})
        assert config.farming.max_distance == 20
        assert config.farming.max_targets_per_list == 100

    def test_feed_url_selects_feed_source(self):
        config = apply_env_overrides(AppConfig(), {"FARM_INACTIVESEARCH_URL": "https://feed.test/list"})
        assert config.farming.source == "inactivesearch"
        assert config.farming.inactive_search_url == "https://feed.test/list"

    def test_empty_population_disables_ceiling_for_feed(self):
        env = {"FARM_MAX_POP": "", "FARM_SOURCE": "inactivesearch"}
        assert apply_env_overrides(AppConfig(), env).farming.max_population is None
        assert apply_env_overrides(AppConfig(), {"FARM_MAX_POP": "80"}).farming.max_population == 80

    def test_empty_population_keeps_ceiling_for_map(self):
        env = {"FARM_MAX_POP": "", "FARM_SOURCE": "map"}
        assert apply_env_overrides(AppConfig(), env).farming.max_population == 50
