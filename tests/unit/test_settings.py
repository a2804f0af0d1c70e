"""Unit tests for settings loading."""

from pathlib import Path

import pytest
import yaml

from anime_sources.settings import Settings, get_settings, reload_settings


PROJECT_CONFIG = Path(__file__).parent.parent.parent / "settings" / "config.yaml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("ANIME_SOURCES_ENVIRONMENT", raising=False)
    yield
    get_settings.cache_clear()


def write_yaml(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    """Test built-in defaults."""

    def test_reliability_defaults(self):
        settings = Settings()
        assert settings.reliability.max_attempts == 2
        assert settings.reliability.base_delay == 1.0
        assert settings.reliability.timeout == 8.0
        assert settings.reliability.failure_threshold == 5
        assert settings.reliability.reset_timeout == 15.0

    def test_other_defaults(self):
        settings = Settings()
        assert settings.health.interval == 120.0
        assert settings.health.probe_timeout == 5.0
        assert settings.admission.max_concurrent == 6
        assert settings.orchestrator.search_all_threshold == 20
        assert settings.orchestrator.isolated_sources == ["WatchHentai"]
        assert settings.routes is None
        assert settings.sources == []


class TestYamlLoading:
    """Test YAML files and environment-specific overrides."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings.load_from_yaml(tmp_path / "absent.yaml")
        assert settings.environment == "development"

    def test_environment_file_deep_merges(self, tmp_path):
        config = write_yaml(
            tmp_path / "config.yaml",
            {
                "environment": "staging",
                "reliability": {"max_attempts": 3, "timeout": 6.0},
                "sources": [{"name": "HiAnime", "base_url": "http://a"}],
            },
        )
        write_yaml(tmp_path / "config.staging.yaml", {"reliability": {"timeout": 4.0}})

        settings = Settings.load_from_yaml(config)

        assert settings.reliability.max_attempts == 3
        assert settings.reliability.timeout == 4.0
        assert settings.get_source_config("HiAnime")["base_url"] == "http://a"
        assert settings.get_source_config("Missing") == {}

    def test_environment_variable_selects_overlay(self, tmp_path, monkeypatch):
        config = write_yaml(tmp_path / "config.yaml", {"health": {"interval": 60.0}})
        write_yaml(tmp_path / "config.test.yaml", {"health": {"enabled": False}})
        monkeypatch.setenv("ANIME_SOURCES_ENVIRONMENT", "test")

        settings = Settings.load_from_yaml(config)

        assert settings.health.enabled is False
        assert settings.health.interval == 60.0

    def test_project_config_parses(self):
        settings = Settings.load_from_yaml(PROJECT_CONFIG)
        names = [source["name"] for source in settings.sources]
        assert names == ["HiAnimeDirect", "HiAnime", "Gogoanime"]
        assert settings.orchestrator.priority == names

    def test_deep_merge_replaces_lists(self):
        merged = Settings._deep_merge({"a": {"b": 1, "c": [1]}}, {"a": {"c": [2]}})
        assert merged == {"a": {"b": 1, "c": [2]}}


class TestEnvironmentOverrides:
    """Test ANIME_SOURCES_* variables."""

    def test_nested_override(self, monkeypatch):
        monkeypatch.setenv("ANIME_SOURCES_ADMISSION__MAX_CONCURRENT", "10")
        monkeypatch.setenv("ANIME_SOURCES_LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.admission.max_concurrent == 10
        assert settings.log_level == "DEBUG"


class TestCaching:
    """Test the cached accessor."""

    def test_get_settings_is_cached(self, tmp_path):
        config = write_yaml(tmp_path / "config.yaml", {"log_level": "WARNING"})
        assert get_settings(config) is get_settings(config)
        assert get_settings(config).log_level == "WARNING"

    def test_reload_clears_cache(self):
        first = get_settings()
        assert reload_settings() is not first
