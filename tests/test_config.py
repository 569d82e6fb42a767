"""Tests for Settings.from_env()."""

import pytest

from playback_sync.config import Settings
from playback_sync.utils.errors import ConfigError


class TestSettingsFromEnv:
    def test_defaults_without_environment(self) -> None:
        settings = Settings.from_env({})
        assert settings.store_configured is False
        assert settings.gemini_model == "gemini-2.5-flash"
        assert settings.embedding_provider == "huggingface"
        assert settings.aggregator.history_days == 30
        assert settings.estimator.max_samples == 50

    def test_reads_connection_settings(self) -> None:
        settings = Settings.from_env(
            {
                "SUPABASE_URL": "https://db.example.com",
                "SUPABASE_ANON_KEY": "anon",
                "LOG_LEVEL": "debug",
            }
        )
        assert settings.store_configured is True
        assert settings.log_level == "DEBUG"

    def test_numeric_overrides(self) -> None:
        settings = Settings.from_env(
            {"HISTORY_DAYS": "7", "LEARNING_INTERVAL_MINUTES": "0.5"}
        )
        assert settings.aggregator.history_days == 7
        assert settings.aggregator.cycle_interval_minutes == 0.5

    def test_bad_number_raises_config_error(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            Settings.from_env({"HISTORY_DAYS": "a week"})
        assert exc_info.value.setting == "HISTORY_DAYS"

    def test_component_configs_are_not_shared(self) -> None:
        first = Settings.from_env({"HISTORY_DAYS": "3"})
        second = Settings.from_env({})
        assert first.aggregator is not second.aggregator
        assert second.aggregator.history_days == 30
