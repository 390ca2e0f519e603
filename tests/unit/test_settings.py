"""
Tests for Configuration System
==============================
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from newsleak.config.settings import (
    NewsleakSettings,
    TransportSettings,
    ClassificationSettings,
    LoggingSettings,
    StorageBackend,
    ClassificationModeSetting,
    load_settings,
)
from newsleak.utils.exceptions import ConfigurationError


class TestNewsleakSettings:
    """Test suite for NewsleakSettings."""

    def test_defaults(self):
        settings = NewsleakSettings(_env_file=None)

        assert settings.processing.parallel_feeds == 5
        assert settings.processing.item_limit_per_feed == 50
        assert settings.classification.mode == ClassificationModeSetting.TRUST
        assert settings.classification.default_category == "General"
        assert settings.images.page_scrape_enabled is False
        assert settings.transport.use_relay is False
        assert settings.transport.max_attempts == 2
        assert settings.schedule.refresh_interval_minutes == 30

    def test_environment_variables_applied(self):
        settings = NewsleakSettings(_env_file=None)

        assert settings.storage.backend == StorageBackend.MEMORY
        assert settings.logging.file_path is None
        assert settings.logging.console_logging is False

    def test_nested_environment_override(self, monkeypatch):
        monkeypatch.setenv("NEWSLEAK_PROCESSING__PARALLEL_FEEDS", "8")
        monkeypatch.setenv("NEWSLEAK_TRANSPORT__USE_RELAY", "true")
        monkeypatch.setenv("NEWSLEAK_CLASSIFICATION__MODE", "auto")

        settings = NewsleakSettings(_env_file=None)

        assert settings.processing.parallel_feeds == 8
        assert settings.transport.use_relay is True
        assert settings.classification.mode == ClassificationModeSetting.AUTO

    def test_out_of_range_value_rejected(self, monkeypatch):
        monkeypatch.setenv("NEWSLEAK_PROCESSING__PARALLEL_FEEDS", "0")

        with pytest.raises(PydanticValidationError):
            NewsleakSettings(_env_file=None)

    def test_debug_forces_debug_level(self):
        assert NewsleakSettings(_env_file=None, debug=True).get_effective_log_level() == "DEBUG"
        assert NewsleakSettings(_env_file=None).get_effective_log_level() == "INFO"

    def test_base_delay_above_max_delay(self):
        settings = NewsleakSettings(
            _env_file=None, transport=TransportSettings(base_delay=20, max_delay=5)
        )

        with pytest.raises(ConfigurationError) as exc_info:
            settings.validate_configuration()

        assert "base_delay" in str(exc_info.value)


class TestSectionValidators:

    @pytest.mark.parametrize("template", [
        "https://relay.example.com/raw",
        "relay.example.com/?{url}",
    ])
    def test_invalid_relay_template(self, template):
        with pytest.raises(PydanticValidationError):
            TransportSettings(relay_url_template=template)

    def test_keyword_rules_need_keywords(self):
        with pytest.raises(PydanticValidationError):
            ClassificationSettings(keyword_rules={"Sports": ["  "]})

        rules = ClassificationSettings(keyword_rules={"Sports": ["match"]}).keyword_rules
        assert rules == {"Sports": ["match"]}

    def test_blank_log_path_disables_file_logging(self):
        assert LoggingSettings(file_path="   ").file_path is None
        assert LoggingSettings(file_path="logs/app.log").file_path == "logs/app.log"


class TestLoadSettings:

    def test_load_settings(self):
        settings = load_settings()

        assert isinstance(settings, NewsleakSettings)

    def test_load_settings_wraps_validation_errors(self, monkeypatch):
        monkeypatch.setenv("NEWSLEAK_TRANSPORT__MAX_ATTEMPTS", "50")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        assert "Failed to initialize settings" in str(exc_info.value)
