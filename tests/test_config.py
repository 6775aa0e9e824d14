"""
Tests for configuration module.
"""

import pytest
from pydantic import ValidationError

from spcc_import.config import Settings, get_settings, reset_settings


class TestSettings:
    """Test the Settings configuration class."""

    def test_default_settings(self):
        """Test default settings initialization."""
        settings = Settings(_env_file=None)

        assert settings.max_file_count == 50
        assert settings.max_file_size_mb == 10
        assert settings.extraction_concurrency == 3
        assert settings.extract_page_limit == 1
        assert settings.match_min_overlap == 0.6
        assert settings.excluded_entity_statuses == ["sold", "retired"]
        assert settings.accepted_media_types == ["application/pdf"]
        assert settings.artifact_type == "spcc-plan"
        assert settings.log_level == "INFO"

    def test_settings_from_env(self, monkeypatch):
        """Test loading settings from environment variables."""
        monkeypatch.setenv("SPCC_IMPORT_MAX_FILE_COUNT", "20")
        monkeypatch.setenv("SPCC_IMPORT_EXTRACTION_CONCURRENCY", "5")
        monkeypatch.setenv("SPCC_IMPORT_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.max_file_count == 20
        assert settings.extraction_concurrency == 5
        assert settings.log_level == "DEBUG"

    def test_comma_separated_lists_from_env(self, monkeypatch):
        """Test parsing of comma-separated list settings."""
        monkeypatch.setenv("SPCC_IMPORT_EXCLUDED_ENTITY_STATUSES", "sold, retired,decommissioned")

        settings = Settings(_env_file=None)

        assert settings.excluded_entity_statuses == ["sold", "retired", "decommissioned"]

    def test_list_input(self):
        settings = Settings(_env_file=None, accepted_media_types=["application/pdf", "application/x-pdf"])
        assert settings.accepted_media_types == ["application/pdf", "application/x-pdf"]

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError, match="Unknown log level"):
            Settings(_env_file=None, log_level="chatty")

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, extraction_concurrency=0)

    def test_helper_properties(self):
        """Test helper properties."""
        settings = Settings(_env_file=None, max_file_size_mb=10)

        assert settings.max_file_size_bytes == 10 * 1024 * 1024

    def test_log_file_path_creation(self, tmp_path):
        """Test log file path directory creation."""
        log_path = tmp_path / "logs" / "test.log"
        settings = Settings(_env_file=None, log_file_path=log_path)

        # Directory should not exist yet
        assert not log_path.parent.exists()

        result = settings.get_log_file_path()

        assert result == log_path
        assert log_path.parent.exists()

    def test_get_settings_singleton(self):
        """Test that get_settings returns the same instance."""
        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

    def test_reset_settings_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("SPCC_IMPORT_TENANT_ID", "acme")
        reset_settings()

        second = get_settings()

        assert second is not first
        assert second.tenant_id == "acme"
