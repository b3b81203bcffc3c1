"""
Tests for environment-driven settings.
"""

import pytest

from pocketledger.config import EngineSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestEngineSettings:
    """Tests for EngineSettings."""

    def test_defaults(self, monkeypatch):
        """Test the out-of-the-box configuration."""
        monkeypatch.delenv("POCKETLEDGER_STORAGE_BACKEND", raising=False)
        monkeypatch.delenv("POCKETLEDGER_RECURRING_COOLDOWN_HOURS", raising=False)
        settings = EngineSettings(_env_file=None)
        assert settings.storage_backend == "memory"
        assert settings.recurring_cooldown_hours == 8.0
        assert settings.audit_log_max_events == 5000

    def test_environment_override(self, monkeypatch):
        """Test POCKETLEDGER_ variables are read."""
        monkeypatch.setenv("POCKETLEDGER_RECURRING_COOLDOWN_HOURS", "2.5")
        monkeypatch.setenv("POCKETLEDGER_DEBUG_MODE", "true")
        settings = EngineSettings(_env_file=None)
        assert settings.recurring_cooldown_hours == 2.5
        assert settings.debug_mode is True

    def test_unknown_backend_rejected(self):
        """Test only the supported stores can be selected."""
        with pytest.raises(ValueError):
            EngineSettings(_env_file=None, storage_backend="postgres")

    def test_negative_cooldown_rejected(self):
        """Test the cooldown window cannot be negative."""
        with pytest.raises(ValueError):
            EngineSettings(_env_file=None, recurring_cooldown_hours=-1)


class TestValidateAllSettings:
    """Tests for the startup settings check."""

    def test_memory_backend_needs_no_sheets(self, monkeypatch):
        """Test Sheets credentials are only checked when selected."""
        monkeypatch.setenv("POCKETLEDGER_STORAGE_BACKEND", "memory")
        results = validate_all_settings()
        assert results == {"engine": True}

    def test_sheets_backend_without_credentials(self, monkeypatch):
        """Test a missing spreadsheet configuration is reported."""
        monkeypatch.setenv("POCKETLEDGER_STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        results = validate_all_settings()
        assert results["engine"] is True
        assert results["google_sheets"] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
