"""
Tests for config.py - settings read from the environment.
"""
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings, configure_logging

ENV_VARS = (
    "DATABASE_PATH",
    "CORS_ORIGINS",
    "SESSION_COOKIE_NAME",
    "REQUIRE_AUTH",
    "RUN_MIGRATIONS",
    "LOG_LEVEL",
)


class TestSettingsFromEnv:
    """Tests for Settings.from_env."""

    def test_defaults(self, monkeypatch):
        """With nothing set, the documented defaults apply."""
        for name in ENV_VARS:
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.database_path == "catcare.db"
        assert settings.cors_origins == ["http://localhost:5173"]
        assert settings.session_cookie_name == "session_token"
        assert settings.require_auth is False
        assert settings.run_migrations is True
        assert settings.log_level == "INFO"

    def test_values_from_env(self, monkeypatch):
        """Every setting can be overridden."""
        monkeypatch.setenv("DATABASE_PATH", "/tmp/other.db")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
        monkeypatch.setenv("SESSION_COOKIE_NAME", "sid")
        monkeypatch.setenv("REQUIRE_AUTH", "true")
        monkeypatch.setenv("RUN_MIGRATIONS", "0")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.database_path == "/tmp/other.db"
        assert settings.cors_origins == ["https://a.example", "https://b.example"]
        assert settings.session_cookie_name == "sid"
        assert settings.require_auth is True
        assert settings.run_migrations is False
        assert settings.log_level == "debug"

    def test_boolean_spellings(self, monkeypatch):
        """Booleans accept 1/yes/on in any case; anything else is false."""
        for value in ("1", "YES", " on "):
            monkeypatch.setenv("REQUIRE_AUTH", value)
            assert Settings.from_env().require_auth is True
        for value in ("0", "no", "false", ""):
            monkeypatch.setenv("REQUIRE_AUTH", value)
            assert Settings.from_env().require_auth is False

    def test_empty_cors_origins_falls_back_to_default(self, monkeypatch):
        """An empty CORS_ORIGINS keeps the default origin."""
        monkeypatch.setenv("CORS_ORIGINS", "")
        assert Settings.from_env().cors_origins == ["http://localhost:5173"]


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        """An unrecognised level name configures INFO."""
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

        configure_logging("verbose")
        configure_logging("warning")

        assert [call["level"] for call in calls] == [logging.INFO, logging.WARNING]
