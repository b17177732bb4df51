"""Unit tests for Lukaut configuration management.

Tests AppConfig loading from environment variables, validation, and defaults.
"""

from __future__ import annotations

import pytest

from lukaut.config import AppConfig, get_config, reset_config


class TestAppConfig:
    """Test AppConfig creation and validation."""

    def test_from_env_requires_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(KeyError) as exc_info:
            AppConfig.from_env()

        assert "DATABASE_URL" in str(exc_info.value)

    def test_secret_key_required_in_production(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.delenv("SECRET_KEY", raising=False)

        with pytest.raises(KeyError) as exc_info:
            AppConfig.from_env()

        assert "SECRET_KEY" in str(exc_info.value)

    def test_secret_key_generated_in_development(self, monkeypatch):
        monkeypatch.delenv("SECRET_KEY", raising=False)

        config = AppConfig.from_env()

        assert len(config.secret_key) == 64

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BASE_URL", raising=False)

        config = AppConfig.from_env()

        assert config.environment == "development"
        assert config.base_url == "http://localhost:8000"
        assert config.secure_cookies is False
        assert config.is_production is False
        assert config.storage.provider == "local"
        assert config.worker.max_attempts == 3
        assert config.smtp.enabled is False

    def test_production_defaults_to_secure_cookies(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")

        config = AppConfig.from_env()

        assert config.is_production is True
        assert config.secure_cookies is True

    def test_base_url_trailing_slash_stripped(self, monkeypatch):
        monkeypatch.setenv("BASE_URL", "https://app.lukaut.com/")

        assert AppConfig.from_env().base_url == "https://app.lukaut.com"

    def test_admin_emails_normalized(self, monkeypatch):
        monkeypatch.setenv("ADMIN_EMAILS", " Ops@Lukaut.com, ,admin@lukaut.com")

        config = AppConfig.from_env()

        assert config.admin_emails == ["ops@lukaut.com", "admin@lukaut.com"]

    def test_smtp_enabled_with_host(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_PORT", "2525")

        config = AppConfig.from_env()

        assert config.smtp.enabled is True
        assert config.smtp.port == 2525

    def test_worker_settings(self, monkeypatch):
        monkeypatch.setenv("WORKER_CONCURRENCY", "4")
        monkeypatch.setenv("WORKER_JOB_TIMEOUT", "120")

        config = AppConfig.from_env()

        assert config.worker.concurrency == 4
        assert config.worker.job_timeout_seconds == 120


class TestConfigSingleton:
    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_reset_config_reloads(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        reset_config()

        second = get_config()

        assert second is not first
        assert second.log_level == "DEBUG"
