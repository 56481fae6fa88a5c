"""Tests for clearpath.config (Settings and get_settings)."""

import pytest

from clearpath.config import Settings, get_settings


class TestDefaultSettings:
    def test_default_api_port(self):
        s = Settings()
        assert s.api_port == 8080

    def test_default_environment_is_development(self):
        s = Settings()
        assert s.environment == "development"

    def test_default_database_url_is_sqlite(self):
        s = Settings()
        assert "sqlite" in s.database_url

    def test_default_certificate_prefix(self):
        s = Settings()
        assert s.certificate_number_prefix == "CP"

    def test_default_certificate_number_attempts(self):
        s = Settings()
        assert s.certificate_number_max_attempts == 5

    def test_default_notification_timeout_seconds(self):
        s = Settings()
        assert s.notification_timeout_seconds == 10


class TestNotificationsEnabled:
    def test_disabled_without_webhook_url(self):
        s = Settings(notification_webhook_url="")
        assert s.notifications_enabled is False

    def test_enabled_with_webhook_url(self):
        s = Settings(notification_webhook_url="https://notify.example.com/events")
        assert s.notifications_enabled is True


class TestInsecureSecrets:
    def test_insecure_secrets_contains_change_me(self):
        assert "change-me" in Settings.INSECURE_SECRETS

    def test_insecure_secrets_contains_empty_string(self):
        assert "" in Settings.INSECURE_SECRETS


class TestValidateProduction:
    def test_production_with_insecure_secret_raises_runtime_error(self):
        s = Settings(
            environment="production",
            notification_webhook_url="https://notify.example.com/events",
            notification_webhook_secret="change-me",
        )
        with pytest.raises(RuntimeError, match="NOTIFICATION_WEBHOOK_SECRET"):
            s.validate_production()

    def test_production_with_custom_secret_passes(self):
        s = Settings(
            environment="production",
            notification_webhook_url="https://notify.example.com/events",
            notification_webhook_secret="a" * 64,
        )
        # Should not raise
        s.validate_production()

    def test_production_without_notifications_passes(self):
        """The secret is irrelevant while nothing is signed."""
        s = Settings(environment="production", notification_webhook_url="")
        s.validate_production()

    def test_development_with_insecure_secret_does_not_raise(self):
        s = Settings(
            environment="development",
            notification_webhook_url="https://notify.example.com/events",
            notification_webhook_secret="change-me",
        )
        s.validate_production()


class TestGetSettings:
    def test_get_settings_returns_settings_instance(self):
        get_settings.cache_clear()
        s = get_settings()
        assert isinstance(s, Settings)

    def test_get_settings_cached_returns_same_object(self):
        get_settings.cache_clear()
        s1 = get_settings()
        s2 = get_settings()
        assert s1 is s2
