"""Unit tests for application settings."""

from routine_assistant.config import MIN_POLL_INTERVAL_SECONDS, Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SCHEDULER_POLL_INTERVAL_SECONDS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.scheduler_poll_interval_seconds == 60
        assert settings.advance_alert_minutes == 15
        assert settings.app_routines_path == "/routines"

    def test_poll_interval_never_below_minimum(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_POLL_INTERVAL_SECONDS", "1")

        settings = Settings(_env_file=None)

        assert settings.scheduler_poll_interval_seconds == MIN_POLL_INTERVAL_SECONDS

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TIMEZONE", "UTC")
        monkeypatch.setenv("NOTIFICATION_STORE_KEY", "other_key")

        settings = Settings(_env_file=None)

        assert settings.timezone == "UTC"
        assert settings.notification_store_key == "other_key"
