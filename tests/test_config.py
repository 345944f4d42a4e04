"""Tests for settings loading."""

from shopfloor.config import TrackingSettings


class TestTrackingSettings:

    def test_defaults(self):
        settings = TrackingSettings.default()
        assert settings.database_path == "shopfloor.sqlite3"
        assert settings.validate_pause_reasons is True
        assert settings.log_level == "INFO"

    def test_missing_file_gives_defaults(self, tmp_path):
        assert TrackingSettings.from_yaml(tmp_path / "missing.yaml") == TrackingSettings()

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "database:\n"
            "  path: /var/lib/shopfloor/db.sqlite3\n"
            "tracking:\n"
            "  validate_pause_reasons: false\n"
            "logging:\n"
            "  level: DEBUG\n"
        )
        settings = TrackingSettings.from_yaml(path)
        assert settings.database_path == "/var/lib/shopfloor/db.sqlite3"
        assert settings.validate_pause_reasons is False
        assert settings.seed_default_pause_reasons is True
        assert settings.log_level == "DEBUG"

    def test_to_yaml_is_readable_again(self, tmp_path):
        path = tmp_path / "out.yaml"
        settings = TrackingSettings(database_path="x.db", seed_default_pause_reasons=False)
        settings.to_yaml(path)
        assert TrackingSettings.from_yaml(path) == settings

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SHOPFLOOR_DATABASE", "env.sqlite3")
        monkeypatch.setenv("SHOPFLOOR_VALIDATE_PAUSE_REASONS", "no")
        monkeypatch.setenv("SHOPFLOOR_SEED_PAUSE_REASONS", "yes")
        monkeypatch.setenv("SHOPFLOOR_LOG_LEVEL", "WARNING")
        settings = TrackingSettings.from_env()
        assert settings.database_path == "env.sqlite3"
        assert settings.validate_pause_reasons is False
        assert settings.seed_default_pause_reasons is True
        assert settings.log_level == "WARNING"

    def test_from_env_without_variables(self, monkeypatch):
        for name in (
            "SHOPFLOOR_DATABASE",
            "SHOPFLOOR_VALIDATE_PAUSE_REASONS",
            "SHOPFLOOR_SEED_PAUSE_REASONS",
            "SHOPFLOOR_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)
        assert TrackingSettings.from_env() == TrackingSettings()
