"""Configuration management for the tracking service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class TrackingSettings:
    """Runtime settings for the service, the web app and the CLI."""

    database_path: str = "shopfloor.sqlite3"
    validate_pause_reasons: bool = True
    seed_default_pause_reasons: bool = True
    log_level: str = "INFO"

    @classmethod
    def default(cls) -> "TrackingSettings":
        return cls()

    @classmethod
    def from_yaml(cls, config_path: Path) -> "TrackingSettings":
        """Load settings from a YAML file; a missing file yields the defaults."""
        if not config_path.exists():
            return cls.default()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls._from_dict(data)

    @classmethod
    def from_env(cls) -> "TrackingSettings":
        """Load settings from environment variables."""
        settings = cls.default()
        settings.database_path = os.getenv("SHOPFLOOR_DATABASE", settings.database_path)
        validate = os.getenv("SHOPFLOOR_VALIDATE_PAUSE_REASONS")
        if validate is not None:
            settings.validate_pause_reasons = validate.strip().lower() in _TRUE_VALUES
        seed = os.getenv("SHOPFLOOR_SEED_PAUSE_REASONS")
        if seed is not None:
            settings.seed_default_pause_reasons = seed.strip().lower() in _TRUE_VALUES
        settings.log_level = os.getenv("SHOPFLOOR_LOG_LEVEL", settings.log_level)
        return settings

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "TrackingSettings":
        settings = cls.default()
        database = data.get("database", {})
        if isinstance(database, dict):
            settings.database_path = database.get("path", settings.database_path)
        elif database:
            settings.database_path = str(database)
        tracking = data.get("tracking", {}) or {}
        settings.validate_pause_reasons = bool(
            tracking.get("validate_pause_reasons", settings.validate_pause_reasons)
        )
        settings.seed_default_pause_reasons = bool(
            tracking.get("seed_default_pause_reasons", settings.seed_default_pause_reasons)
        )
        logging_data = data.get("logging", {}) or {}
        settings.log_level = str(logging_data.get("level", settings.log_level))
        return settings

    def to_yaml(self, path: Path) -> None:
        """Save settings to a YAML file."""
        data = {
            "database": {"path": self.database_path},
            "tracking": {
                "validate_pause_reasons": self.validate_pause_reasons,
                "seed_default_pause_reasons": self.seed_default_pause_reasons,
            },
            "logging": {"level": self.log_level},
        }
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


__all__ = ["TrackingSettings", "configure_logging", "LOG_FORMAT"]
