"""Settings persistence to JSON file."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

import platformdirs
from pydantic import ValidationError

from recurra.domain.settings import AppSettings

logger = logging.getLogger(__name__)

# Overrides the settings file location, e.g. for cron jobs
SETTINGS_ENV_VAR = "RECURRA_SETTINGS"


def default_settings_path() -> Path:
    """Settings file location: $RECURRA_SETTINGS, else the user config directory."""
    env = os.environ.get(SETTINGS_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return Path(platformdirs.user_config_dir("Recurra", "Recurra")) / "settings.json"


class SettingsStore:
    """Persists settings to JSON file.

    Settings live in the user's config directory unless $RECURRA_SETTINGS
    or an explicit path says otherwise. Files written by older versions are
    migrated on load.

    Example:
        >>> store = SettingsStore()
        >>> settings = store.load()
        >>> settings.generation.horizon_days = 30
        >>> store.save(settings)
    """

    def __init__(self, path: Optional[Path] = None):
        """Initialize settings store.

        Args:
            path: Optional custom path for settings file.
                  Defaults to default_settings_path()
        """
        self._path = path or default_settings_path()

    @property
    def path(self) -> Path:
        """Get the settings file path."""
        return self._path

    def exists(self) -> bool:
        """Check if settings file exists."""
        return self._path.exists()

    def load(self) -> AppSettings:
        """Load settings from file.

        Returns:
            AppSettings instance. If file doesn't exist or is invalid,
            returns default settings.
        """
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text())
                # Migrate old settings formats
                data = self._migrate_settings(data)
                return AppSettings.model_validate(data)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                # If settings file is corrupted, return defaults
                logger.warning(f"Could not load settings from {self._path}: {e}")
                return AppSettings()
        return AppSettings()

    def _migrate_settings(self, data: Any) -> Any:
        """Migrate old settings formats to current format.

        Args:
            data: Raw settings dictionary

        Returns:
            Migrated settings dictionary
        """
        if not isinstance(data, dict):
            return data

        # Notes templates used to take {name}
        completion = data.get("completion")
        if isinstance(completion, dict):
            template = completion.get("payment_notes_template")
            if isinstance(template, str) and "{name}" in template:
                completion["payment_notes_template"] = template.replace("{name}", "{item_name}")

        # Horizon used to be given in months
        generation = data.get("generation")
        if isinstance(generation, dict):
            months = generation.pop("horizon_months", None)
            if isinstance(months, int) and "horizon_days" not in generation:
                generation["horizon_days"] = months * 30

        return data

    def save(self, settings: AppSettings) -> None:
        """Save settings to file.

        Args:
            settings: AppSettings to save
        """
        # Ensure parent directory exists
        self._path.parent.mkdir(parents=True, exist_ok=True)

        # Write with pretty formatting
        self._path.write_text(settings.model_dump_json(indent=2))

    def delete(self) -> bool:
        """Delete settings file.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        if self._path.exists():
            self._path.unlink()
            return True
        return False
