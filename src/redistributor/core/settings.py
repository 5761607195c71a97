"""Settings Management Module.

Handles loading, saving, and accessing redistributor configuration.
Persists configuration to data/redistributor_settings.json (or the file
named by REDISTRIBUTOR_SETTINGS_FILE).
"""

import json
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

# Constants
SETTINGS_ENV_VAR = "REDISTRIBUTOR_SETTINGS_FILE"
DEFAULT_SETTINGS_FILE = Path("data/redistributor_settings.json")


class RedistributorSettings(BaseModel):
    """Global redistributor settings."""

    model_config = ConfigDict(validate_assignment=True)

    # Delivery
    delivery_timeout_ms: int = Field(5000, gt=0, description="Per-destination timeout")
    user_agent: str = "Webhook-Redistributor/1.0"
    source_marker: str = "webhook-redistributor"

    # HTTP connection pool shared by every destination
    max_connections: int = Field(100, gt=0)
    max_keepalive_connections: int = Field(20, ge=0)

    # Storage
    store_backend: Literal["memory", "sqlite"] = "memory"
    outcome_log_backend: Literal["memory", "sqlite"] = "memory"
    database_path: str = "data/redistributor.db"
    outcome_log_capacity: int = Field(1000, gt=0)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "redistributor.log"

    @property
    def delivery_timeout_seconds(self) -> float:
        return self.delivery_timeout_ms / 1000


def settings_path() -> Path:
    """Resolve the settings file, honouring the environment override."""
    override = os.environ.get(SETTINGS_ENV_VAR)
    return Path(override) if override else DEFAULT_SETTINGS_FILE


class SettingsManager:
    """Manages loading and saving of settings."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else settings_path()
        self._settings: Optional[RedistributorSettings] = None
        self._load()

    def _load(self):
        """Load settings from JSON or create defaults."""
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                self._settings = RedistributorSettings(**data)
            except (OSError, TypeError, ValueError, ValidationError) as e:
                logger.warning(f"Error loading settings from {self.path}: {e}. Using defaults.")
                self._settings = RedistributorSettings()
        else:
            self._settings = RedistributorSettings()
            self.save()

    def get(self) -> RedistributorSettings:
        """Get current settings."""
        if not self._settings:
            self._load()
        return self._settings

    def save(self, new_settings: Optional[RedistributorSettings] = None):
        """Save settings to file."""
        if new_settings:
            self._settings = new_settings

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            self._settings.model_dump_json(indent=4),
            encoding="utf-8"
        )
