"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
The CONFIG_SCHEMA provides rich metadata for building user-friendly configuration UIs.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .database import ConfigRepository, Database, from_iso, to_iso

# Keys shared with the sync layer
SYNC_ENABLED_KEY = "sync.enabled"
SYNC_ALLOW_CELLULAR_KEY = "sync.allowCellular"
SYNC_SCOPE_KEY = "sync.scope"
SYNC_LAST_SYNC_DATE_KEY = "sync.lastSyncDate"

# Cloud operations waiting for connectivity, stored as a JSON list
OFFLINE_QUEUE_KEY = "offline.queuedOperations"

# Configuration groups define the logical sections in the config UI
CONFIG_GROUPS = {
    "sync": {"label": "iCloud Sync", "order": 1},
    "server": {"label": "Web Server", "order": 2},
}

# Schema defining metadata for each editable configuration key
# This drives the configuration UI - the frontend reads this to render appropriate controls
CONFIG_SCHEMA = {
    SYNC_ENABLED_KEY: {
        "group": "sync",
        "label": "Sync Library",
        "description": "Keep songs, books and sets in sync across your devices.",
        "control": "toggle",
    },
    SYNC_SCOPE_KEY: {
        "group": "sync",
        "label": "What to Sync",
        "description": "Choose which parts of the library are synchronized.",
        "control": "select",
        "options": [
            {"value": "Everything", "label": "Everything"},
            {"value": "Sets & Performances Only", "label": "Sets & Performances Only"},
            {"value": "Songs Only", "label": "Songs Only"},
            {"value": "Exclude Analytics", "label": "Exclude Analytics"},
        ],
    },
    SYNC_ALLOW_CELLULAR_KEY: {
        "group": "sync",
        "label": "Use Cellular Data",
        "description": "Allow syncing when only a cellular connection is available.",
        "control": "toggle",
    },
    "web_port": {
        "group": "server",
        "label": "Port",
        "description": "TCP port the web interface listens on.",
        "control": "number",
        "min": 1,
        "max": 65535,
    },
}


class ConfigManager:
    """Manages configuration stored in database."""

    # Default configuration values
    DEFAULTS = {
        SYNC_ENABLED_KEY: "false",
        SYNC_ALLOW_CELLULAR_KEY: "false",
        SYNC_SCOPE_KEY: "Everything",
        SYNC_LAST_SYNC_DATE_KEY: None,  # Written after the first successful sync
        OFFLINE_QUEUE_KEY: None,
        "web_host": "0.0.0.0",
        "web_port": "8000",
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def get_datetime(self, key: str) -> Optional[datetime]:
        """Get an ISO-8601 configuration value as datetime."""
        value = self.get(key)
        if not value:
            return None
        try:
            return from_iso(value)
        except ValueError:
            self.logger.warning("Invalid datetime value for %s: %s", key, value)
            return None

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (booleans are stored as "true"/"false",
                everything else is converted to string)

        Returns:
            True if successful
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        return self.repository.set(key, str(value))

    def set_datetime(self, key: str, value: datetime) -> bool:
        return self.repository.set(key, to_iso(value))

    def delete(self, key: str) -> bool:
        """Remove a stored value so the default applies again."""
        return self.repository.delete(key)

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        config = {entry.key: entry.value for entry in entries}

        # Merge with defaults to ensure all keys are present
        result = self.DEFAULTS.copy()
        result.update(config)
        return result

    def get_config_schema(self) -> Dict[str, dict]:
        """Get the configuration schema for editable keys."""
        return {key: dict(key_def) for key, key_def in CONFIG_SCHEMA.items()}

    def validate(self, key: str, value: str) -> Optional[str]:
        """
        Check a value against the schema for an editable key.

        Args:
            key: Configuration key
            value: Proposed value as sent by the settings UI

        Returns:
            A description of the problem, or None if the value is acceptable
        """
        key_def = CONFIG_SCHEMA.get(key)
        if key_def is None:
            return f"Unknown config key: {key}"

        control = key_def.get("control")
        if control == "toggle" and value.lower() not in ("true", "false"):
            return f"{key} must be true or false"
        if "options" in key_def:
            allowed = [option["value"] for option in key_def["options"]]
            if value not in allowed:
                return f"{key} must be one of: {', '.join(allowed)}"
        if control == "number":
            try:
                number = int(value)
            except ValueError:
                return f"{key} must be a whole number"
            if not key_def.get("min", number) <= number <= key_def.get("max", number):
                return f"{key} must be between {key_def['min']} and {key_def['max']}"
        return None

    def get_config_groups(self) -> Dict[str, dict]:
        """Get the configuration group definitions."""
        return CONFIG_GROUPS.copy()

    def get_full_config(self) -> dict:
        """
        Get complete configuration data for the UI.

        Returns:
            Dictionary with 'values', 'schema', and 'groups' keys.
        """
        return {
            "values": self.get_all(),
            "schema": self.get_config_schema(),
            "groups": self.get_config_groups(),
        }
