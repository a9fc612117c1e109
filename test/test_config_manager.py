"""
Unit tests for ConfigManager.
"""

import os
import tempfile
from datetime import datetime, timezone

import pytest

from lyra.config_manager import (
    SYNC_ALLOW_CELLULAR_KEY,
    SYNC_ENABLED_KEY,
    SYNC_LAST_SYNC_DATE_KEY,
    SYNC_SCOPE_KEY,
    ConfigManager,
)
from lyra.database import Database


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def config_manager(temp_db):
    """Create a ConfigManager instance for testing."""
    return ConfigManager(temp_db)


def test_get_default(config_manager):
    """Test getting default configuration values."""
    assert config_manager.get(SYNC_ENABLED_KEY) == "false"
    assert config_manager.get(SYNC_SCOPE_KEY) == "Everything"
    assert config_manager.get("web_port") == "8000"
    assert config_manager.get(SYNC_LAST_SYNC_DATE_KEY) is None


def test_set_and_get(config_manager):
    """Test setting and getting configuration values."""
    config_manager.set(SYNC_SCOPE_KEY, "Songs Only")
    assert config_manager.get(SYNC_SCOPE_KEY) == "Songs Only"

    config_manager.set("test_key", "test_value")
    assert config_manager.get("test_key") == "test_value"


def test_get_int(config_manager):
    """Test getting integer configuration values."""
    config_manager.set("test_int", "42")
    assert config_manager.get_int("test_int") == 42
    assert config_manager.get_int("test_int", default=0) == 42

    assert config_manager.get_int("nonexistent", default=10) == 10

    config_manager.set("invalid_int", "not_a_number")
    assert config_manager.get_int("invalid_int", default=0) == 0


def test_get_float(config_manager):
    """Test getting float configuration values."""
    config_manager.set("test_float", "3.14")
    assert config_manager.get_float("test_float") == 3.14
    assert config_manager.get_float("nonexistent", default=1.0) == 1.0


def test_bool_round_trip(config_manager):
    """Booleans are stored as "true"/"false" and read back as bool."""
    config_manager.set(SYNC_ALLOW_CELLULAR_KEY, True)
    assert config_manager.get(SYNC_ALLOW_CELLULAR_KEY) == "true"
    assert config_manager.get_bool(SYNC_ALLOW_CELLULAR_KEY) is True

    config_manager.set(SYNC_ALLOW_CELLULAR_KEY, False)
    assert config_manager.get_bool(SYNC_ALLOW_CELLULAR_KEY) is False

    assert config_manager.get_bool("nonexistent", default=True) is True


def test_datetime_round_trip(config_manager):
    moment = datetime(2024, 5, 1, 12, 0, 30, tzinfo=timezone.utc)
    config_manager.set_datetime(SYNC_LAST_SYNC_DATE_KEY, moment)
    assert config_manager.get_datetime(SYNC_LAST_SYNC_DATE_KEY) == moment


def test_invalid_datetime(config_manager):
    config_manager.set(SYNC_LAST_SYNC_DATE_KEY, "yesterday")
    assert config_manager.get_datetime(SYNC_LAST_SYNC_DATE_KEY) is None


def test_delete_restores_default(config_manager):
    config_manager.set(SYNC_SCOPE_KEY, "Songs Only")
    assert config_manager.delete(SYNC_SCOPE_KEY) is True
    assert config_manager.get(SYNC_SCOPE_KEY) == "Everything"


def test_values_persist_across_instances(temp_db):
    ConfigManager(temp_db).set(SYNC_ENABLED_KEY, True)
    assert ConfigManager(temp_db).get_bool(SYNC_ENABLED_KEY) is True


def test_get_all(config_manager):
    """Test getting all configuration values."""
    config_manager.set("custom_key", "custom_value")
    all_config = config_manager.get_all()

    assert all_config[SYNC_ENABLED_KEY] == "false"
    assert all_config["custom_key"] == "custom_value"
    assert SYNC_LAST_SYNC_DATE_KEY in all_config


def test_full_config(config_manager):
    full = config_manager.get_full_config()
    assert set(full) == {"values", "schema", "groups"}
    assert full["schema"][SYNC_SCOPE_KEY]["control"] == "select"
    assert full["schema"][SYNC_ENABLED_KEY]["group"] in full["groups"]


def test_validate_accepts_schema_values(config_manager):
    assert config_manager.validate(SYNC_ENABLED_KEY, "true") is None
    assert config_manager.validate(SYNC_SCOPE_KEY, "Songs Only") is None
    assert config_manager.validate("web_port", "8080") is None


def test_validate_rejects_bad_values(config_manager):
    assert "must be one of" in config_manager.validate(SYNC_SCOPE_KEY, "bogus")
    assert config_manager.validate(SYNC_ALLOW_CELLULAR_KEY, "maybe") is not None
    assert config_manager.validate("web_port", "abc") == "web_port must be a whole number"
    assert config_manager.validate("web_port", "70000") == "web_port must be between 1 and 65535"
    assert config_manager.validate("nonsense", "1") == "Unknown config key: nonsense"
