"""
Unit tests for NetworkMonitor.
"""

import os
import tempfile
from unittest.mock import Mock

import pytest

from lyra.config_manager import OFFLINE_QUEUE_KEY, SYNC_ALLOW_CELLULAR_KEY, ConfigManager
from lyra.database import Database
from lyra.network import NetworkMonitor, NetworkType, OperationType


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
    return ConfigManager(temp_db)


def test_defaults_to_wifi(config_manager):
    monitor = NetworkMonitor(config_manager)
    assert monitor.is_online
    assert monitor.network_type == NetworkType.WIFI
    assert monitor.should_sync
    assert monitor.status_message == "Connected via Wi-Fi"


def test_offline_blocks_sync(config_manager):
    monitor = NetworkMonitor(config_manager)
    monitor.update_status(False, NetworkType.WIFI)
    assert monitor.network_type == NetworkType.OFFLINE
    assert monitor.sync_block_reason() == "No network connection"
    assert not monitor.should_sync
    assert monitor.status_message == "Offline"


def test_cellular_requires_permission(config_manager):
    monitor = NetworkMonitor(config_manager, network_type=NetworkType.CELLULAR)
    assert monitor.sync_block_reason() == "Sync disabled on cellular"

    config_manager.set(SYNC_ALLOW_CELLULAR_KEY, True)
    assert monitor.can_sync_over_cellular
    assert monitor.sync_block_reason() is None


def test_ethernet_always_allowed(config_manager):
    monitor = NetworkMonitor(config_manager)
    monitor.update_status(True, NetworkType.ETHERNET)
    assert monitor.should_sync
    assert monitor.status_message == "Connected via Ethernet"


class TestOperationQueue:
    def test_queue_is_persisted(self, config_manager):
        monitor = NetworkMonitor(config_manager, is_online=False)
        operation = monitor.queue_operation(OperationType.CLOUD_FILE_UPLOAD, {"path": "chart.pdf"})

        reloaded = NetworkMonitor(config_manager, is_online=False)
        assert [op.id for op in reloaded.queued_operations] == [operation.id]
        assert reloaded.queued_operations[0].data == {"path": "chart.pdf"}
        assert reloaded.queued_operations[0].timestamp == operation.timestamp

    def test_flushed_when_back_online(self, config_manager):
        processor = Mock()
        monitor = NetworkMonitor(config_manager, is_online=False, processor=processor)
        first = monitor.queue_operation(OperationType.SYNC_DATA)
        second = monitor.queue_operation(OperationType.DELETE_CLOUD_FILE)

        monitor.update_status(True, NetworkType.WIFI)

        assert [call.args[0].id for call in processor.call_args_list] == [first.id, second.id]
        assert monitor.queued_operations == []
        assert NetworkMonitor(config_manager).queued_operations == []

    def test_nothing_runs_while_offline(self, config_manager):
        processor = Mock()
        monitor = NetworkMonitor(config_manager, is_online=False, processor=processor)
        monitor.queue_operation(OperationType.SYNC_DATA)

        assert monitor.process_queued_operations() == 0
        monitor.update_status(False, NetworkType.OFFLINE)
        processor.assert_not_called()
        assert len(monitor.queued_operations) == 1

    def test_failed_operation_stays_queued(self, config_manager):
        processor = Mock(side_effect=[RuntimeError("upload failed"), None])
        monitor = NetworkMonitor(config_manager, is_online=False, processor=processor)
        failing = monitor.queue_operation(OperationType.CLOUD_FILE_UPLOAD)
        monitor.queue_operation(OperationType.SYNC_DATA)

        monitor.update_status(True, NetworkType.WIFI)
        assert [op.id for op in monitor.queued_operations] == [failing.id]

    def test_unreadable_queue_is_discarded(self, config_manager):
        config_manager.set(OFFLINE_QUEUE_KEY, "not json")
        assert NetworkMonitor(config_manager).queued_operations == []
