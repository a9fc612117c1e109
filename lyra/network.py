"""
Network status tracking for Lyra.

Holds the current connectivity state reported by the host platform, decides
whether a sync may run over the current connection, and keeps a persisted
queue of cloud operations requested while offline. The queue is flushed when
connectivity returns.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .config_manager import OFFLINE_QUEUE_KEY, SYNC_ALLOW_CELLULAR_KEY, ConfigManager
from .database import from_iso, to_iso, utcnow


class NetworkType(str, Enum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    OFFLINE = "offline"


class OperationType(str, Enum):
    """Cloud operations that can wait for connectivity."""

    CLOUD_FILE_UPLOAD = "cloudFileUpload"
    CLOUD_FILE_DOWNLOAD = "cloudFileDownload"
    SYNC_DATA = "syncData"
    DELETE_CLOUD_FILE = "deleteCloudFile"


@dataclass
class QueuedOperation:
    """A cloud operation deferred until the device is back online."""

    operation_type: OperationType
    timestamp: datetime = field(default_factory=utcnow)
    data: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.operation_type.value,
            "timestamp": to_iso(self.timestamp),
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> "QueuedOperation":
        return cls(
            id=raw["id"],
            operation_type=OperationType(raw["type"]),
            timestamp=from_iso(raw["timestamp"]),
            data=raw.get("data"),
        )


# Runs one queued operation; raising leaves it queued for the next flush
OperationProcessor = Callable[[QueuedOperation], None]


class NetworkMonitor:
    """Tracks connectivity, gates sync on cellular and queues offline work."""

    def __init__(
        self,
        config_manager: ConfigManager,
        is_online: bool = True,
        network_type: NetworkType = NetworkType.WIFI,
        processor: Optional[OperationProcessor] = None,
    ):
        """
        Initialize NetworkMonitor and load any operations queued earlier.

        Args:
            config_manager: Source of the allow-cellular preference and queue store
            is_online: Initial connectivity
            network_type: Initial connection type
            processor: Executes queued operations when connectivity returns
        """
        self.config = config_manager
        self.processor = processor
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._is_online = is_online
        self._network_type = network_type if is_online else NetworkType.OFFLINE
        self._queue: List[QueuedOperation] = self._load_queue()

    @property
    def is_online(self) -> bool:
        return self._is_online

    @property
    def network_type(self) -> NetworkType:
        return self._network_type

    def update_status(self, is_online: bool, network_type: NetworkType) -> None:
        """Record a connectivity change reported by the platform."""
        with self._lock:
            if not is_online:
                network_type = NetworkType.OFFLINE
            changed = (is_online, network_type) != (self._is_online, self._network_type)
            self._is_online = is_online
            self._network_type = network_type
            has_queued = bool(self._queue)
        if changed:
            self.logger.info("Network status changed: %s", self.status_message)
        if is_online and has_queued:
            self.process_queued_operations()

    # =========================================================================
    # Operation Queue
    # =========================================================================

    @property
    def queued_operations(self) -> List[QueuedOperation]:
        with self._lock:
            return list(self._queue)

    def queue_operation(
        self, operation_type: OperationType, data: Optional[Dict[str, Any]] = None
    ) -> QueuedOperation:
        """
        Defer a cloud operation until connectivity returns.

        Args:
            operation_type: Kind of operation
            data: JSON-serializable payload for the processor

        Returns:
            The queued operation
        """
        operation = QueuedOperation(operation_type=OperationType(operation_type), data=data)
        with self._lock:
            self._queue.append(operation)
            self._save_queue()
        self.logger.warning(
            "Queued %s while offline (%d pending)", operation.operation_type.value, len(self._queue)
        )
        return operation

    def process_queued_operations(self) -> int:
        """
        Run every queued operation through the processor.

        Operations whose processor raises stay queued. Nothing runs while offline.

        Returns:
            Number of operations processed
        """
        with self._lock:
            if not self._is_online or not self._queue:
                return 0
            operations = self._queue
            self._queue = []

        failed = []
        for operation in operations:
            try:
                if self.processor is not None:
                    self.processor(operation)
                self.logger.info(
                    "Processed queued operation %s (%s)", operation.id, operation.operation_type.value
                )
            except Exception as e:
                self.logger.error("Queued operation %s failed: %s", operation.id, e)
                failed.append(operation)

        with self._lock:
            # Keep failures ahead of anything queued while we were processing
            self._queue = failed + self._queue
            self._save_queue()
        return len(operations) - len(failed)

    def _load_queue(self) -> List[QueuedOperation]:
        raw = self.config.get(OFFLINE_QUEUE_KEY)
        if not raw:
            return []
        try:
            return [QueuedOperation.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning("Discarding unreadable offline queue: %s", e)
            return []

    def _save_queue(self) -> None:
        self.config.set(OFFLINE_QUEUE_KEY, json.dumps([op.to_dict() for op in self._queue]))

    # =========================================================================
    # Sync Gate
    # =========================================================================

    @property
    def can_sync_over_cellular(self) -> bool:
        return bool(self.config.get_bool(SYNC_ALLOW_CELLULAR_KEY, default=False))

    def sync_block_reason(self) -> Optional[str]:
        """Why a sync may not run right now, or None if it may."""
        if not self._is_online:
            return "No network connection"
        if self._network_type == NetworkType.CELLULAR and not self.can_sync_over_cellular:
            return "Sync disabled on cellular"
        return None

    @property
    def should_sync(self) -> bool:
        return self.sync_block_reason() is None

    @property
    def status_message(self) -> str:
        if self._network_type == NetworkType.WIFI:
            return "Connected via Wi-Fi"
        if self._network_type == NetworkType.CELLULAR:
            return "Connected via Cellular"
        if self._network_type == NetworkType.ETHERNET:
            return "Connected via Ethernet"
        return "Offline"
