"""
Cloud sync settings and status for Lyra.

Keeps the sync preferences in the configuration store and runs a simulated
sync: the status switches to "syncing", and after a fixed delay to "success"
with the completion time recorded. No data leaves the device here.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .config_manager import (
    SYNC_ALLOW_CELLULAR_KEY,
    SYNC_ENABLED_KEY,
    SYNC_LAST_SYNC_DATE_KEY,
    SYNC_SCOPE_KEY,
    ConfigManager,
)
from .network import NetworkMonitor, OperationType, QueuedOperation

SIMULATED_SYNC_DELAY_SECONDS = 2.0

# Receives an impact strength ("light", "medium", "heavy")
FeedbackFn = Callable[[str], None]


class SyncScope(str, Enum):
    """Which parts of the library are synchronized."""

    ALL = "Everything"
    SETS_ONLY = "Sets & Performances Only"
    SONGS_ONLY = "Songs Only"
    ANALYTICS_EXCLUDED = "Exclude Analytics"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


_STATUS_COLORS = {
    SyncStatus.IDLE: "secondary",
    SyncStatus.SYNCING: "blue",
    SyncStatus.SUCCESS: "green",
    SyncStatus.ERROR: "red",
}

_STATUS_ICONS = {
    SyncStatus.IDLE: "icloud",
    SyncStatus.SYNCING: "icloud.and.arrow.up.and.down",
    SyncStatus.SUCCESS: "icloud.and.arrow.up",
    SyncStatus.ERROR: "icloud.slash",
}

_TIME_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("week", 7 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    """
    Describe a moment relative to now in English.

    Examples: "now", "1 minute ago", "3 days ago", "in 2 hours".
    Naive datetimes are treated as UTC.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    delta = (now - _as_utc(moment)).total_seconds()
    seconds = abs(delta)
    for name, size in _TIME_UNITS:
        if seconds >= size:
            count = int(seconds // size)
            unit = name if count == 1 else f"{name}s"
            return f"{count} {unit} ago" if delta > 0 else f"in {count} {unit}"
    return "now"


class CloudSyncManager:
    """Manages sync configuration and the simulated sync status."""

    def __init__(
        self,
        config_manager: ConfigManager,
        network_monitor: Optional[NetworkMonitor] = None,
        feedback: Optional[FeedbackFn] = None,
        sync_delay: float = SIMULATED_SYNC_DELAY_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize CloudSyncManager and load persisted settings.

        Args:
            config_manager: Persistent key-value settings
            network_monitor: Connectivity gate (defaults to one backed by config_manager)
            feedback: Fire-and-forget impact feedback hook for manual syncs
            sync_delay: Seconds the simulated sync takes
            clock: Returns the current time (defaults to UTC now)
        """
        self.config = config_manager
        self.network = network_monitor or NetworkMonitor(config_manager)
        if self.network.processor is None:
            self.network.processor = self._run_queued_operation
        self.sync_delay = sync_delay
        self.logger = logging.getLogger(__name__)
        self._feedback = feedback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._generation = 0  # Bumped per sync; stale timer callbacks compare against it
        self._idle = threading.Event()
        self._idle.set()

        self._is_sync_enabled = False
        self._sync_scope = SyncScope.ALL
        self._allow_cellular_sync = False
        self._last_sync_date: Optional[datetime] = None

        self.sync_status = SyncStatus.IDLE
        self.status_error: Optional[str] = None  # Message for SyncStatus.ERROR
        self.sync_error: Optional[str] = None  # Last refusal shown to the user

        self.load_settings()

    # =========================================================================
    # Settings
    # =========================================================================

    def load_settings(self) -> None:
        """Read the sync settings from the configuration store."""
        with self._lock:
            self._is_sync_enabled = bool(self.config.get_bool(SYNC_ENABLED_KEY, default=False))
            self._allow_cellular_sync = bool(
                self.config.get_bool(SYNC_ALLOW_CELLULAR_KEY, default=False)
            )

            scope_value = self.config.get(SYNC_SCOPE_KEY)
            if scope_value:
                try:
                    self._sync_scope = SyncScope(scope_value)
                except ValueError:
                    self.logger.warning(
                        "Unknown sync scope %r, keeping %s", scope_value, self._sync_scope.value
                    )

            last_sync = self.config.get_datetime(SYNC_LAST_SYNC_DATE_KEY)
            if last_sync is not None:
                self._last_sync_date = last_sync

    def save_settings(self) -> None:
        """Write the sync settings back to the configuration store."""
        with self._lock:
            self.config.set(SYNC_ENABLED_KEY, self._is_sync_enabled)
            self.config.set(SYNC_ALLOW_CELLULAR_KEY, self._allow_cellular_sync)
            self.config.set(SYNC_SCOPE_KEY, self._sync_scope.value)
            if self._last_sync_date is not None:
                self.config.set_datetime(SYNC_LAST_SYNC_DATE_KEY, self._last_sync_date)

    @property
    def is_sync_enabled(self) -> bool:
        return self._is_sync_enabled

    @is_sync_enabled.setter
    def is_sync_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._is_sync_enabled = bool(enabled)
            self.save_settings()

    @property
    def sync_scope(self) -> SyncScope:
        return self._sync_scope

    @sync_scope.setter
    def sync_scope(self, scope: SyncScope) -> None:
        with self._lock:
            self._sync_scope = SyncScope(scope)
            self.save_settings()

    @property
    def allow_cellular_sync(self) -> bool:
        return self._allow_cellular_sync

    @allow_cellular_sync.setter
    def allow_cellular_sync(self, allowed: bool) -> None:
        with self._lock:
            self._allow_cellular_sync = bool(allowed)
            self.save_settings()

    @property
    def last_sync_date(self) -> Optional[datetime]:
        return self._last_sync_date

    def toggle_sync(self, enabled: bool) -> None:
        """Enable or disable sync; enabling starts an initial sync."""
        self.is_sync_enabled = enabled
        self.logger.info("Sync %s", "enabled" if enabled else "disabled")
        if enabled:
            self.perform_sync()

    # =========================================================================
    # Sync Operations
    # =========================================================================

    def perform_sync(self) -> bool:
        """
        Start a simulated sync.

        Returns:
            True if a sync was started; False if sync is disabled, the network
            gate refused (sync_error is set), or a sync is already running
        """
        with self._lock:
            if not self._is_sync_enabled:
                self.logger.debug("Sync requested while disabled, ignoring")
                return False

            reason = self.network.sync_block_reason()
            if reason is not None:
                self.sync_error = reason
                self.logger.warning("Sync not started: %s", reason)
                return False

            if self.sync_status == SyncStatus.SYNCING:
                self.logger.debug("Sync already in progress")
                return False

            self.sync_status = SyncStatus.SYNCING
            self.status_error = None
            self.sync_error = None
            self._idle.clear()
            self._generation += 1
            self._timer = threading.Timer(
                self.sync_delay, self._complete_sync, args=(self._generation,)
            )
            self._timer.daemon = True
            self._timer.start()
            self.logger.info("Sync started (scope: %s)", self._sync_scope.value)
            return True

    def _complete_sync(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                self.logger.debug("Ignoring completion of cancelled sync %d", generation)
                return
            self._timer = None
            try:
                self._last_sync_date = self._clock()
                self.save_settings()
            except sqlite3.Error as e:
                self.logger.error("Failed to record sync completion: %s", e, exc_info=True)
                self.sync_status = SyncStatus.ERROR
                self.status_error = str(e)
            else:
                self.sync_status = SyncStatus.SUCCESS
                self.logger.info("Sync complete at %s", self._last_sync_date.isoformat())
            finally:
                self._idle.set()

    def _run_queued_operation(self, operation: QueuedOperation) -> None:
        if operation.operation_type == OperationType.SYNC_DATA:
            self.perform_sync()
        else:
            self.logger.debug("No cloud file storage, dropping %s", operation.operation_type.value)

    def force_sync_now(self) -> bool:
        """Run a sync on user request and trigger impact feedback."""
        started = self.perform_sync()
        if self._feedback is not None:
            try:
                self._feedback("medium")
            except Exception as e:
                self.logger.warning("Feedback hook failed: %s", e)
        return started

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no simulated sync is pending. Returns False on timeout."""
        return self._idle.wait(timeout)

    def shutdown(self) -> None:
        """Cancel a pending simulated sync."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
                self._generation += 1
                self.sync_status = SyncStatus.IDLE
                self._idle.set()
                self.logger.info("Pending sync cancelled")

    # =========================================================================
    # Status Helpers
    # =========================================================================

    @property
    def status_message(self) -> str:
        status = self.sync_status
        if status == SyncStatus.IDLE:
            if self._last_sync_date is not None:
                return f"Last synced {format_time_ago(self._last_sync_date, self._clock())}"
            return "Not synced yet"
        if status == SyncStatus.SYNCING:
            return "Syncing..."
        if status == SyncStatus.SUCCESS:
            return "Sync complete"
        return f"Error: {self.status_error or 'Unknown error'}"

    @property
    def status_color(self) -> str:
        return _STATUS_COLORS[self.sync_status]

    @property
    def status_icon(self) -> str:
        return _STATUS_ICONS[self.sync_status]

    def to_dict(self) -> dict:
        """Snapshot of settings and status for the UI."""
        with self._lock:
            return {
                "enabled": self._is_sync_enabled,
                "scope": self._sync_scope.value,
                "allow_cellular": self._allow_cellular_sync,
                "last_sync_date": self._last_sync_date.isoformat() if self._last_sync_date else None,
                "status": self.sync_status.value,
                "status_message": self.status_message,
                "status_color": self.status_color,
                "status_icon": self.status_icon,
                "error": self.sync_error,
                "network": self.network.status_message,
                "queued_operations": len(self.network.queued_operations),
            }
