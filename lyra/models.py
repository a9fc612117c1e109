"""
Data models for Lyra.

Defines typed dataclasses for all entities stored in the song library.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Set


class ContentFormat(str, Enum):
    """Markup format of a song's raw content."""

    CHORDPRO = "chordpro"
    ONSONG = "onsong"
    PLAIN_TEXT = "plain_text"


class AnnotationType(str, Enum):
    """Kinds of annotation a user can place on a chart."""

    STICKY_NOTE = "sticky_note"
    DRAWING = "drawing"
    HIGHLIGHT = "highlight"
    TEXT = "text"


def clamp_unit(value: float) -> float:
    """Clamp a coordinate into the normalized [0, 1] range."""
    return max(0.0, min(1.0, value))


@dataclass
class Song:
    """Song entity: a chord chart plus its metadata."""

    title: str
    content: str = ""
    content_format: ContentFormat = ContentFormat.CHORDPRO
    artist: Optional[str] = None
    original_key: Optional[str] = None  # e.g. "G", "Dm", "F#"
    current_key: Optional[str] = None  # After transposition
    tempo: Optional[int] = None  # BPM
    time_signature: Optional[str] = None  # e.g. "4/4"
    capo: Optional[int] = None
    copyright: Optional[str] = None
    ccli_number: Optional[str] = None  # Unique across the library when set
    album: Optional[str] = None
    year: Optional[int] = None
    notes: Optional[str] = None
    tags: Set[str] = field(default_factory=set)
    # Import information
    import_source: Optional[str] = None  # e.g. "Clipboard", "Files"
    imported_at: Optional[datetime] = None
    import_record_id: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def __post_init__(self):
        if self.current_key is None:
            self.current_key = self.original_key
        self.tags = set(self.tags or ())


@dataclass
class Book:
    """A named collection of songs. Songs are shared, not owned."""

    name: str
    description: Optional[str] = None
    color: Optional[str] = None  # Hex color, e.g. "#4A90E2"
    icon: Optional[str] = None
    song_ids: List[int] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class SetEntry:
    """A song slot inside a performance set."""

    song_id: int
    order_index: int
    set_id: Optional[int] = None
    notes: Optional[str] = None
    key_override: Optional[str] = None
    id: Optional[int] = None

    def effective_key(self, song: Song) -> Optional[str]:
        """Key to perform in: the override if set, else the song's current key."""
        return self.key_override or song.current_key


@dataclass
class PerformanceSet:
    """An ordered list of songs for a performance."""

    name: str
    scheduled_date: Optional[datetime] = None
    venue: Optional[str] = None
    notes: Optional[str] = None
    entries: List[SetEntry] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Annotation:
    """User annotation on a song chart, positioned in normalized coordinates."""

    song_id: int
    annotation_type: AnnotationType = AnnotationType.STICKY_NOTE
    x: float = 0.0
    y: float = 0.0
    text: Optional[str] = None
    note_color: Optional[str] = None
    text_color: Optional[str] = None
    font_size: int = 14
    rotation: float = 0.0
    scale: float = 1.0
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.x = clamp_unit(self.x)
        self.y = clamp_unit(self.y)


@dataclass
class Attachment:
    """A file (PDF, image, audio) attached to a song."""

    song_id: int
    filename: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    storage_path: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class UserSettings:
    """Per-user display preferences."""

    theme: str = "system"
    font_size: int = 16
    show_chords: bool = True
    autoscroll_enabled: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class ImportRecord:
    """Record of one import batch and the songs it produced."""

    import_source: str  # "Files", "Clipboard", "Dropbox", ...
    import_method: Optional[str] = None  # "Single File", "Bulk Import", ...
    total_file_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    duplicate_count: int = 0
    skipped_count: int = 0
    original_file_paths: Optional[List[str]] = None
    file_types: Optional[List[str]] = None
    cloud_folder_path: Optional[str] = None
    cloud_sync_enabled: bool = False
    import_duration: Optional[float] = None  # Seconds
    error_messages: Optional[List[str]] = None
    notes: Optional[str] = None
    song_ids: List[int] = field(default_factory=list)
    import_date: Optional[datetime] = None
    id: Optional[int] = None

    def _fully_successful(self) -> bool:
        return self.total_file_count > 0 and self.success_count == self.total_file_count

    @property
    def summary(self) -> str:
        """Human-readable summary of the import."""
        if self._fully_successful():
            plural = "" if self.success_count == 1 else "s"
            return f"Successfully imported {self.success_count} file{plural}"
        if self.success_count > 0:
            return f"Imported {self.success_count} of {self.total_file_count} files"
        plural = "" if self.failed_count == 1 else "s"
        return f"Import failed - {self.failed_count} error{plural}"

    @property
    def success_rate(self) -> float:
        if self.total_file_count <= 0:
            return 0.0
        return self.success_count / self.total_file_count

    @property
    def status_icon(self) -> str:
        if self._fully_successful():
            return "checkmark.circle.fill"
        if self.success_count > 0:
            return "exclamationmark.triangle.fill"
        return "xmark.circle.fill"

    @property
    def status_color(self) -> str:
        if self._fully_successful():
            return "green"
        if self.success_count > 0:
            return "orange"
        return "red"

    def add_imported_song(self, song: Song) -> None:
        """Attach a successfully imported song to this record."""
        if song.id is not None and song.id not in self.song_ids:
            self.song_ids.append(song.id)
        song.import_record_id = self.id

    def update_statistics(
        self,
        total: int,
        successful: int,
        failed: int,
        duplicates: int = 0,
        skipped: int = 0,
        duration: Optional[float] = None,
    ) -> None:
        """Update counters after the import completes."""
        self.total_file_count = total
        self.success_count = successful
        self.failed_count = failed
        self.duplicate_count = duplicates
        self.skipped_count = skipped
        self.import_duration = duration

    def add_error(self, message: str) -> None:
        if self.error_messages is None:
            self.error_messages = []
        self.error_messages.append(message)


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
