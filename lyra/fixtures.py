"""
Preview data for Lyra.

Builds an in-memory library populated with a small, fixed set of sample
songs, books, a performance set and related records. Used for UI previews
and demos (``lyra --preview``).
"""

import logging
import sqlite3
import sys
import threading
from datetime import datetime, timezone
from typing import List, Optional

from .database import (
    MEMORY_PATH,
    AnnotationRepository,
    BookRepository,
    Database,
    ImportRecordRepository,
    PerformanceSetRepository,
    SongRepository,
    UserSettingsRepository,
)
from .models import (
    Annotation,
    AnnotationType,
    Book,
    ContentFormat,
    ImportRecord,
    PerformanceSet,
    SetEntry,
    Song,
    UserSettings,
)

logger = logging.getLogger(__name__)

AMAZING_GRACE = """{title: Amazing Grace}
{artist: Traditional}
{key: G}
{tempo: 90}

[G]Amazing [G7]grace, how [C]sweet the [G]sound
That saved a wretch like [D]me
[G]I once was [G7]lost, but [C]now am [G]found
Was [Em]blind but [D]now I [G]see"""

COME_THOU_FOUNT = """{title: Come Thou Fount}
{artist: Robert Robinson}
{key: D}

[D]Come thou fount of [A]every [D]blessing
Tune my [A]heart to [D]sing thy [A]grace"""

HOW_GREAT_THOU_ART = """{title: How Great Thou Art}
{key: C}

[C]O Lord my God, when I in awesome wonder
[F]Consider [C]all the worlds thy hands have [G]made"""


def sample_songs() -> List[Song]:
    """The three sample songs, unsaved."""
    return [
        Song(
            title="Amazing Grace",
            artist="Traditional",
            content=AMAZING_GRACE,
            content_format=ContentFormat.CHORDPRO,
            original_key="G",
            tempo=90,
            tags={"Hymn", "Classic", "Worship"},
        ),
        Song(
            title="Come Thou Fount",
            artist="Robert Robinson",
            content=COME_THOU_FOUNT,
            content_format=ContentFormat.CHORDPRO,
            original_key="D",
            tags={"Hymn", "Classic"},
        ),
        Song(
            title="How Great Thou Art",
            artist="Carl Boberg",
            content=HOW_GREAT_THOU_ART,
            content_format=ContentFormat.CHORDPRO,
            original_key="C",
        ),
    ]


class PreviewContainer:
    """In-memory library with sample data, created once per process."""

    _shared: Optional["PreviewContainer"] = None
    _shared_lock = threading.Lock()

    def __init__(self, scheduled_date: Optional[datetime] = None):
        """
        Create the in-memory store and add the sample data.

        Exits the process if the store cannot be created. Failures while
        saving the sample data are logged and leave a partially filled store.

        Args:
            scheduled_date: Date for the sample set (defaults to now)
        """
        try:
            self.database = Database(db_path=MEMORY_PATH)
        except sqlite3.Error as e:
            logger.critical("Could not create preview database: %s", e)
            sys.exit(f"Could not create preview database: {e}")

        self._scheduled_date = scheduled_date or datetime.now(timezone.utc)
        self._add_sample_data()

    @classmethod
    def shared(cls) -> "PreviewContainer":
        """The process-wide preview container, built on first use."""
        if cls._shared is None:
            with cls._shared_lock:
                if cls._shared is None:
                    cls._shared = cls()
        return cls._shared

    @classmethod
    def reset(cls) -> None:
        """Discard the process-wide container."""
        with cls._shared_lock:
            if cls._shared is not None:
                cls._shared.database.close()
            cls._shared = None

    def _add_sample_data(self) -> None:
        try:
            self._insert_sample_graph()
        except sqlite3.Error as e:
            logger.error("Failed to save preview data: %s", e, exc_info=True)

    def _insert_sample_graph(self) -> None:
        songs_repo = SongRepository(self.database)
        song1, song2, song3 = [songs_repo.create(song) for song in sample_songs()]

        books_repo = BookRepository(self.database)
        books_repo.create(
            Book(
                name="Classic Hymns",
                description="Traditional hymns collection",
                color="#4A90E2",
                icon="music.note.list",
                song_ids=[song1.id, song2.id, song3.id],
            )
        )
        books_repo.create(
            Book(
                name="Sunday Worship",
                description="Songs for Sunday service",
                color="#E24A4A",
                icon="sun.max.fill",
                song_ids=[song1.id, song3.id],
            )
        )

        PerformanceSetRepository(self.database).create(
            PerformanceSet(
                name="Sunday Morning Service",
                scheduled_date=self._scheduled_date,
                venue="Main Sanctuary",
                notes="Open with Amazing Grace, close with How Great Thou Art",
                entries=[
                    SetEntry(song_id=song1.id, order_index=0, notes="Slow tempo, build gradually"),
                    SetEntry(song_id=song2.id, order_index=1, key_override="E"),
                    SetEntry(song_id=song3.id, order_index=2),
                ],
            )
        )

        AnnotationRepository(self.database).create(
            Annotation(
                song_id=song1.id,
                annotation_type=AnnotationType.STICKY_NOTE,
                x=0.5,
                y=0.3,
                text="Remember to slow down here",
                note_color="#FFEB3B",
                text_color="#000000",
            )
        )

        UserSettingsRepository(self.database).create(UserSettings())

        record = ImportRecord(
            import_source="Sample Data",
            import_method="Bulk Import",
            original_file_paths=[
                "amazing_grace.cho",
                "come_thou_fount.cho",
                "how_great_thou_art.cho",
            ],
            file_types=["cho"],
            import_duration=0.0,
        )
        for song in (song1, song2, song3):
            record.add_imported_song(song)
        record.update_statistics(total=3, successful=3, failed=0, duration=0.0)
        ImportRecordRepository(self.database).create(record)

        logger.debug("Preview data added")
