"""
Database module for Lyra.

Handles SQLite database initialization, schema creation, connection management,
and the repositories that map rows to the dataclasses in ``lyra.models``.
"""

import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import (
    Annotation,
    AnnotationType,
    Attachment,
    Book,
    ConfigEntry,
    ContentFormat,
    ImportRecord,
    PerformanceSet,
    SetEntry,
    Song,
    UserSettings,
)

MEMORY_PATH = ":memory:"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS import_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    import_source TEXT NOT NULL,
    import_method TEXT,
    total_file_count INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER NOT NULL DEFAULT 0,
    failed_count INTEGER NOT NULL DEFAULT 0,
    duplicate_count INTEGER NOT NULL DEFAULT 0,
    skipped_count INTEGER NOT NULL DEFAULT 0,
    original_file_paths_json TEXT,
    file_types_json TEXT,
    cloud_folder_path TEXT,
    cloud_sync_enabled INTEGER NOT NULL DEFAULT 0,
    import_duration REAL,
    error_messages_json TEXT,
    notes TEXT,
    import_date TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS songs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    artist TEXT,
    content TEXT NOT NULL DEFAULT '',
    content_format TEXT NOT NULL DEFAULT 'chordpro',
    original_key TEXT,
    current_key TEXT,
    tempo INTEGER,
    time_signature TEXT,
    capo INTEGER,
    copyright TEXT,
    ccli_number TEXT UNIQUE,
    album TEXT,
    year INTEGER,
    notes TEXT,
    tags_json TEXT NOT NULL DEFAULT '[]',
    import_source TEXT,
    imported_at TEXT,
    import_record_id INTEGER REFERENCES import_records(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_songs_title ON songs(title COLLATE NOCASE);
CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs(artist COLLATE NOCASE);

CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT,
    color TEXT,
    icon TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS book_songs (
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    PRIMARY KEY (book_id, song_id)
);

CREATE TABLE IF NOT EXISTS performance_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    scheduled_date TEXT,
    venue TEXT,
    notes TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS set_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    set_id INTEGER NOT NULL REFERENCES performance_sets(id) ON DELETE CASCADE,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    order_index INTEGER NOT NULL,
    notes TEXT,
    key_override TEXT
);

CREATE INDEX IF NOT EXISTS idx_set_entries_order ON set_entries(set_id, order_index);

CREATE TABLE IF NOT EXISTS annotations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    annotation_type TEXT NOT NULL,
    x REAL NOT NULL,
    y REAL NOT NULL,
    text TEXT,
    note_color TEXT,
    text_color TEXT,
    font_size INTEGER NOT NULL DEFAULT 14,
    rotation REAL NOT NULL DEFAULT 0,
    scale REAL NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS attachments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
    filename TEXT NOT NULL,
    file_type TEXT,
    file_size INTEGER,
    storage_path TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    theme TEXT NOT NULL DEFAULT 'system',
    font_size INTEGER NOT NULL DEFAULT 16,
    show_chords INTEGER NOT NULL DEFAULT 1,
    autoscroll_enabled INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
"""


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _encode_list(values: Optional[Iterable[str]]) -> Optional[str]:
    if values is None:
        return None
    return json.dumps(list(values))


def _decode_list(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    try:
        return list(json.loads(raw))
    except (json.JSONDecodeError, TypeError):
        logging.getLogger(__name__).warning("Failed to decode list JSON: %s", raw)
        return []


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses $LYRA_DB_PATH
                or ~/.lyra/lyra.db. ":memory:" creates an isolated in-memory
                store that lives as long as this object.
        """
        self.logger = logging.getLogger(__name__)
        self._anchor: Optional[sqlite3.Connection] = None

        if db_path is None:
            db_path = os.environ.get("LYRA_DB_PATH")
        if db_path is None:
            lyra_dir = Path.home() / ".lyra"
            lyra_dir.mkdir(exist_ok=True)
            db_path = str(lyra_dir / "lyra.db")

        self.in_memory = db_path == MEMORY_PATH
        if self.in_memory:
            # Shared-cache URI so every connection sees the same store;
            # the anchor keeps it alive between calls.
            self.db_path = f"file:lyra-{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._anchor = self._connect()
        else:
            self.db_path = db_path

        self._ensure_schema()
        self.logger.info(
            "Database initialized at %s", "memory" if self.in_memory else self.db_path
        )

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False, uri=self.in_memory)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()
        self.logger.debug("Database schema created/verified")

    def get_connection(self) -> sqlite3.Connection:
        """
        Get a new database connection.

        Each caller gets its own connection and is responsible for closing it.
        """
        return self._connect()

    def close(self):
        """Release the in-memory anchor connection, if any."""
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# =============================================================================
# Row mapping
# =============================================================================


def _row_to_song(row: sqlite3.Row) -> Song:
    return Song(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        content=row["content"],
        content_format=ContentFormat(row["content_format"]),
        original_key=row["original_key"],
        current_key=row["current_key"],
        tempo=row["tempo"],
        time_signature=row["time_signature"],
        capo=row["capo"],
        copyright=row["copyright"],
        ccli_number=row["ccli_number"],
        album=row["album"],
        year=row["year"],
        notes=row["notes"],
        tags=set(_decode_list(row["tags_json"]) or []),
        import_source=row["import_source"],
        imported_at=from_iso(row["imported_at"]),
        import_record_id=row["import_record_id"],
        created_at=from_iso(row["created_at"]),
        modified_at=from_iso(row["modified_at"]),
    )


def _row_to_entry(row: sqlite3.Row) -> SetEntry:
    return SetEntry(
        id=row["id"],
        set_id=row["set_id"],
        song_id=row["song_id"],
        order_index=row["order_index"],
        notes=row["notes"],
        key_override=row["key_override"],
    )


def _row_to_annotation(row: sqlite3.Row) -> Annotation:
    return Annotation(
        id=row["id"],
        song_id=row["song_id"],
        annotation_type=AnnotationType(row["annotation_type"]),
        x=row["x"],
        y=row["y"],
        text=row["text"],
        note_color=row["note_color"],
        text_color=row["text_color"],
        font_size=row["font_size"],
        rotation=row["rotation"],
        scale=row["scale"],
        created_at=from_iso(row["created_at"]),
    )


# =============================================================================
# Repositories
# =============================================================================


class ConfigRepository:
    """Key-value configuration rows."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def get(self, key: str) -> Optional[ConfigEntry]:
        """
        Fetch a stored configuration entry.

        Args:
            key: Configuration key

        Returns:
            ConfigEntry, or None if the key has never been stored
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT key, value, updated_at FROM config WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            return ConfigEntry(
                key=row["key"], value=row["value"], updated_at=from_iso(row["updated_at"])
            )
        finally:
            conn.close()

    def set(self, key: str, value: str) -> bool:
        """
        Insert or replace a configuration value.

        Args:
            key: Configuration key
            value: Value already converted to a string

        Returns:
            True once committed
        """
        conn = self.database.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO config (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, to_iso(utcnow())),
            )
            conn.commit()
            return True
        finally:
            conn.close()

    def delete(self, key: str) -> bool:
        """
        Remove a configuration value.

        Returns:
            True if a row was deleted
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM config WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_all(self) -> List[ConfigEntry]:
        """Get every stored configuration entry, ordered by key."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT key, value, updated_at FROM config ORDER BY key").fetchall()
            return [
                ConfigEntry(key=r["key"], value=r["value"], updated_at=from_iso(r["updated_at"]))
                for r in rows
            ]
        finally:
            conn.close()

    def initialize_defaults(self, defaults: Dict[str, Any]) -> None:
        """Insert default values for keys that are not yet stored."""
        conn = self.database.get_connection()
        try:
            now = to_iso(utcnow())
            for key, value in defaults.items():
                if value is None:
                    continue
                conn.execute(
                    "INSERT OR IGNORE INTO config (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, str(value), now),
                )
            conn.commit()
        finally:
            conn.close()


class SongRepository:
    """Persistence for Song records."""

    _COLUMNS = (
        "title, artist, content, content_format, original_key, current_key, tempo, "
        "time_signature, capo, copyright, ccli_number, album, year, notes, tags_json, "
        "import_source, imported_at, import_record_id"
    )

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _values(song: Song) -> tuple:
        return (
            song.title,
            song.artist,
            song.content,
            ContentFormat(song.content_format).value,
            song.original_key,
            song.current_key,
            song.tempo,
            song.time_signature,
            song.capo,
            song.copyright,
            song.ccli_number,
            song.album,
            song.year,
            song.notes,
            json.dumps(sorted(song.tags)),
            song.import_source,
            to_iso(song.imported_at),
            song.import_record_id,
        )

    def create(self, song: Song) -> Song:
        """
        Insert a song and commit.

        Returns:
            The same Song with id and timestamps filled in

        Raises:
            sqlite3.Error: If the insert fails (e.g. duplicate CCLI number)
        """
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                f"INSERT INTO songs ({self._COLUMNS}, created_at, modified_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                self._values(song) + (to_iso(now), to_iso(now)),
            )
            conn.commit()
            song.id = cursor.lastrowid
            song.created_at = now
            song.modified_at = now
            self.logger.debug("Inserted song %s: %s", song.id, song.title)
            return song
        finally:
            conn.close()

    def update(self, song: Song) -> bool:
        """
        Write all editable fields of a saved song and bump modified_at.

        Args:
            song: Song with a database id

        Returns:
            True if the song exists and was updated

        Raises:
            ValueError: If the song has never been saved
        """
        if song.id is None:
            raise ValueError("Cannot update a song that has not been saved")
        now = utcnow()
        assignments = ", ".join(f"{col.strip()} = ?" for col in self._COLUMNS.split(","))
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                f"UPDATE songs SET {assignments}, modified_at = ? WHERE id = ?",
                self._values(song) + (to_iso(now), song.id),
            )
            conn.commit()
            if cursor.rowcount:
                song.modified_at = now
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_by_id(self, song_id: int) -> Optional[Song]:
        """
        Get a song by id.

        Args:
            song_id: Song ID

        Returns:
            Song, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM songs WHERE id = ?", (song_id,)).fetchone()
            return _row_to_song(row) if row else None
        finally:
            conn.close()

    def get_many(self, song_ids: List[int]) -> List[Song]:
        """Fetch songs preserving the order of ``song_ids``."""
        if not song_ids:
            return []
        conn = self.database.get_connection()
        try:
            placeholders = ", ".join("?" for _ in song_ids)
            rows = conn.execute(
                f"SELECT * FROM songs WHERE id IN ({placeholders})", tuple(song_ids)
            ).fetchall()
        finally:
            conn.close()
        by_id = {row["id"]: _row_to_song(row) for row in rows}
        return [by_id[song_id] for song_id in song_ids if song_id in by_id]

    def list_all(self) -> List[Song]:
        """Get all songs, sorted by title (case-insensitive)."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT * FROM songs ORDER BY title COLLATE NOCASE, id").fetchall()
            return [_row_to_song(row) for row in rows]
        finally:
            conn.close()

    def search(self, query: str) -> List[Song]:
        """Case-insensitive substring search over title and artist."""
        pattern = f"%{query.strip()}%"
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                """
                SELECT * FROM songs
                WHERE title LIKE ? OR artist LIKE ?
                ORDER BY title COLLATE NOCASE, id
                """,
                (pattern, pattern),
            ).fetchall()
            return [_row_to_song(row) for row in rows]
        finally:
            conn.close()

    def delete(self, song_id: int) -> bool:
        """
        Delete a song. Annotations, attachments, set entries and book links go with it.

        Args:
            song_id: Song ID

        Returns:
            True if the song existed
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM songs WHERE id = ?", (song_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def count(self) -> int:
        """Number of songs in the library."""
        conn = self.database.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM songs").fetchone()[0]
        finally:
            conn.close()


class BookRepository:
    """Persistence for Book records and their song membership."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def create(self, book: Book) -> Book:
        """
        Insert a book with its initial songs (duplicates dropped, order kept).

        Args:
            book: Book to insert

        Returns:
            The same Book with id and created_at filled in
        """
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO books (name, description, color, icon, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (book.name, book.description, book.color, book.icon, to_iso(now)),
            )
            book_id = cursor.lastrowid
            for position, song_id in enumerate(dict.fromkeys(book.song_ids)):
                conn.execute(
                    "INSERT INTO book_songs (book_id, song_id, position) VALUES (?, ?, ?)",
                    (book_id, song_id, position),
                )
            conn.commit()
            book.id = book_id
            book.created_at = now
            book.song_ids = list(dict.fromkeys(book.song_ids))
            return book
        finally:
            conn.close()

    def _song_ids(self, conn: sqlite3.Connection, book_id: int) -> List[int]:
        rows = conn.execute(
            "SELECT song_id FROM book_songs WHERE book_id = ? ORDER BY position", (book_id,)
        ).fetchall()
        return [row["song_id"] for row in rows]

    def _row_to_book(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Book:
        return Book(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            color=row["color"],
            icon=row["icon"],
            song_ids=self._song_ids(conn, row["id"]),
            created_at=from_iso(row["created_at"]),
        )

    def get_by_id(self, book_id: int) -> Optional[Book]:
        """
        Get a book by id, with its song ids in book order.

        Args:
            book_id: Book ID

        Returns:
            Book, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            return self._row_to_book(conn, row) if row else None
        finally:
            conn.close()

    def list_all(self) -> List[Book]:
        """Get all books, sorted by name (case-insensitive)."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute("SELECT * FROM books ORDER BY name COLLATE NOCASE, id").fetchall()
            return [self._row_to_book(conn, row) for row in rows]
        finally:
            conn.close()

    def add_song(self, book_id: int, song_id: int) -> bool:
        """Append a song to a book. Returns False if it was already a member."""
        conn = self.database.get_connection()
        try:
            next_position = conn.execute(
                "SELECT COALESCE(MAX(position) + 1, 0) FROM book_songs WHERE book_id = ?",
                (book_id,),
            ).fetchone()[0]
            cursor = conn.execute(
                "INSERT OR IGNORE INTO book_songs (book_id, song_id, position) VALUES (?, ?, ?)",
                (book_id, song_id, next_position),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def remove_song(self, book_id: int, song_id: int) -> bool:
        """
        Remove a song from a book. The song itself is kept.

        Args:
            book_id: Book ID
            song_id: Song ID

        Returns:
            True if the song was a member
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "DELETE FROM book_songs WHERE book_id = ? AND song_id = ?", (book_id, song_id)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete(self, book_id: int) -> bool:
        """
        Delete a book and its song links.

        Returns:
            True if the book existed
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class PerformanceSetRepository:
    """Persistence for performance sets and their ordered entries."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def create(self, performance_set: PerformanceSet) -> PerformanceSet:
        """Insert a set together with any entries it already holds."""
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO performance_sets (name, scheduled_date, venue, notes, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    performance_set.name,
                    to_iso(performance_set.scheduled_date),
                    performance_set.venue,
                    performance_set.notes,
                    to_iso(now),
                ),
            )
            set_id = cursor.lastrowid
            for entry in performance_set.entries:
                entry.set_id = set_id
                entry.id = self._insert_entry(conn, entry)
            conn.commit()
            performance_set.id = set_id
            performance_set.created_at = now
            return performance_set
        finally:
            conn.close()

    @staticmethod
    def _insert_entry(conn: sqlite3.Connection, entry: SetEntry) -> int:
        cursor = conn.execute(
            "INSERT INTO set_entries (set_id, song_id, order_index, notes, key_override) "
            "VALUES (?, ?, ?, ?, ?)",
            (entry.set_id, entry.song_id, entry.order_index, entry.notes, entry.key_override),
        )
        return cursor.lastrowid

    def _entries(self, conn: sqlite3.Connection, set_id: int) -> List[SetEntry]:
        rows = conn.execute(
            "SELECT * FROM set_entries WHERE set_id = ? ORDER BY order_index, id", (set_id,)
        ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def _row_to_set(self, conn: sqlite3.Connection, row: sqlite3.Row) -> PerformanceSet:
        return PerformanceSet(
            id=row["id"],
            name=row["name"],
            scheduled_date=from_iso(row["scheduled_date"]),
            venue=row["venue"],
            notes=row["notes"],
            entries=self._entries(conn, row["id"]),
            created_at=from_iso(row["created_at"]),
        )

    def get_by_id(self, set_id: int) -> Optional[PerformanceSet]:
        """
        Get a set by id with its entries in order.

        Args:
            set_id: Set ID

        Returns:
            PerformanceSet, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM performance_sets WHERE id = ?", (set_id,)).fetchone()
            return self._row_to_set(conn, row) if row else None
        finally:
            conn.close()

    def list_all(self) -> List[PerformanceSet]:
        """Get all sets, scheduled ones first by date."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM performance_sets ORDER BY scheduled_date IS NULL, scheduled_date, id"
            ).fetchall()
            return [self._row_to_set(conn, row) for row in rows]
        finally:
            conn.close()

    def get_entry(self, entry_id: int) -> Optional[SetEntry]:
        """
        Get a single set entry.

        Args:
            entry_id: Entry ID

        Returns:
            SetEntry, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM set_entries WHERE id = ?", (entry_id,)).fetchone()
            return _row_to_entry(row) if row else None
        finally:
            conn.close()

    def add_entry(self, entry: SetEntry) -> SetEntry:
        """
        Insert an entry at the order_index it already carries.

        Args:
            entry: Entry with set_id, song_id and order_index set

        Returns:
            The same SetEntry with its id filled in
        """
        conn = self.database.get_connection()
        try:
            entry.id = self._insert_entry(conn, entry)
            conn.commit()
            return entry
        finally:
            conn.close()

    def update_entry(self, entry: SetEntry) -> bool:
        """
        Save an entry's notes and key override.

        Returns:
            True if the entry exists
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "UPDATE set_entries SET notes = ?, key_override = ? WHERE id = ?",
                (entry.notes, entry.key_override, entry.id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def set_ids_for_song(self, song_id: int) -> List[int]:
        """
        Find the sets that contain a song.

        Args:
            song_id: Song to look for

        Returns:
            Distinct set ids, in ascending order
        """
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT DISTINCT set_id FROM set_entries WHERE song_id = ? ORDER BY set_id",
                (song_id,),
            ).fetchall()
            return [row["set_id"] for row in rows]
        finally:
            conn.close()

    def write_order(self, set_id: int, entry_ids: List[int]) -> None:
        """Rewrite order_index for a set so entries are numbered 0..n-1."""
        conn = self.database.get_connection()
        try:
            for index, entry_id in enumerate(entry_ids):
                conn.execute(
                    "UPDATE set_entries SET order_index = ? WHERE id = ? AND set_id = ?",
                    (index, entry_id, set_id),
                )
            conn.commit()
        finally:
            conn.close()

    def delete_entry(self, entry_id: int) -> bool:
        """
        Delete one entry. The caller renumbers the set afterwards.

        Returns:
            True if the entry existed
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM set_entries WHERE id = ?", (entry_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def delete(self, set_id: int) -> bool:
        """
        Delete a set and its entries. Songs are kept.

        Returns:
            True if the set existed
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM performance_sets WHERE id = ?", (set_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class AnnotationRepository:
    """Persistence for song annotations."""

    def __init__(self, database: Database):
        self.database = database

    def create(self, annotation: Annotation) -> Annotation:
        """
        Insert an annotation.

        Args:
            annotation: Annotation to insert

        Returns:
            The same Annotation with id and created_at filled in
        """
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO annotations (
                    song_id, annotation_type, x, y, text, note_color, text_color,
                    font_size, rotation, scale, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    annotation.song_id,
                    AnnotationType(annotation.annotation_type).value,
                    annotation.x,
                    annotation.y,
                    annotation.text,
                    annotation.note_color,
                    annotation.text_color,
                    annotation.font_size,
                    annotation.rotation,
                    annotation.scale,
                    to_iso(now),
                ),
            )
            conn.commit()
            annotation.id = cursor.lastrowid
            annotation.created_at = now
            return annotation
        finally:
            conn.close()

    def get_by_id(self, annotation_id: int) -> Optional[Annotation]:
        """
        Get an annotation by id.

        Returns:
            Annotation, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM annotations WHERE id = ?", (annotation_id,)
            ).fetchone()
            return _row_to_annotation(row) if row else None
        finally:
            conn.close()

    def list_for_song(self, song_id: int) -> List[Annotation]:
        """Get a song's annotations in creation order."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM annotations WHERE song_id = ? ORDER BY id", (song_id,)
            ).fetchall()
            return [_row_to_annotation(row) for row in rows]
        finally:
            conn.close()

    def count(self) -> int:
        """Number of annotations across all songs."""
        conn = self.database.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM annotations").fetchone()[0]
        finally:
            conn.close()

    def delete(self, annotation_id: int) -> bool:
        """
        Delete an annotation.

        Returns:
            True if the annotation existed
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute("DELETE FROM annotations WHERE id = ?", (annotation_id,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()


class AttachmentRepository:
    """Persistence for song attachments."""

    def __init__(self, database: Database):
        self.database = database

    def create(self, attachment: Attachment) -> Attachment:
        """
        Insert an attachment record.

        Args:
            attachment: Attachment to insert

        Returns:
            The same Attachment with id and created_at filled in
        """
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO attachments (song_id, filename, file_type, file_size, "
                "storage_path, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    attachment.song_id,
                    attachment.filename,
                    attachment.file_type,
                    attachment.file_size,
                    attachment.storage_path,
                    to_iso(now),
                ),
            )
            conn.commit()
            attachment.id = cursor.lastrowid
            attachment.created_at = now
            return attachment
        finally:
            conn.close()

    def list_for_song(self, song_id: int) -> List[Attachment]:
        """Get a song's attachments in creation order."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM attachments WHERE song_id = ? ORDER BY id", (song_id,)
            ).fetchall()
            return [
                Attachment(
                    id=row["id"],
                    song_id=row["song_id"],
                    filename=row["filename"],
                    file_type=row["file_type"],
                    file_size=row["file_size"],
                    storage_path=row["storage_path"],
                    created_at=from_iso(row["created_at"]),
                )
                for row in rows
            ]
        finally:
            conn.close()


class UserSettingsRepository:
    """Persistence for the user settings record."""

    def __init__(self, database: Database):
        self.database = database

    def create(self, settings: UserSettings) -> UserSettings:
        """
        Insert a settings record.

        Returns:
            The same UserSettings with id and created_at filled in
        """
        now = utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO user_settings (theme, font_size, show_chords, autoscroll_enabled, "
                "created_at) VALUES (?, ?, ?, ?, ?)",
                (
                    settings.theme,
                    settings.font_size,
                    int(settings.show_chords),
                    int(settings.autoscroll_enabled),
                    to_iso(now),
                ),
            )
            conn.commit()
            settings.id = cursor.lastrowid
            settings.created_at = now
            return settings
        finally:
            conn.close()

    def get(self) -> Optional[UserSettings]:
        """Return the first settings record, if one exists."""
        conn = self.database.get_connection()
        try:
            row = conn.execute("SELECT * FROM user_settings ORDER BY id LIMIT 1").fetchone()
            if row is None:
                return None
            return UserSettings(
                id=row["id"],
                theme=row["theme"],
                font_size=row["font_size"],
                show_chords=bool(row["show_chords"]),
                autoscroll_enabled=bool(row["autoscroll_enabled"]),
                created_at=from_iso(row["created_at"]),
            )
        finally:
            conn.close()

    def count(self) -> int:
        """Number of settings records."""
        conn = self.database.get_connection()
        try:
            return conn.execute("SELECT COUNT(*) FROM user_settings").fetchone()[0]
        finally:
            conn.close()


class ImportRecordRepository:
    """Persistence for import batches and the songs they produced."""

    def __init__(self, database: Database):
        self.database = database
        self.logger = logging.getLogger(__name__)

    def create(self, record: ImportRecord) -> ImportRecord:
        """Insert a record and link every song in ``record.song_ids`` to it."""
        import_date = record.import_date or utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO import_records (
                    import_source, import_method, total_file_count, success_count,
                    failed_count, duplicate_count, skipped_count, original_file_paths_json,
                    file_types_json, cloud_folder_path, cloud_sync_enabled, import_duration,
                    error_messages_json, notes, import_date
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.import_source,
                    record.import_method,
                    record.total_file_count,
                    record.success_count,
                    record.failed_count,
                    record.duplicate_count,
                    record.skipped_count,
                    _encode_list(record.original_file_paths),
                    _encode_list(record.file_types),
                    record.cloud_folder_path,
                    int(record.cloud_sync_enabled),
                    record.import_duration,
                    _encode_list(record.error_messages),
                    record.notes,
                    to_iso(import_date),
                ),
            )
            record_id = cursor.lastrowid
            for song_id in record.song_ids:
                conn.execute(
                    "UPDATE songs SET import_record_id = ? WHERE id = ?", (record_id, song_id)
                )
            conn.commit()
            record.id = record_id
            record.import_date = import_date
            return record
        finally:
            conn.close()

    def _row_to_record(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ImportRecord:
        song_rows = conn.execute(
            "SELECT id FROM songs WHERE import_record_id = ? ORDER BY id", (row["id"],)
        ).fetchall()
        return ImportRecord(
            id=row["id"],
            import_source=row["import_source"],
            import_method=row["import_method"],
            total_file_count=row["total_file_count"],
            success_count=row["success_count"],
            failed_count=row["failed_count"],
            duplicate_count=row["duplicate_count"],
            skipped_count=row["skipped_count"],
            original_file_paths=_decode_list(row["original_file_paths_json"]),
            file_types=_decode_list(row["file_types_json"]),
            cloud_folder_path=row["cloud_folder_path"],
            cloud_sync_enabled=bool(row["cloud_sync_enabled"]),
            import_duration=row["import_duration"],
            error_messages=_decode_list(row["error_messages_json"]),
            notes=row["notes"],
            song_ids=[r["id"] for r in song_rows],
            import_date=from_iso(row["import_date"]),
        )

    def get_by_id(self, record_id: int) -> Optional[ImportRecord]:
        """
        Get an import record by id, with the ids of the songs it produced.

        Args:
            record_id: Import record ID

        Returns:
            ImportRecord, or None if not found
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM import_records WHERE id = ?", (record_id,)
            ).fetchone()
            return self._row_to_record(conn, row) if row else None
        finally:
            conn.close()

    def list_all(self) -> List[ImportRecord]:
        """Get all import records, newest first."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM import_records ORDER BY import_date DESC, id DESC"
            ).fetchall()
            return [self._row_to_record(conn, row) for row in rows]
        finally:
            conn.close()
