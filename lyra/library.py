"""
Library management for Lyra.

Operations on songs, books, performance sets, annotations, attachments and
import history, with validation of the references between them.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from .database import (
    AnnotationRepository,
    AttachmentRepository,
    BookRepository,
    Database,
    ImportRecordRepository,
    PerformanceSetRepository,
    SongRepository,
    UserSettingsRepository,
)
from .errors import NotFoundError
from .models import (
    Annotation,
    AnnotationType,
    Attachment,
    Book,
    ImportRecord,
    PerformanceSet,
    SetEntry,
    Song,
    UserSettings,
)

# Sticky note defaults (yellow note, black text)
DEFAULT_NOTE_COLOR = "#FFEB3B"
DEFAULT_TEXT_COLOR = "#000000"
DUPLICATE_OFFSET = 0.05


class LibraryManager:
    """Manages the song library and the collections built on it."""

    def __init__(self, database: Database):
        """
        Initialize LibraryManager.

        Args:
            database: Database instance for persistence
        """
        self.database = database
        self.songs = SongRepository(database)
        self.books = BookRepository(database)
        self.sets = PerformanceSetRepository(database)
        self.annotations = AnnotationRepository(database)
        self.attachments = AttachmentRepository(database)
        self.imports = ImportRecordRepository(database)
        self.user_settings = UserSettingsRepository(database)
        self.logger = logging.getLogger(__name__)

    # =========================================================================
    # Songs
    # =========================================================================

    def list_songs(self, query: Optional[str] = None) -> List[Song]:
        """List all songs, or those whose title or artist contains ``query``."""
        if query and query.strip():
            return self.songs.search(query)
        return self.songs.list_all()

    def get_song(self, song_id: int) -> Song:
        song = self.songs.get_by_id(song_id)
        if song is None:
            raise NotFoundError(f"Song {song_id} not found")
        return song

    def set_song_tags(self, song_id: int, tags: Iterable[str]) -> Song:
        song = self.get_song(song_id)
        song.tags = {tag.strip() for tag in tags if tag and tag.strip()}
        self.songs.update(song)
        return song

    def delete_song(self, song_id: int) -> bool:
        """
        Delete a song with its annotations, attachments, set entries and book links.

        Sets that lost an entry are renumbered so their order stays 0..n-1.

        Args:
            song_id: Song to delete

        Returns:
            True if the song existed
        """
        affected_sets = self.sets.set_ids_for_song(song_id)
        deleted = self.songs.delete(song_id)
        if deleted:
            for set_id in affected_sets:
                remaining = self.sets.get_by_id(set_id)
                if remaining is not None:
                    self.sets.write_order(set_id, [entry.id for entry in remaining.entries])
            self.logger.info(
                "Deleted song %s (renumbered %d sets)", song_id, len(affected_sets)
            )
        return deleted

    # =========================================================================
    # Books
    # =========================================================================

    def create_book(
        self,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        song_ids: Optional[List[int]] = None,
    ) -> Book:
        song_ids = list(song_ids or [])
        for song_id in song_ids:
            self.get_song(song_id)
        book = self.books.create(
            Book(name=name, description=description, color=color, icon=icon, song_ids=song_ids)
        )
        self.logger.info("Created book %s: %s (%d songs)", book.id, name, len(book.song_ids))
        return book

    def get_book(self, book_id: int) -> Book:
        book = self.books.get_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def list_books(self) -> List[Book]:
        return self.books.list_all()

    def book_songs(self, book_id: int) -> List[Song]:
        return self.songs.get_many(self.get_book(book_id).song_ids)

    def add_song_to_book(self, book_id: int, song_id: int) -> bool:
        """Add a song to a book. Returns False if it was already there."""
        self.get_book(book_id)
        self.get_song(song_id)
        return self.books.add_song(book_id, song_id)

    def remove_song_from_book(self, book_id: int, song_id: int) -> bool:
        return self.books.remove_song(book_id, song_id)

    # =========================================================================
    # Performance Sets
    # =========================================================================

    def create_set(
        self,
        name: str,
        scheduled_date: Optional[datetime] = None,
        venue: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PerformanceSet:
        performance_set = self.sets.create(
            PerformanceSet(name=name, scheduled_date=scheduled_date, venue=venue, notes=notes)
        )
        self.logger.info("Created set %s: %s", performance_set.id, name)
        return performance_set

    def get_set(self, set_id: int) -> PerformanceSet:
        performance_set = self.sets.get_by_id(set_id)
        if performance_set is None:
            raise NotFoundError(f"Set {set_id} not found")
        return performance_set

    def list_sets(self) -> List[PerformanceSet]:
        return self.sets.list_all()

    def get_set_entry(self, set_id: int, entry_id: int) -> SetEntry:
        entry = self.sets.get_entry(entry_id)
        if entry is None or entry.set_id != set_id:
            raise NotFoundError(f"Entry {entry_id} not found in set {set_id}")
        return entry

    def add_set_entry(
        self,
        set_id: int,
        song_id: int,
        notes: Optional[str] = None,
        key_override: Optional[str] = None,
    ) -> SetEntry:
        """Append a song to the end of a set."""
        performance_set = self.get_set(set_id)
        self.get_song(song_id)
        entry = SetEntry(
            set_id=set_id,
            song_id=song_id,
            order_index=len(performance_set.entries),
            notes=notes,
            key_override=key_override,
        )
        return self.sets.add_entry(entry)

    def update_set_entry(
        self,
        set_id: int,
        entry_id: int,
        notes: Optional[str] = None,
        key_override: Optional[str] = None,
    ) -> SetEntry:
        """Replace an entry's notes and key override (None clears them)."""
        entry = self.get_set_entry(set_id, entry_id)
        entry.notes = notes
        entry.key_override = key_override or None
        self.sets.update_entry(entry)
        return entry

    def move_set_entry(self, set_id: int, entry_id: int, new_index: int) -> PerformanceSet:
        """
        Move an entry to a new position within its set.

        Args:
            set_id: Set containing the entry
            entry_id: Entry to move
            new_index: Target position, clamped to the set bounds

        Returns:
            The set with entries renumbered 0..n-1
        """
        self.get_set_entry(set_id, entry_id)
        order = [entry.id for entry in self.get_set(set_id).entries]
        order.remove(entry_id)
        new_index = max(0, min(new_index, len(order)))
        order.insert(new_index, entry_id)
        self.sets.write_order(set_id, order)
        self.logger.debug("Moved entry %s in set %s to %d", entry_id, set_id, new_index)
        return self.get_set(set_id)

    def remove_set_entry(self, set_id: int, entry_id: int) -> PerformanceSet:
        """Remove an entry and close the gap it leaves."""
        self.get_set_entry(set_id, entry_id)
        self.sets.delete_entry(entry_id)
        remaining = [entry.id for entry in self.get_set(set_id).entries]
        self.sets.write_order(set_id, remaining)
        return self.get_set(set_id)

    def delete_set(self, set_id: int) -> bool:
        return self.sets.delete(set_id)

    # =========================================================================
    # Annotations & Attachments
    # =========================================================================

    def create_annotation(
        self,
        song_id: int,
        x: float,
        y: float,
        text: str = "",
        annotation_type: AnnotationType = AnnotationType.STICKY_NOTE,
        note_color: str = DEFAULT_NOTE_COLOR,
        text_color: str = DEFAULT_TEXT_COLOR,
    ) -> Annotation:
        """Place an annotation on a song; coordinates are clamped to [0, 1]."""
        self.get_song(song_id)
        return self.annotations.create(
            Annotation(
                song_id=song_id,
                annotation_type=annotation_type,
                x=x,
                y=y,
                text=text,
                note_color=note_color,
                text_color=text_color,
            )
        )

    def duplicate_annotation(self, annotation_id: int) -> Annotation:
        """Copy an annotation, offset slightly down and to the right."""
        original = self.annotations.get_by_id(annotation_id)
        if original is None:
            raise NotFoundError(f"Annotation {annotation_id} not found")
        return self.annotations.create(
            Annotation(
                song_id=original.song_id,
                annotation_type=original.annotation_type,
                x=original.x + DUPLICATE_OFFSET,
                y=original.y + DUPLICATE_OFFSET,
                text=original.text,
                note_color=original.note_color,
                text_color=original.text_color,
                font_size=original.font_size,
                rotation=original.rotation,
                scale=original.scale,
            )
        )

    def list_annotations(self, song_id: int) -> List[Annotation]:
        return self.annotations.list_for_song(song_id)

    def delete_annotation(self, annotation_id: int) -> bool:
        return self.annotations.delete(annotation_id)

    def add_attachment(
        self,
        song_id: int,
        filename: str,
        file_type: Optional[str] = None,
        file_size: Optional[int] = None,
        storage_path: Optional[str] = None,
    ) -> Attachment:
        self.get_song(song_id)
        if file_type is None and "." in filename:
            file_type = filename.rsplit(".", 1)[1].lower()
        return self.attachments.create(
            Attachment(
                song_id=song_id,
                filename=filename,
                file_type=file_type,
                file_size=file_size,
                storage_path=storage_path,
            )
        )

    def list_attachments(self, song_id: int) -> List[Attachment]:
        return self.attachments.list_for_song(song_id)

    # =========================================================================
    # Import History & Settings
    # =========================================================================

    def list_import_records(self) -> List[ImportRecord]:
        return self.imports.list_all()

    def get_import_record(self, record_id: int) -> ImportRecord:
        record = self.imports.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"Import record {record_id} not found")
        return record

    def get_user_settings(self) -> UserSettings:
        """Return the settings record, creating it with defaults on first use."""
        settings = self.user_settings.get()
        if settings is None:
            settings = self.user_settings.create(UserSettings())
        return settings
