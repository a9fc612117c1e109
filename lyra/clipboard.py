"""
Clipboard import for Lyra.

Creates songs from ChordPro text copied to the system clipboard.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import pyperclip

from .chordpro import ParsedSong, parse
from .database import Database, SongRepository
from .errors import EmptyClipboardError, InvalidClipboardContentError, SongSaveError
from .models import ContentFormat, Song

UNTITLED_SONG = "Untitled Song"
MAX_TITLE_LENGTH = 60
CLIPBOARD_SOURCE = "Clipboard"


def extract_first_line(content: str) -> Optional[str]:
    """
    Find a title candidate in raw song text.

    Returns:
        The first line that is non-empty after trimming and is not a
        ChordPro directive, cut to MAX_TITLE_LENGTH characters; None if
        there is no such line
    """
    for line in content.splitlines():
        trimmed = line.strip()
        if trimmed and not trimmed.startswith("{"):
            return trimmed[:MAX_TITLE_LENGTH]
    return None


class SystemClipboard:
    """Reads the platform clipboard through pyperclip."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def _paste(self) -> Optional[str]:
        try:
            text = pyperclip.paste()
        except pyperclip.PyperclipException as e:
            self.logger.warning("Clipboard unavailable: %s", e)
            return None
        return text if isinstance(text, str) else None

    def has_strings(self) -> bool:
        return bool(self._paste())

    def get_string(self) -> Optional[str]:
        return self._paste()


@dataclass
class PasteResult:
    """Outcome of a clipboard import."""

    song: Song
    had_parsing_warnings: bool  # Parser found no sections in the text
    was_untitled: bool  # Title fell back to the placeholder


class ClipboardManager:
    """Imports ChordPro songs from the clipboard into the library."""

    def __init__(
        self,
        database: Database,
        clipboard=None,
        parser: Callable[[str], ParsedSong] = parse,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize ClipboardManager.

        Args:
            database: Database the imported songs are written to
            clipboard: Object exposing has_strings() and get_string();
                defaults to the system clipboard
            parser: ChordPro parser (defaults to lyra.chordpro.parse)
            clock: Returns the import timestamp (defaults to UTC now)
        """
        self.database = database
        self.repository = SongRepository(database)
        self.clipboard = clipboard if clipboard is not None else SystemClipboard()
        self.parser = parser
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    def has_clipboard_content(self) -> bool:
        """Check if the clipboard has text content."""
        return self.clipboard.has_strings()

    def paste_song_from_clipboard(self) -> PasteResult:
        """
        Create a song from the clipboard's text.

        Returns:
            PasteResult with the saved song

        Raises:
            EmptyClipboardError: Nothing (or only whitespace) on the clipboard
            InvalidClipboardContentError: Clipboard reported text but none was readable
            SongSaveError: The song could not be committed
        """
        if not self.clipboard.has_strings():
            raise EmptyClipboardError()

        clipboard_text = self.clipboard.get_string()
        if clipboard_text is None:
            raise InvalidClipboardContentError()

        return self.import_text(clipboard_text)

    def import_text(self, text: str, source: str = CLIPBOARD_SOURCE) -> PasteResult:
        """
        Create a song from ChordPro text.

        Args:
            text: Raw song text; surrounding whitespace is removed
            source: Recorded as the song's import source

        Raises:
            EmptyClipboardError: Text is empty or whitespace only
            SongSaveError: The song could not be committed
        """
        content = text.strip()
        if not content:
            raise EmptyClipboardError()

        parsed = self.parser(content)

        if parsed.title:
            title, was_untitled = parsed.title, False
        else:
            first_line = extract_first_line(content)
            if first_line is not None:
                title, was_untitled = first_line, False
            else:
                title, was_untitled = UNTITLED_SONG, True

        song = Song(
            title=title,
            artist=parsed.artist,
            content=content,
            content_format=ContentFormat.CHORDPRO,
            original_key=parsed.key,
            tempo=parsed.tempo,
            time_signature=parsed.time_signature,
            capo=parsed.capo,
            copyright=parsed.copyright,
            ccli_number=parsed.ccli_number,
            album=parsed.album,
            year=parsed.year,
            import_source=source,
            imported_at=self._clock(),
        )

        try:
            self.repository.create(song)
        except sqlite3.Error as e:
            self.logger.error("Failed to save pasted song %r: %s", title, e)
            raise SongSaveError() from e

        had_warnings = not parsed.sections
        self.logger.info(
            "Imported song %s from %s: %s%s",
            song.id,
            source,
            song.title,
            " (no sections parsed)" if had_warnings else "",
        )
        return PasteResult(song=song, had_parsing_warnings=had_warnings, was_untitled=was_untitled)
