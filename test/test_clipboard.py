"""
Unit tests for ClipboardManager.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from lyra.chordpro import parse
from lyra.clipboard import (
    CLIPBOARD_SOURCE,
    MAX_TITLE_LENGTH,
    UNTITLED_SONG,
    ClipboardManager,
    SystemClipboard,
    extract_first_line,
)
from lyra.database import Database, SongRepository
from lyra.errors import EmptyClipboardError, InvalidClipboardContentError, SongSaveError
from lyra.models import ContentFormat

IMPORT_TIME = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


class FakeClipboard:
    """In-memory clipboard exposing the same interface as SystemClipboard."""

    def __init__(self, text=None, has_strings=None):
        self.text = text
        self._has_strings = has_strings

    def has_strings(self):
        if self._has_strings is not None:
            return self._has_strings
        return bool(self.text)

    def get_string(self):
        return self.text


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
def song_repo(temp_db):
    return SongRepository(temp_db)


def make_manager(db, text=None, has_strings=None):
    return ClipboardManager(
        db, clipboard=FakeClipboard(text, has_strings), clock=lambda: IMPORT_TIME
    )


class TestHasClipboardContent:
    def test_reports_text(self, temp_db):
        assert make_manager(temp_db, "[G]Hello").has_clipboard_content() is True

    def test_reports_empty(self, temp_db):
        assert make_manager(temp_db, None).has_clipboard_content() is False


class TestPasteSong:
    def test_paste_chordpro_song(self, temp_db, song_repo):
        text = "{title: Amazing Grace}\n{artist: Traditional}\n{key: G}\n\n[G]Amazing grace"
        result = make_manager(temp_db, text).paste_song_from_clipboard()

        song = result.song
        assert song.id is not None
        assert song.title == "Amazing Grace"
        assert song.artist == "Traditional"
        assert song.original_key == "G"
        assert song.current_key == "G"
        assert song.content_format == ContentFormat.CHORDPRO
        assert song.import_source == CLIPBOARD_SOURCE
        assert song.imported_at == IMPORT_TIME
        assert result.was_untitled is False
        assert result.had_parsing_warnings is False

        stored = song_repo.get_by_id(song.id)
        assert stored.title == "Amazing Grace"
        assert stored.content == text
        assert song_repo.count() == 1

    def test_content_is_trimmed(self, temp_db, song_repo):
        result = make_manager(temp_db, "\n\n  [C]Hello world  \n\n").paste_song_from_clipboard()
        assert song_repo.get_by_id(result.song.id).content == "[C]Hello world"

    def test_metadata_carried_over(self, temp_db):
        text = "{title: X}\n{tempo: 72}\n{capo: 3}\n{time: 6/8}\n{ccli: 1234}\nLine"
        song = make_manager(temp_db, text).paste_song_from_clipboard().song
        assert song.tempo == 72
        assert song.capo == 3
        assert song.time_signature == "6/8"
        assert song.ccli_number == "1234"

    def test_title_falls_back_to_first_line(self, temp_db):
        text = "{key: D}\n\nCome thou fount of every blessing\n[D]Tune my heart"
        result = make_manager(temp_db, text).paste_song_from_clipboard()
        assert result.song.title == "Come thou fount of every blessing"
        assert result.was_untitled is False

    def test_fallback_title_is_truncated(self, temp_db):
        result = make_manager(temp_db, "x" * 100).paste_song_from_clipboard()
        assert result.song.title == "x" * MAX_TITLE_LENGTH

    def test_untitled_when_only_directives(self, temp_db, song_repo):
        result = make_manager(temp_db, "{artist: Somebody}\n{key: E}").paste_song_from_clipboard()
        assert result.song.title == UNTITLED_SONG
        assert result.was_untitled is True
        assert result.had_parsing_warnings is True
        assert song_repo.count() == 1

    def test_empty_clipboard(self, temp_db, song_repo):
        manager = make_manager(temp_db, None)
        with pytest.raises(EmptyClipboardError) as exc_info:
            manager.paste_song_from_clipboard()
        assert exc_info.value.to_dict()["message"] == "Clipboard is empty"
        assert song_repo.count() == 0

    def test_whitespace_only_clipboard(self, temp_db, song_repo):
        manager = make_manager(temp_db, "   \n\t\n  ")
        with pytest.raises(EmptyClipboardError):
            manager.paste_song_from_clipboard()
        assert song_repo.count() == 0

    def test_unreadable_clipboard(self, temp_db, song_repo):
        manager = make_manager(temp_db, None, has_strings=True)
        with pytest.raises(InvalidClipboardContentError) as exc_info:
            manager.paste_song_from_clipboard()
        assert exc_info.value.recovery_suggestion == "Copy text content and try again."
        assert song_repo.count() == 0

    def test_duplicate_ccli_number_fails_to_save(self, temp_db, song_repo):
        text = "{title: First}\n{ccli: 555}\nLine"
        make_manager(temp_db, text).paste_song_from_clipboard()

        with pytest.raises(SongSaveError) as exc_info:
            make_manager(temp_db, "{title: Second}\n{ccli: 555}\nLine").paste_song_from_clipboard()

        assert isinstance(exc_info.value.__cause__, sqlite3.Error)
        assert song_repo.count() == 1

    def test_repository_failure_is_wrapped(self, temp_db):
        manager = make_manager(temp_db, "Some song")
        manager.repository = Mock()
        manager.repository.create = Mock(side_effect=sqlite3.OperationalError("disk I/O error"))

        with pytest.raises(SongSaveError) as exc_info:
            manager.paste_song_from_clipboard()
        assert exc_info.value.to_dict()["kind"] == "save_failed"


class TestImportText:
    def test_custom_source(self, temp_db):
        result = make_manager(temp_db).import_text("Hello", source="Web")
        assert result.song.import_source == "Web"
        assert result.song.title == "Hello"

    def test_custom_parser(self, temp_db):
        parser = Mock(wraps=parse)
        manager = ClipboardManager(temp_db, clipboard=FakeClipboard("Line"), parser=parser)
        manager.paste_song_from_clipboard()
        parser.assert_called_once_with("Line")


class TestExtractFirstLine:
    def test_skips_directives_and_blanks(self):
        assert extract_first_line("{title: X}\n\n   \n  First real line  ") == "First real line"

    def test_none_when_no_candidate(self):
        assert extract_first_line("{a: b}\n\n") is None


@pytest.mark.system_clipboard
def test_system_clipboard_round_trip():
    """The real clipboard is readable through pyperclip."""
    import pyperclip

    pyperclip.copy("{title: Clipboard Test}")
    clipboard = SystemClipboard()
    assert clipboard.has_strings() is True
    assert clipboard.get_string() == "{title: Clipboard Test}"
