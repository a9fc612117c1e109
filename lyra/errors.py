"""
Exception types for Lyra.

Clipboard failures carry a user-facing description and a recovery suggestion
so they can be shown directly in the UI.
"""


class LyraError(Exception):
    """Base exception for the song library."""


class NotFoundError(LyraError):
    """A referenced library entity does not exist."""


class ClipboardError(LyraError):
    """Base class for clipboard import failures."""

    kind = "clipboard_error"
    description = "Clipboard import failed"
    recovery_suggestion = "Please try again."

    def __init__(self, message=None):
        super().__init__(message or self.description)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.description,
            "recovery_suggestion": self.recovery_suggestion,
        }


class EmptyClipboardError(ClipboardError):
    """The clipboard holds no text, or only whitespace."""

    kind = "empty_clipboard"
    description = "Clipboard is empty"
    recovery_suggestion = "Copy some ChordPro content and try again."


class InvalidClipboardContentError(ClipboardError):
    """The clipboard reports text but none could be read."""

    kind = "invalid_content"
    description = "No text found in clipboard"
    recovery_suggestion = "Copy text content and try again."


class SongSaveError(ClipboardError):
    """The imported song could not be committed to the store."""

    kind = "save_failed"
    description = "Failed to save song"
    recovery_suggestion = "Please try again."
