"""
Pytest configuration for lyra tests.

Provides:
- @pytest.mark.system_clipboard marker for tests that read the real clipboard
- Auto-skip of those tests when pyperclip has no clipboard mechanism
"""

import pytest


def _is_clipboard_available():
    """Check if pyperclip can reach a system clipboard."""
    try:
        import pyperclip
    except ImportError:
        return False

    try:
        pyperclip.paste()
        return True
    except pyperclip.PyperclipException:
        return False


CLIPBOARD_AVAILABLE = _is_clipboard_available()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "system_clipboard: marks tests as requiring a system clipboard (skipped if unavailable)",
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip clipboard tests when no clipboard is available."""
    if CLIPBOARD_AVAILABLE:
        return

    skip_clipboard = pytest.mark.skip(reason="System clipboard not available")
    for item in items:
        if "system_clipboard" in item.keywords:
            item.add_marker(skip_clipboard)
