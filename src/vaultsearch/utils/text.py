"""Text helpers for titles and log-safe echoes of user input."""

from __future__ import annotations

import posixpath
import re

NOTE_EXTENSION = ".md"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def extract_title(note_path: str) -> str:
    """Derive a display title from a note path.

    The filename loses its `.md` extension and underscores become spaces.
    """
    filename = posixpath.basename(note_path.replace("\\", "/"))
    if filename.lower().endswith(NOTE_EXTENSION):
        filename = filename[: -len(NOTE_EXTENSION)]
    return filename.replace("_", " ")


def sanitize_for_log(value: object, *, max_chars: int = 100) -> str:
    """Strip control characters and cap length before echoing input into logs."""
    return _CONTROL_CHARS.sub("", str(value))[:max_chars]


def truncate_utf8(content: bytes, max_bytes: int) -> tuple[str, bool]:
    """Decode at most `max_bytes` of UTF-8, never splitting a character.

    Returns the decoded text and whether anything was cut off.
    """
    if len(content) <= max_bytes:
        return content.decode("utf-8", errors="replace"), False
    head = content[:max_bytes]
    # Drop a partial multi-byte sequence at the cut point
    return head.decode("utf-8", errors="ignore"), True
