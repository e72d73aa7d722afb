"""Utility helpers for working with files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

FRAGMENT_SUFFIX = ".ajson"


def iter_fragment_paths(directory: Path) -> Iterator[Path]:
    """Yield append-log fragments in `directory`, sorted by filename."""
    for item in sorted(directory.iterdir(), key=lambda child: child.name):
        if item.is_file() and item.suffix == FRAGMENT_SUFFIX:
            yield item
