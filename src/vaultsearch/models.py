"""Core vaultsearch data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

import numpy as np


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    """Embedding model the vault was indexed with."""

    model_key: str
    dimensions: int
    adapter_name: str
    dimensions_known: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modelKey": self.model_key,
            "dimensions": self.dimensions,
            "adapter": self.adapter_name,
        }


@dataclass(frozen=True, slots=True)
class BlockInfo:
    """Metadata of a sub-block (heading section) inside a note."""

    content_hash: str | None = None
    byte_size: int | None = None
    line_range: tuple[int, int] | None = None


@dataclass(frozen=True, slots=True, eq=False)
class IndexEntry:
    """A single indexed note and its embedding."""

    document_id: str
    vector: np.ndarray
    sub_blocks: Mapping[str, BlockInfo] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def dimensions(self) -> int:
        return int(self.vector.shape[0])


Index = Mapping[str, IndexEntry]


class RejectReason(str, enum.Enum):
    EMPTY = "empty"
    ABSOLUTE = "absolute_path"
    TRAVERSAL = "dot_dot"
    HIDDEN = "hidden_path"
    EXTENSION = "extension"
    NOT_FOUND = "not_found"
    UNRESOLVABLE = "unresolvable"
    ESCAPE = "symlink_escape"
    NOT_FILE = "not_file"


@dataclass(frozen=True, slots=True)
class Accepted:
    path: Path
    relative: str = ""
    valid: bool = field(default=True, init=False)


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: RejectReason
    message: str
    valid: bool = field(default=False, init=False)


ValidationOutcome = Union[Accepted, Rejected]


@dataclass(frozen=True, slots=True)
class SimilarityHit:
    """Ranked match returned by the similarity engine."""

    document_id: str
    title: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.document_id,
            "title": self.title,
            "score": round(self.score, 3),
        }
