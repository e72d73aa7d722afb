"""Loading of Smart Connections embeddings from a vault's `.smart-env` directory.

The plugin stores embeddings in "append JSON" fragments (`multi/*.ajson`):
`"key": {value},` records appended one per line with no enclosing object, so
an interrupted write may leave a dangling comma. Loading is a two stage
pipeline per fragment: repair the text into a JSON object, then validate each
record on its own so one bad record never costs its siblings.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Tuple

import numpy as np

from vaultsearch.config import ConfigError, VaultConfig
from vaultsearch.models import BlockInfo, Index, IndexEntry, ModelDescriptor
from vaultsearch.utils.files import iter_fragment_paths

LOGGER = logging.getLogger(__name__)

ADAPTER_NAME = "transformers"
SOURCE_PREFIX = "smart_sources:"
BLOCK_SEPARATOR = "#"
DEFAULT_DIMENSIONS = 384

KNOWN_MODEL_DIMENSIONS: Mapping[str, int] = MappingProxyType(
    {
        "TaylorAI/bge-micro-v2": 384,
        "sentence-transformers/all-MiniLM-L6-v2": 384,
        "BAAI/bge-small-en-v1.5": 384,
        "BAAI/bge-base-en-v1.5": 768,
        "BAAI/bge-large-en-v1.5": 1024,
    }
)


@dataclass(frozen=True, slots=True)
class LoadedStore:
    descriptor: ModelDescriptor
    index: Index


def extract_model_key(document: Any) -> str | None:
    """Find `smart_sources.embed_model.<adapter>.model_key` in the descriptor."""
    node = document
    for key in ("smart_sources", "embed_model", ADAPTER_NAME):
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if not isinstance(node, dict):
        return None
    model_key = node.get("model_key")
    if isinstance(model_key, str) and model_key.strip():
        return model_key
    return None


def repair_fragment(text: str) -> str:
    """Turn raw append-log text into a candidate JSON object document."""
    body = text.strip()
    if body.endswith(","):
        body = body[:-1]
    return "{" + body + "}"


def _parse_vector(record: Mapping[str, Any], model_key: str) -> np.ndarray | None:
    embeddings = record.get("embeddings")
    if not isinstance(embeddings, dict):
        return None
    model_data = embeddings.get(model_key)
    if not isinstance(model_data, dict):
        return None
    values = model_data.get("vec")
    if not isinstance(values, list) or not values:
        return None
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        try:
            if not math.isfinite(value):
                return None
        except OverflowError:
            # Integers beyond float range
            return None
    vector = np.asarray(values, dtype=np.float64)
    vector.setflags(write=False)
    return vector


def _parse_blocks(raw: Any) -> Mapping[str, BlockInfo]:
    blocks: Dict[str, BlockInfo] = {}
    if not isinstance(raw, dict):
        return MappingProxyType(blocks)
    for block_id, info in raw.items():
        if not isinstance(info, dict):
            continue
        content_hash = info.get("hash")
        size = info.get("size")
        lines = info.get("lines")
        line_range = None
        if (
            isinstance(lines, list)
            and len(lines) == 2
            and all(isinstance(n, int) and not isinstance(n, bool) for n in lines)
        ):
            line_range = (lines[0], lines[1])
        blocks[block_id] = BlockInfo(
            content_hash=content_hash if isinstance(content_hash, str) else None,
            byte_size=size if isinstance(size, int) and not isinstance(size, bool) else None,
            line_range=line_range,
        )
    return MappingProxyType(blocks)


def parse_fragment(text: str, model_key: str, *, source: str = "<fragment>") -> Dict[str, IndexEntry]:
    """Parse one fragment into entries keyed by document id.

    An unparsable fragment yields no entries. Records for other namespaces,
    sub-blocks, or other embedding models are skipped.
    """
    entries: Dict[str, IndexEntry] = {}
    if not text.strip():
        return entries

    try:
        parsed = json.loads(repair_fragment(text))
    except (ValueError, RecursionError) as exc:
        LOGGER.warning("Skipping unparsable fragment %s: %s", source, str(exc)[:100])
        return entries

    if not isinstance(parsed, dict):
        LOGGER.warning("Skipping fragment %s: not a JSON object", source)
        return entries

    for full_key, value in parsed.items():
        if not full_key.startswith(SOURCE_PREFIX):
            continue
        document_id = full_key[len(SOURCE_PREFIX):]
        if not document_id or BLOCK_SEPARATOR in document_id:
            continue
        if not isinstance(value, dict):
            LOGGER.debug("Skipping malformed record %s in %s", full_key, source)
            continue

        vector = _parse_vector(value, model_key)
        if vector is None:
            continue

        entries[document_id] = IndexEntry(
            document_id=document_id,
            vector=vector,
            sub_blocks=_parse_blocks(value.get("blocks")),
        )
    return entries


class EmbeddingStoreLoader:
    """Builds the immutable in-memory index from a vault's `.smart-env` data."""

    def __init__(self, config: VaultConfig) -> None:
        self.config = config

    def load(self) -> LoadedStore:
        descriptor = self.load_descriptor()
        LOGGER.info("Model loaded: %s (%d dimensions)", descriptor.model_key, descriptor.dimensions)

        index = self.load_index(descriptor)
        LOGGER.info("Embeddings loaded: %d notes", len(index))
        return LoadedStore(descriptor=descriptor, index=index)

    def load_descriptor(self) -> ModelDescriptor:
        path = self.config.descriptor_path
        if not path.is_file():
            raise ConfigError(f"Smart env config not found: {path}")

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, RecursionError) as exc:
            raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc

        model_key = extract_model_key(document)
        if model_key is None:
            raise ConfigError(f"Could not determine embedding model from {path.name}")

        dimensions = KNOWN_MODEL_DIMENSIONS.get(model_key)
        if dimensions is None:
            if self.config.strict_model:
                raise ConfigError(f"Unknown embedding model: {model_key}")
            LOGGER.warning(
                "Unknown embedding model %s, assuming %d dimensions",
                model_key,
                DEFAULT_DIMENSIONS,
            )
            return ModelDescriptor(
                model_key=model_key,
                dimensions=DEFAULT_DIMENSIONS,
                adapter_name=ADAPTER_NAME,
                dimensions_known=False,
            )

        return ModelDescriptor(model_key=model_key, dimensions=dimensions, adapter_name=ADAPTER_NAME)

    def iter_fragments(self) -> Iterator[Tuple[Path, str]]:
        directory = self.config.fragments_path
        if not directory.is_dir():
            LOGGER.warning("No fragment directory at %s", directory)
            return
        for path in iter_fragment_paths(directory):
            try:
                yield path, path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.warning("Skipping unreadable fragment %s: %s", path.name, exc)

    def load_index(self, descriptor: ModelDescriptor) -> Index:
        entries: Dict[str, IndexEntry] = {}
        mismatched = 0
        for path, text in self.iter_fragments():
            for document_id, entry in parse_fragment(text, descriptor.model_key, source=path.name).items():
                if descriptor.dimensions_known and entry.dimensions != descriptor.dimensions:
                    mismatched += 1
                    LOGGER.debug(
                        "Dropping %s: %d dimensions, expected %d",
                        document_id,
                        entry.dimensions,
                        descriptor.dimensions,
                    )
                    continue
                # Later records supersede earlier ones
                entries[document_id] = entry

        if mismatched:
            LOGGER.warning(
                "Dropped %d records whose vectors do not match %d dimensions",
                mismatched,
                descriptor.dimensions,
            )
        return MappingProxyType(entries)
