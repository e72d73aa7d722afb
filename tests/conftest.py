"""Shared fixtures for building throwaway Smart Connections vaults."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List

import pytest

MODEL_KEY = "TaylorAI/bge-micro-v2"
DIMENSIONS = 384


def vec(*head: float, dims: int = DIMENSIONS) -> List[float]:
    """Pad `head` with zeros up to `dims` values."""
    return list(head) + [0.0] * (dims - len(head))


def unit_at_angle(cosine: float, dims: int = DIMENSIONS) -> List[float]:
    """Unit vector whose cosine with the first axis is `cosine`."""
    return vec(cosine, math.sqrt(1.0 - cosine * cosine), dims=dims)


def source_record(vector: List[float], *, model_key: str = MODEL_KEY, blocks: Dict[str, Any] | None = None) -> Dict[str, Any]:
    record: Dict[str, Any] = {"path": None, "embeddings": {model_key: {"vec": vector}}}
    if blocks is not None:
        record["blocks"] = blocks
    return record


def write_fragment(vault: Path, name: str, records: Dict[str, Any], *, trailing_comma: bool = True) -> Path:
    """Write records the way the plugin appends them: one `"key": value,` per line."""
    lines = [f"{json.dumps(key)}: {json.dumps(value)}" for key, value in records.items()]
    text = ",\n".join(lines)
    if trailing_comma and lines:
        text += ","
    path = vault / ".smart-env" / "multi" / name
    path.write_text(text, encoding="utf-8")
    return path


def write_descriptor(vault: Path, model_key: str = MODEL_KEY) -> Path:
    path = vault / ".smart-env" / "smart_env.json"
    document = {"smart_sources": {"embed_model": {"adapter": "transformers", "transformers": {"model_key": model_key}}}}
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Empty vault with a descriptor and an empty fragment directory."""
    root = tmp_path / "vault"
    (root / ".smart-env" / "multi").mkdir(parents=True)
    write_descriptor(root)
    return root


@pytest.fixture
def sample_vault(vault: Path) -> Path:
    """Vault with three notes; A and B have cosine 0.42."""
    (vault / "A.md").write_text("# A\nalpha note", encoding="utf-8")
    (vault / "B.md").write_text("# B\nbeta note", encoding="utf-8")
    topics = vault / "Topics"
    topics.mkdir()
    (topics / "Claude_Code.md").write_text("about claude code", encoding="utf-8")

    write_fragment(
        vault,
        "notes.ajson",
        {
            "smart_sources:A.md": source_record(vec(1.0)),
            "smart_sources:B.md": source_record(unit_at_angle(0.42)),
            "smart_sources:Topics/Claude_Code.md": source_record(vec(0.0, 0.0, 1.0)),
            "smart_blocks:A.md#Heading": source_record(vec(1.0)),
        },
    )
    return vault
