"""Tests for the Smart Connections embedding loader."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import pytest

from conftest import MODEL_KEY, source_record, vec, write_descriptor, write_fragment
from vaultsearch.config import ConfigError, resolve_vault
from vaultsearch.index.loader import (
    DEFAULT_DIMENSIONS,
    EmbeddingStoreLoader,
    extract_model_key,
    parse_fragment,
    repair_fragment,
)
from vaultsearch.models import BlockInfo


def _load(vault: Path, *, strict_model: bool = False):
    return EmbeddingStoreLoader(resolve_vault(vault, strict_model=strict_model)).load()


class TestExtractModelKey:
    """Test descriptor navigation."""

    def test_finds_model_key(self) -> None:
        document = {"smart_sources": {"embed_model": {"transformers": {"model_key": "m"}}}}

        assert extract_model_key(document) == "m"

    @pytest.mark.parametrize(
        "document",
        [
            None,
            [],
            {},
            {"smart_sources": {}},
            {"smart_sources": {"embed_model": {"openai": {"model_key": "m"}}}},
            {"smart_sources": {"embed_model": {"transformers": {"model_key": 3}}}},
            {"smart_sources": {"embed_model": {"transformers": "m"}}},
            {"smart_sources": {"embed_model": {"transformers": {"model_key": " "}}}},
        ],
    )
    def test_missing_model_key(self, document) -> None:
        assert extract_model_key(document) is None


class TestRepairFragment:
    """Stage one: turning append-log text into a JSON object."""

    def test_strips_single_trailing_comma(self) -> None:
        assert repair_fragment('"a": 1,\n"b": 2,\n') == '{"a": 1,\n"b": 2}'

    def test_without_trailing_comma(self) -> None:
        assert repair_fragment('"a": 1') == '{"a": 1}'

    def test_only_one_comma_removed(self) -> None:
        assert repair_fragment('"a": 1,,') == '{"a": 1,}'


class TestParseFragment:
    """Stage two: per-record validation."""

    def test_parses_documents(self) -> None:
        text = '"smart_sources:a.md": ' + json.dumps(source_record([1.0, 2.0])) + ","

        entries = parse_fragment(text, MODEL_KEY)

        assert list(entries) == ["a.md"]
        assert entries["a.md"].vector.tolist() == [1.0, 2.0]

    def test_vectors_are_read_only(self) -> None:
        text = '"smart_sources:a.md": ' + json.dumps(source_record([1.0, 2.0]))

        entry = parse_fragment(text, MODEL_KEY)["a.md"]

        with pytest.raises(ValueError):
            entry.vector[0] = 5.0

    def test_empty_fragment(self) -> None:
        assert parse_fragment("   \n", MODEL_KEY) == {}

    def test_unparsable_fragment(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            entries = parse_fragment('"smart_sources:a.md": {broken', MODEL_KEY, source="bad.ajson")

        assert entries == {}
        assert "bad.ajson" in caplog.text

    def test_skips_blocks_and_other_namespaces(self) -> None:
        records = {
            "smart_sources:a.md": source_record([1.0]),
            "smart_sources:a.md#Heading": source_record([1.0]),
            "smart_blocks:a.md#Heading": source_record([1.0]),
            "other:b.md": source_record([1.0]),
        }
        text = ",\n".join(f"{json.dumps(k)}: {json.dumps(v)}" for k, v in records.items())

        assert list(parse_fragment(text, MODEL_KEY)) == ["a.md"]

    def test_bad_record_does_not_discard_siblings(self) -> None:
        records = {
            "smart_sources:good.md": source_record([1.0, 0.0]),
            "smart_sources:string.md": "not a record",
            "smart_sources:no-embeddings.md": {"path": None},
            "smart_sources:other-model.md": source_record([1.0], model_key="other/model"),
            "smart_sources:bad-values.md": source_record([1.0, "x"]),
            "smart_sources:bool-values.md": source_record([True, False]),
            "smart_sources:empty.md": source_record([]),
        }
        text = ",\n".join(f"{json.dumps(k)}: {json.dumps(v)}" for k, v in records.items())

        assert list(parse_fragment(text, MODEL_KEY)) == ["good.md"]

    def test_folds_blocks(self) -> None:
        blocks = {
            "#Heading": {"hash": "abc", "size": 120, "lines": [1, 10]},
            "#Partial": {"lines": [3]},
            "#Junk": "nope",
        }
        text = '"smart_sources:a.md": ' + json.dumps(source_record([1.0], blocks=blocks))

        entry = parse_fragment(text, MODEL_KEY)["a.md"]

        assert entry.sub_blocks["#Heading"] == BlockInfo(content_hash="abc", byte_size=120, line_range=(1, 10))
        assert entry.sub_blocks["#Partial"] == BlockInfo()
        assert "#Junk" not in entry.sub_blocks

    def test_duplicate_key_within_fragment_last_wins(self) -> None:
        text = (
            '"smart_sources:a.md": ' + json.dumps(source_record([1.0])) + ",\n"
            '"smart_sources:a.md": ' + json.dumps(source_record([2.0])) + ","
        )

        assert parse_fragment(text, MODEL_KEY)["a.md"].vector.tolist() == [2.0]

    def test_integer_beyond_float_range_skips_record(self) -> None:
        huge = "1" * 400
        text = (
            '"smart_sources:good.md": ' + json.dumps(source_record([1.0, 0.0])) + ",\n"
            '"smart_sources:huge.md": {"embeddings": {"' + MODEL_KEY + '": {"vec": [' + huge + ', 0.0]}}},'
        )

        assert list(parse_fragment(text, MODEL_KEY)) == ["good.md"]

    def test_excessively_nested_fragment(self, caplog: pytest.LogCaptureFixture) -> None:
        text = '"smart_sources:a.md": ' + "[" * 100_000

        with caplog.at_level(logging.WARNING):
            entries = parse_fragment(text, MODEL_KEY, source="deep.ajson")

        assert entries == {}
        assert "deep.ajson" in caplog.text

    def test_leading_slash_in_key_is_kept(self) -> None:
        text = (
            '"smart_sources:/a.md": ' + json.dumps(source_record([1.0])) + ",\n"
            '"smart_sources:a.md": ' + json.dumps(source_record([2.0]))
        )

        entries = parse_fragment(text, MODEL_KEY)

        assert sorted(entries) == ["/a.md", "a.md"]
        assert entries["/a.md"].vector.tolist() == [1.0]


class TestEmbeddingStoreLoader:
    """End-to-end loading from a vault directory."""

    def test_load_sample_vault(self, sample_vault: Path) -> None:
        store = _load(sample_vault)

        assert store.descriptor.model_key == MODEL_KEY
        assert store.descriptor.dimensions == 384
        assert store.descriptor.adapter_name == "transformers"
        assert set(store.index) == {"A.md", "B.md", "Topics/Claude_Code.md"}

    def test_index_is_immutable(self, sample_vault: Path) -> None:
        store = _load(sample_vault)

        with pytest.raises(TypeError):
            store.index["C.md"] = store.index["A.md"]  # type: ignore[index]

    def test_later_fragment_wins(self, vault: Path) -> None:
        write_fragment(vault, "01.ajson", {"smart_sources:n.md": source_record(vec(1.0))})
        write_fragment(vault, "02.ajson", {"smart_sources:n.md": source_record(vec(0.0, 1.0))})

        store = _load(vault)

        assert store.index["n.md"].vector[1] == 1.0
        assert store.index["n.md"].vector[0] == 0.0

    def test_trailing_comma_fragment_loads_all_records(self, vault: Path) -> None:
        write_fragment(
            vault,
            "notes.ajson",
            {f"smart_sources:n{i}.md": source_record(vec(float(i + 1))) for i in range(3)},
            trailing_comma=True,
        )

        assert len(_load(vault).index) == 3

    def test_corrupt_fragment_does_not_abort_load(self, vault: Path) -> None:
        (vault / ".smart-env" / "multi" / "00-bad.ajson").write_text('"smart_sources:x.md": {{{', encoding="utf-8")
        write_fragment(vault, "01-good.ajson", {"smart_sources:good.md": source_record(vec(1.0))})

        store = _load(vault)

        assert list(store.index) == ["good.md"]

    @pytest.mark.parametrize(
        "bad_text",
        [
            '"smart_sources:x.md": {"embeddings": {"' + MODEL_KEY + '": {"vec": [' + "1" * 400 + "]}}},",
            '"smart_sources:x.md": {"embeddings": {"' + MODEL_KEY + '": {"vec": [' + "9" * 5000 + "]}}},",
            '"smart_sources:x.md": ' + "[" * 100_000,
        ],
        ids=["beyond-float-range", "beyond-int-digit-limit", "deeply-nested"],
    )
    def test_oversized_numbers_and_nesting_do_not_abort_load(self, vault: Path, bad_text: str) -> None:
        (vault / ".smart-env" / "multi" / "00-bad.ajson").write_text(bad_text, encoding="utf-8")
        write_fragment(vault, "01-good.ajson", {"smart_sources:good.md": source_record(vec(1.0))})

        store = _load(vault)

        assert list(store.index) == ["good.md"]

    def test_ignores_non_fragment_files(self, vault: Path) -> None:
        (vault / ".smart-env" / "multi" / "notes.json").write_text(
            '"smart_sources:x.md": ' + json.dumps(source_record(vec(1.0))), encoding="utf-8"
        )

        assert len(_load(vault).index) == 0

    def test_missing_fragment_directory(self, vault: Path, caplog: pytest.LogCaptureFixture) -> None:
        (vault / ".smart-env" / "multi").rmdir()

        with caplog.at_level(logging.WARNING):
            store = _load(vault)

        assert len(store.index) == 0
        assert "No fragment directory" in caplog.text

    def test_missing_descriptor(self, vault: Path) -> None:
        (vault / ".smart-env" / "smart_env.json").unlink()

        with pytest.raises(ConfigError, match="not found"):
            _load(vault)

    def test_unparsable_descriptor(self, vault: Path) -> None:
        (vault / ".smart-env" / "smart_env.json").write_text("{nope", encoding="utf-8")

        with pytest.raises(ConfigError, match="Failed to parse"):
            _load(vault)

    @pytest.mark.parametrize(
        "text",
        ["[" * 100_000, '{"smart_sources": ' + "9" * 5000 + "}"],
        ids=["deeply-nested", "beyond-int-digit-limit"],
    )
    def test_pathological_descriptor_is_config_error(self, vault: Path, text: str) -> None:
        (vault / ".smart-env" / "smart_env.json").write_text(text, encoding="utf-8")

        with pytest.raises(ConfigError):
            _load(vault)

    def test_descriptor_without_model(self, vault: Path) -> None:
        (vault / ".smart-env" / "smart_env.json").write_text("{}", encoding="utf-8")

        with pytest.raises(ConfigError, match="Could not determine"):
            _load(vault)

    def test_known_model_dimensions(self, vault: Path) -> None:
        write_descriptor(vault, "BAAI/bge-base-en-v1.5")

        descriptor = _load(vault).descriptor

        assert descriptor.dimensions == 768
        assert descriptor.dimensions_known is True

    def test_unknown_model_defaults_with_warning(self, vault: Path, caplog: pytest.LogCaptureFixture) -> None:
        write_descriptor(vault, "custom/model")

        with caplog.at_level(logging.WARNING):
            descriptor = _load(vault).descriptor

        assert descriptor.dimensions == DEFAULT_DIMENSIONS
        assert descriptor.dimensions_known is False
        assert "custom/model" in caplog.text

    def test_unknown_model_strict_mode(self, vault: Path) -> None:
        write_descriptor(vault, "custom/model")

        with pytest.raises(ConfigError, match="Unknown embedding model"):
            _load(vault, strict_model=True)

    def test_mismatched_dimensions_dropped_for_known_model(self, vault: Path) -> None:
        write_fragment(
            vault,
            "notes.ajson",
            {
                "smart_sources:ok.md": source_record(vec(1.0)),
                "smart_sources:short.md": source_record([1.0, 0.0]),
            },
        )

        assert list(_load(vault).index) == ["ok.md"]

    def test_mismatched_dimensions_kept_for_unknown_model(self, vault: Path) -> None:
        write_descriptor(vault, "custom/model")
        write_fragment(
            vault,
            "notes.ajson",
            {"smart_sources:wide.md": source_record([0.5] * 512, model_key="custom/model")},
        )

        index = _load(vault).index

        assert index["wide.md"].dimensions == 512
        assert isinstance(index["wide.md"].vector, np.ndarray)
