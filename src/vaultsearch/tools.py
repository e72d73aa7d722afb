"""Read-only tool handlers exposed to MCP clients.

Each handler validates its arguments, works against the shared
:class:`~vaultsearch.context.VaultContext` and returns a :class:`ToolResult`.
Failures are results, not exceptions.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vaultsearch.context import VaultContext
from vaultsearch.index.search import DimensionMismatchError
from vaultsearch.models import Rejected
from vaultsearch.utils.text import extract_title, sanitize_for_log, truncate_utf8

LOGGER = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[Content truncated - exceeded maximum length]"


class SearchSimilarArgs(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True)

    note_path: str = Field(
        alias="notePath",
        description='Path to note relative to vault root (e.g., "Topics/Claude_Code.md")',
    )
    limit: int = Field(10, ge=1, le=50, description="Maximum results to return (1-50)")
    threshold: float = Field(0.3, ge=0, le=1, description="Minimum similarity score (0-1)")


class SearchByVectorArgs(BaseModel):
    model_config = ConfigDict(strict=True)

    embedding: List[float] = Field(description="Embedding vector (must match model dimensions)")
    limit: int = Field(10, ge=1, le=50)
    threshold: float = Field(0.3, ge=0, le=1)


class GetNoteArgs(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True)

    note_path: str = Field(alias="notePath", description="Path to note relative to vault root")


class ListIndexedArgs(BaseModel):
    model_config = ConfigDict(strict=True)

    pattern: Optional[str] = Field(None, description='Filter by path prefix (e.g., "Topics/")')


@dataclass(frozen=True, slots=True)
class ToolResult:
    payload: Dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_text(self) -> str:
        if self.error is not None:
            return json.dumps({"error": self.error})
        return json.dumps(self.payload, indent=2)


def success(payload: Dict[str, Any]) -> ToolResult:
    return ToolResult(payload=payload)


def failure(message: str) -> ToolResult:
    return ToolResult(error=message)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        parts.append(f"{location}: {error['msg']}")
    return "Invalid arguments: " + "; ".join(parts)


def validate_embedding(embedding: Sequence[float], expected_dimensions: int) -> str | None:
    """Return an error message if `embedding` cannot be compared to the index."""
    if len(embedding) != expected_dimensions:
        return f"Embedding must have {expected_dimensions} dimensions, got {len(embedding)}"
    for position, value in enumerate(embedding):
        if not math.isfinite(value):
            return f"Invalid value at index {position}"
    return None


def _clamp_limit(limit: int, ctx: VaultContext) -> int:
    return max(1, min(limit, ctx.config.limits.max_results))


def handle_search_similar(arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    try:
        args = SearchSimilarArgs.model_validate(arguments or {})
    except ValidationError as exc:
        return failure(_format_validation_error(exc))

    note_path = args.note_path.lstrip("/")
    # Index membership is checked before anything else; no filesystem access here
    if note_path not in ctx.index:
        return failure(f"Note not found in index: {args.note_path}")

    try:
        hits = ctx.engine.similar_to(
            note_path, limit=_clamp_limit(args.limit, ctx), threshold=args.threshold
        )
    except DimensionMismatchError as exc:
        return failure(str(exc))
    if hits is None:
        return failure(f"Note not found in index: {args.note_path}")

    LOGGER.info("search_similar %r: %d results", sanitize_for_log(note_path), len(hits))
    return success({"query": note_path, "results": [hit.to_dict() for hit in hits]})


def handle_search_by_vector(arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    try:
        args = SearchByVectorArgs.model_validate(arguments or {})
    except ValidationError as exc:
        return failure(_format_validation_error(exc))

    problem = validate_embedding(args.embedding, ctx.descriptor.dimensions)
    if problem is not None:
        return failure(problem)

    try:
        hits = ctx.engine.rank(
            args.embedding, limit=_clamp_limit(args.limit, ctx), threshold=args.threshold
        )
    except DimensionMismatchError as exc:
        return failure(str(exc))

    LOGGER.info("search_by_vector: %d results", len(hits))
    return success({"results": [hit.to_dict() for hit in hits]})


def handle_get_note(arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    try:
        args = GetNoteArgs.model_validate(arguments or {})
    except ValidationError as exc:
        return failure(_format_validation_error(exc))

    outcome = ctx.guard.validate(args.note_path)
    if isinstance(outcome, Rejected):
        return failure(outcome.message)

    try:
        raw = outcome.path.read_bytes()
    except OSError as exc:
        LOGGER.warning("Failed to read %r: %s", sanitize_for_log(args.note_path), exc)
        return failure("Failed to read note")

    content, truncated = truncate_utf8(raw, ctx.config.limits.max_content_bytes)
    if truncated:
        content += TRUNCATION_MARKER

    LOGGER.info("get_note %r: %d bytes", sanitize_for_log(outcome.relative), len(raw))
    return success(
        {
            "path": outcome.relative,
            "title": extract_title(outcome.relative),
            "content": content,
        }
    )


def handle_list_indexed(arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    try:
        args = ListIndexedArgs.model_validate(arguments or {})
    except ValidationError as exc:
        return failure(_format_validation_error(exc))

    pattern = args.pattern or ""
    max_length = ctx.config.limits.max_query_length
    if len(pattern) > max_length:
        return failure(f"Pattern exceeds maximum length of {max_length}")

    notes = [
        {"path": document_id, "title": extract_title(document_id)}
        for document_id in sorted(ctx.index)
        if document_id.startswith(pattern)
    ]
    return success({"count": len(notes), "notes": notes})


def handle_get_model_info(arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    return success(ctx.descriptor.to_dict())


Handler = Callable[[Optional[Mapping[str, Any]], VaultContext], ToolResult]

TOOL_HANDLERS: Dict[str, Handler] = {
    "search_similar": handle_search_similar,
    "search_by_vector": handle_search_by_vector,
    "get_note": handle_get_note,
    "list_indexed": handle_list_indexed,
    "get_model_info": handle_get_model_info,
}

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "search_similar": "Find notes semantically similar to an existing note in your vault",
    "search_by_vector": "Find notes similar to a provided embedding vector",
    "get_note": "Retrieve the content of a specific note from the vault",
    "list_indexed": "List all notes that have been indexed with embeddings",
    "get_model_info": "Get information about the embedding model used by this vault",
}


def handle_tool_call(name: str, arguments: Mapping[str, Any] | None, ctx: VaultContext) -> ToolResult:
    """Route a tool call to its handler."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return failure(f"Unknown tool: {sanitize_for_log(name)}")
    try:
        return handler(arguments, ctx)
    except Exception:  # pragma: no cover - last line before the protocol boundary
        LOGGER.exception("Tool %s failed", name)
        return failure(f"{name} failed")
