"""Process-wide, read-only state shared by every request handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from vaultsearch.config import Limits, VaultConfig, resolve_vault
from vaultsearch.index.loader import EmbeddingStoreLoader
from vaultsearch.index.search import SimilarityEngine
from vaultsearch.models import Index, ModelDescriptor
from vaultsearch.security.guard import PathGuard

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VaultContext:
    config: VaultConfig
    descriptor: ModelDescriptor
    index: Index
    guard: PathGuard
    engine: SimilarityEngine


def build_context(config: VaultConfig) -> VaultContext:
    """Load the index for an already validated vault."""
    store = EmbeddingStoreLoader(config).load()
    return VaultContext(
        config=config,
        descriptor=store.descriptor,
        index=store.index,
        guard=PathGuard(config),
        engine=SimilarityEngine(store.index),
    )


def open_vault(
    raw_path: str | Path | None,
    *,
    limits: Limits | None = None,
    strict_model: bool = False,
) -> VaultContext:
    """Validate the vault root and load its embeddings.

    Raises:
        ConfigError: if the vault or its model descriptor is unusable.
    """
    config = resolve_vault(raw_path, limits=limits, strict_model=strict_model)
    LOGGER.info("Vault validated: %s", config.root_path)
    context = build_context(config)
    LOGGER.info(
        "Serving %d indexed notes from %s (model: %s)",
        len(context.index),
        config.root_path,
        context.descriptor.model_key,
    )
    return context
