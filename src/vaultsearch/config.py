"""Vault configuration and startup validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)

SMART_ENV_DIR = ".smart-env"
DESCRIPTOR_FILE = "smart_env.json"
FRAGMENTS_DIR = "multi"


class ConfigError(Exception):
    """Raised when the vault cannot be served at all."""


@dataclass(frozen=True, slots=True)
class Limits:
    max_results: int = 50
    max_content_bytes: int = 10240
    max_query_length: int = 1000


@dataclass(frozen=True, slots=True)
class VaultConfig:
    root_path: Path
    canonical_root: Path
    limits: Limits = field(default_factory=Limits)
    strict_model: bool = False

    @property
    def smart_env_path(self) -> Path:
        return self.canonical_root / SMART_ENV_DIR

    @property
    def descriptor_path(self) -> Path:
        return self.smart_env_path / DESCRIPTOR_FILE

    @property
    def fragments_path(self) -> Path:
        return self.smart_env_path / FRAGMENTS_DIR


def _too_broad(path: Path) -> bool:
    home = Path.home()
    return path == Path(path.anchor) or path == home


def resolve_vault(
    raw_path: str | Path | None,
    *,
    limits: Limits | None = None,
    strict_model: bool = False,
) -> VaultConfig:
    """Validate the configured vault root and build an immutable config.

    Raises:
        ConfigError: if the path is unset, missing, not a directory, too broad
            to confine anything, lacks a Smart Connections index, or cannot be
            canonicalized.
    """
    if raw_path is None or not str(raw_path).strip():
        raise ConfigError("VAULT_PATH environment variable or --vault option is required")

    absolute = Path(os.path.abspath(os.path.expanduser(str(raw_path).strip())))

    if not absolute.exists():
        raise ConfigError(f"Vault path does not exist: {absolute}")
    if not absolute.is_dir():
        raise ConfigError(f"Vault path is not a directory: {absolute}")

    if _too_broad(absolute):
        raise ConfigError(f"Vault path too broad (security risk): {absolute}")

    if not (absolute / SMART_ENV_DIR).is_dir():
        raise ConfigError(
            f"No {SMART_ENV_DIR} directory found at {absolute}. "
            "Is Smart Connections installed and has it built embeddings?"
        )

    try:
        canonical = absolute.resolve(strict=True)
    except (OSError, RuntimeError) as exc:
        raise ConfigError(f"Cannot resolve vault path: {absolute}") from exc

    # A symlinked vault must not smuggle in a broad root either
    if _too_broad(canonical):
        raise ConfigError(f"Vault path too broad (security risk): {canonical}")

    LOGGER.debug("Vault %s resolved to %s", absolute, canonical)
    return VaultConfig(
        root_path=absolute,
        canonical_root=canonical,
        limits=limits or Limits(),
        strict_model=strict_model,
    )
