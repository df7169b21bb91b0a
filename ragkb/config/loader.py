"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides (not committed)
  3. Environment vars    -- set at deploy time

:func:`load_config` reads the YAML first, deep-merges any ``RAG_*``
overrides from :class:`Settings` on top, and validates the result into a
frozen :class:`RagConfig`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml

from ragkb.config.rag_config import RagConfig
from ragkb.config.settings import Settings

logger = structlog.get_logger(logger_name=__name__)


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> RagConfig:
    """Load YAML config and merge with environment-based Settings.

    Parameters
    ----------
    path:
        Path to the YAML configuration file.  A missing file yields the
        built-in defaults.
    settings:
        Pre-built settings; a fresh :class:`Settings` is read when omitted.

    Returns
    -------
    RagConfig
        Fully resolved, validated configuration.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config: dict[str, Any] = yaml.safe_load(f) or {}
    else:
        logger.info("config_file_missing", path=str(config_path))
        yaml_config = {}

    settings = settings or Settings()
    _deep_merge(yaml_config, _env_overrides(settings))
    return RagConfig.model_validate(yaml_config)


def _env_overrides(settings: Settings) -> dict[str, Any]:
    """Collect the policy values explicitly set through the environment."""
    chunking: dict[str, Any] = {}
    if settings.rag_chunk_size is not None:
        chunking["chunk_size"] = settings.rag_chunk_size
    if settings.rag_chunk_overlap is not None:
        chunking["chunk_overlap"] = settings.rag_chunk_overlap

    search: dict[str, Any] = {}
    if settings.rag_similarity_threshold is not None:
        search["similarity_threshold"] = settings.rag_similarity_threshold
    if settings.rag_hybrid_enabled is not None:
        search["hybrid"] = {"enabled": settings.rag_hybrid_enabled}

    overrides: dict[str, Any] = {}
    if chunking:
        overrides["chunking"] = chunking
    if search:
        overrides["search"] = search
    return overrides


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
