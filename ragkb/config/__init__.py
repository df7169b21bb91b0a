"""Configuration: env-driven Settings plus the YAML-backed RagConfig tree."""

from ragkb.config.loader import load_config
from ragkb.config.rag_config import RagConfig
from ragkb.config.settings import Settings

__all__ = ["RagConfig", "Settings", "load_config"]
