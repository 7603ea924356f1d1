"""Memorix configuration models."""

from __future__ import annotations

import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import DeduplicationStrategy


class DecayConfig(BaseModel):
    """Per-category decay behaviour.

    ``strategy`` is a name resolved through the decay strategy registry
    (``usage_based``, ``time_based``, ``hybrid``, ``permanent`` or any name
    registered at startup).
    """

    model_config = ConfigDict(frozen=True)

    strategy: str = "usage_based"
    initial_decay: int = Field(default=100, ge=0)
    min_decay: int = Field(default=0, ge=0)
    max_decay: int = Field(default=128, ge=0)
    decay_reduction: int = Field(default=4, ge=0)
    decay_reinforcement: int = Field(default=6, ge=0)
    auto_delete: bool = True
    affects_search_ranking: bool = True
    decay_interval: timedelta = timedelta(days=7)
    strategy_params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "DecayConfig":
        if self.min_decay > self.max_decay:
            raise ValueError("min_decay cannot be greater than max_decay")
        if not self.min_decay <= self.initial_decay <= self.max_decay:
            raise ValueError("initial_decay must be between min_decay and max_decay")
        if self.decay_interval <= timedelta(0):
            raise ValueError("decay_interval must be positive")
        return self

    def clamp(self, decay: int) -> int:
        """Clamp a decay value into ``[min_decay, max_decay]``."""
        return max(self.min_decay, min(decay, self.max_decay))


class DeduplicationConfig(BaseModel):
    """Per-category duplicate detection and resolution settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    strategy: DeduplicationStrategy = DeduplicationStrategy.MERGE
    normalize_content: bool = True
    semantic_enabled: bool = False
    semantic_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    reinforce_on_merge: bool = True

    @classmethod
    def disabled(cls) -> "DeduplicationConfig":
        return cls(enabled=False)


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    sqlite_db_path: str = "./memory/memorix.db"

    @model_validator(mode="after")
    def _validate_paths(self) -> "StorageConfig":
        normalized = os.path.normpath(self.sqlite_db_path)
        parts = normalized.replace("\\", "/").split("/")
        if ".." in parts:
            raise ValueError(
                f"sqlite_db_path must not contain '..' components: "
                f"{self.sqlite_db_path!r}"
            )
        self.sqlite_db_path = normalized
        return self


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: str = "hash"  # "hash", "local" or "openai"
    model: str = "text-embedding-3-small"
    dimension: int = Field(default=384, gt=0)
    trust_remote_code: bool = False
    api_base: str = "https://api.openai.com/v1"
    api_key: str | None = None
    timeout_seconds: float = 30.0
    max_retries: int = Field(default=3, ge=0)


class TokenConfig(BaseModel):
    """Token counting configuration."""

    method: str = "approximate"  # "approximate" or "tiktoken"
    chars_per_token: int = Field(default=3, gt=0)
    model: str = "gpt-4"


class SearchConfig(BaseModel):
    """Candidate window fetched from storage before limits are applied."""

    candidate_window: int = Field(default=100, gt=0)


class MemorixConfig(BaseModel):
    """Top-level memorix configuration."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


def read_yaml(config_path: str | Path) -> dict[str, Any]:
    """Read a YAML file, substituting ``${ENV_VAR}`` references.

    Unset variables are left as-is.

    Raises:
        FileNotFoundError: If the configuration file is not found.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    content = path.read_text(encoding="utf-8")

    def replacer(match: re.Match) -> str:
        return os.getenv(match.group(1), match.group(0))

    content = _ENV_PATTERN.sub(replacer, content)

    try:
        return yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.critical(f"Error parsing YAML file: {e}")
        raise


def load_config(config_path: str | Path) -> MemorixConfig:
    """Load and validate a :class:`MemorixConfig` from YAML.

    Accepts either a bare config mapping or one nested under a top-level
    ``memorix:`` key.
    """
    data = read_yaml(config_path)
    if "memorix" in data and isinstance(data["memorix"], dict):
        data = data["memorix"]
    config = MemorixConfig.model_validate(data)
    logger.info(f"Loaded memorix config from {config_path}")
    return config
