"""Configuration file schema for pkgsources.

Defines Pydantic models for the YAML config structure with dedicated
sections for the blob store, source handling, and logging.

Usage:
    from pkgsources.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class StoreConfig(BaseModel):
    """Blob store connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    url: str | None = Field(default=None, description="Blob store base URL")
    username: str | None = Field(
        default=None, description="Store username"
    )
    password: str | None = Field(
        default=None, description="Store password"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    timeout: float = Field(
        default=30.0,
        ge=1,
        le=600,
        description="Request timeout in seconds (1-600)",
    )

    model_config = {"frozen": True}


class SourcesConfig(BaseModel):
    """Source reconciliation settings.

    Attributes:
        manifest: Project-relative manifest file name.
        unknown_policy: Handling of failed existence checks.
        keep: Extra tracked files that are never treated as stale.
    """

    manifest: str = Field(
        default="sources.json", description="Manifest file name"
    )
    unknown_policy: Literal["enqueue", "skip"] = Field(
        default="enqueue",
        description="Queue (enqueue) or ignore (skip) files whose "
        "existence check failed",
    )
    keep: list[str] = Field(
        default_factory=list,
        description="Tracked files kept even when not declared",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    store: StoreConfig = Field(default_factory=StoreConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory and adapter
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully, anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten a ``UnifiedConfig`` into the ``yaml_fallbacks`` dict that
    ``load_config()`` consumes.

    ``None`` values are dropped so they never shadow built-in defaults.
    """
    fallbacks = {
        k: v
        for k, v in unified.store.model_dump().items()
        if v is not None
    }
    fallbacks["manifest"] = unified.sources.manifest
    fallbacks["unknown_policy"] = unified.sources.unknown_policy
    return fallbacks
