"""Configuration file schema for corpus-sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for sync, cache, transport and logging, plus an adapter that
flattens a validated document into the fallback dict consumed by
``config.load_config()``.

Usage:
    from corpus_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))

Example ``.corpus_sync/config.yml``::

    sync:
      remote_url: https://github.com/org/corpus.git
      version: v2.1.0
      categories: [python, web]
    cache:
      dir: ${XDG_CACHE_HOME:-~/.cache}/corpus-sync
      threshold: 0.8
    transport:
      fetch_timeout: 60
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, ValidationError

from corpus_sync.errors import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SyncSection(BaseModel):
    """Upstream source and category selection.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    remote_url: str | None = Field(
        default=None, description="Upstream corpus repository URL"
    )
    version: str | None = Field(
        default=None, description="Branch, tag or commit to sync"
    )
    categories: list[str] = Field(
        default_factory=lambda: ["core"],
        description="Categories to sync (core is always included)",
    )
    docs_path: str = Field(
        default="docs/corpus",
        description="Corpus directory inside each project",
    )
    source_root: str = Field(
        default="docs", description="Corpus directory inside the remote tree"
    )

    model_config = {"frozen": True, "extra": "forbid"}


class CacheSection(BaseModel):
    """Content cache settings.

    ``threshold`` is kept loosely typed: an invalid value falls back to
    the default at load time instead of rejecting the whole file.
    """

    dir: str | None = Field(default=None, description="Cache root directory")
    threshold: float | str | None = Field(
        default=None, description="Hit ratio at which the fetch is skipped"
    )
    max_bytes: int = Field(
        default=256 * 1024 * 1024,
        ge=0,
        description="Total blob size bound in bytes (0 disables)",
    )
    max_entries: int = Field(
        default=20_000, ge=0, description="Blob count bound (0 disables)"
    )

    model_config = {"frozen": True, "extra": "forbid"}


class TransportSection(BaseModel):
    """Version-control transport settings."""

    fetch_timeout: float = Field(
        default=120.0, gt=0, description="Seconds allowed per git command"
    )

    model_config = {"frozen": True, "extra": "forbid"}


class LoggingSection(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        verbose: Verbose output by default.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    verbose: bool = Field(default=False, description="Verbose output")

    model_config = {"frozen": True, "extra": "forbid"}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration document.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.  Unknown sections are rejected.
    """

    sync: SyncSection = Field(default_factory=SyncSection)
    cache: CacheSection = Field(default_factory=CacheSection)
    transport: TransportSection = Field(default_factory=TransportSection)
    logging: LoggingSection = Field(default_factory=LoggingSection)

    model_config = {"frozen": True, "extra": "forbid"}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Raises:
        ConfigurationError: If a section is unknown or a value invalid.
    """
    if not raw_data:
        return UnifiedConfig()

    try:
        return UnifiedConfig(**raw_data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(
            f"Invalid configuration: {problems}", operation="load_config"
        ) from exc


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config() fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten *unified* into the ``yaml_fallbacks`` dict of
    ``load_config()``.

    Only values actually present are included, so built-in defaults and
    environment variables keep their precedence.
    """
    fallbacks: dict = {
        "categories": list(unified.sync.categories),
        "docs_path": unified.sync.docs_path,
        "source_root": unified.sync.source_root,
        "cache_max_bytes": unified.cache.max_bytes,
        "cache_max_entries": unified.cache.max_entries,
        "fetch_timeout": unified.transport.fetch_timeout,
        "verbose": unified.logging.verbose,
    }
    if unified.sync.remote_url:
        fallbacks["remote_url"] = unified.sync.remote_url
    if unified.sync.version:
        fallbacks["version"] = unified.sync.version
    if unified.cache.dir:
        fallbacks["cache_dir"] = unified.cache.dir
    if unified.cache.threshold is not None:
        fallbacks["cache_threshold"] = unified.cache.threshold
    if unified.logging.file:
        fallbacks["log_file"] = unified.logging.file
    if unified.logging.level:
        fallbacks["log_level"] = unified.logging.level.upper()
    return fallbacks
