"""Runtime configuration for corpus-sync.

Resolved once at startup from CLI args, environment variables, .env
files and YAML config files, then passed explicitly to constructors.
Nothing else reads the environment.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    CORPUS_SYNC_CACHE_DIR: Cache root (default: $XDG_CACHE_HOME/corpus-sync)
    CORPUS_SYNC_CACHE_THRESHOLD: Hit ratio that skips the fetch (default: 0.8)
    CORPUS_SYNC_REMOTE_URL: Upstream corpus repository URL
    CORPUS_SYNC_VERSION: Branch, tag or commit (default: upstream default)
    CORPUS_SYNC_FETCH_TIMEOUT: Seconds per git command (default: 120)
    CORPUS_SYNC_VERBOSE: Verbose output (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from corpus_sync.errors import ConfigurationError
from corpus_sync.validators import (
    validate_category_name,
    validate_remote_url,
    validate_version_reference,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_THRESHOLD = 0.8
DEFAULT_CACHE_MAX_BYTES = 256 * 1024 * 1024
DEFAULT_CACHE_MAX_ENTRIES = 20_000
DEFAULT_FETCH_TIMEOUT = 120.0
DEFAULT_DOCS_PATH = "docs/corpus"
DEFAULT_SOURCE_ROOT = "docs"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def default_cache_dir() -> Path:
    """``$XDG_CACHE_HOME/corpus-sync``, or ``~/.cache/corpus-sync``."""
    base = os.getenv("XDG_CACHE_HOME")
    if base:
        return Path(base).expanduser() / "corpus-sync"
    return Path.home() / ".cache" / "corpus-sync"


def resolve_threshold(value: object) -> float:
    """Coerce a configured cache threshold into ``[0, 1]``.

    Anything non-numeric or out of range falls back to
    ``DEFAULT_CACHE_THRESHOLD`` with a warning.
    """
    if value is None or value == "":
        return DEFAULT_CACHE_THRESHOLD
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid cache threshold %r; using %.1f",
            value,
            DEFAULT_CACHE_THRESHOLD,
        )
        return DEFAULT_CACHE_THRESHOLD
    if not 0.0 <= threshold <= 1.0:
        logger.warning(
            "Cache threshold %r outside [0, 1]; using %.1f",
            value,
            DEFAULT_CACHE_THRESHOLD,
        )
        return DEFAULT_CACHE_THRESHOLD
    return threshold


@dataclass
class Config:
    cache_dir: Path
    remote_url: str | None = None
    version_ref: str | None = None
    cache_threshold: float = DEFAULT_CACHE_THRESHOLD
    cache_max_bytes: int = DEFAULT_CACHE_MAX_BYTES
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    categories: list[str] = field(default_factory=lambda: ["core"])
    docs_path: str = DEFAULT_DOCS_PATH
    source_root: str = DEFAULT_SOURCE_ROOT
    verbose: bool = False
    log_file: str | None = None
    log_level: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ConfigurationError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ConfigurationError: If the remote URL, version reference,
            categories, bounds or paths are invalid.
    """
    if config.remote_url:
        config.remote_url = config.remote_url.strip()
        ok, reason = validate_remote_url(config.remote_url)
        if not ok:
            raise ConfigurationError(
                f"Invalid remote URL '{config.remote_url}': {reason}"
            )

    if config.version_ref is not None:
        ok, reason = validate_version_reference(config.version_ref)
        if not ok:
            raise ConfigurationError(
                f"Invalid version '{config.version_ref}': {reason}"
            )

    for name in config.categories:
        ok, reason = validate_category_name(name)
        if not ok:
            raise ConfigurationError(reason)

    if config.cache_max_bytes < 0 or config.cache_max_entries < 0:
        raise ConfigurationError(
            "Cache bounds cannot be negative (use 0 to disable a bound)"
        )

    if config.log_level is not None and config.log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level '{config.log_level}': expected one of "
            + ", ".join(LOG_LEVELS)
        )

    if config.fetch_timeout <= 0:
        raise ConfigurationError(
            f"Invalid fetch timeout {config.fetch_timeout}: must be positive"
        )

    for label, value in (
        ("docs_path", config.docs_path),
        ("source_root", config.source_root),
    ):
        path = PurePosixPath(value)
        if path.is_absolute() or ".." in path.parts:
            raise ConfigurationError(
                f"Invalid {label} '{value}': must be a relative path "
                "without '..'"
            )


def load_config(
    cache_dir: str | None = None,
    remote_url: str | None = None,
    version_ref: str | None = None,
    categories: list[str] | None = None,
    verbose: bool = False,
    log_file: str | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        cache_dir: Override cache root.
        remote_url: Override upstream URL.
        version_ref: Override version reference.
        categories: Override category selection.
        verbose: Verbose output (CLI flag).
        log_file: Log file path (CLI flag).
        yaml_fallbacks: Flat dict from ``config_schema.to_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If a value is invalid.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_cache_dir = (
        cache_dir or os.getenv("CORPUS_SYNC_CACHE_DIR") or fb.get("cache_dir")
    )
    final_remote = (
        remote_url or os.getenv("CORPUS_SYNC_REMOTE_URL") or fb.get("remote_url")
    )
    final_version = (
        version_ref or os.getenv("CORPUS_SYNC_VERSION") or fb.get("version")
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if verbose:
        final_verbose = True
    else:
        env_verbose = get_bool_env("CORPUS_SYNC_VERBOSE")
        if env_verbose is not None:
            final_verbose = env_verbose
        else:
            final_verbose = bool(fb.get("verbose", False))

    # --- Numeric fields: env > YAML > default ---

    threshold_raw = os.getenv("CORPUS_SYNC_CACHE_THRESHOLD")
    if threshold_raw is None:
        threshold_raw = fb.get("cache_threshold")
    final_threshold = resolve_threshold(threshold_raw)

    timeout_raw = os.getenv("CORPUS_SYNC_FETCH_TIMEOUT")
    if timeout_raw is not None:
        try:
            final_timeout = float(timeout_raw)
        except ValueError:
            raise ConfigurationError(
                f"Invalid CORPUS_SYNC_FETCH_TIMEOUT '{timeout_raw}': "
                "must be a number of seconds"
            ) from None
    elif fb.get("fetch_timeout") is not None:
        final_timeout = float(fb["fetch_timeout"])
    else:
        final_timeout = DEFAULT_FETCH_TIMEOUT

    config = Config(
        cache_dir=(
            Path(final_cache_dir).expanduser()
            if final_cache_dir
            else default_cache_dir()
        ),
        remote_url=final_remote or None,
        version_ref=final_version or None,
        cache_threshold=final_threshold,
        cache_max_bytes=int(fb.get("cache_max_bytes", DEFAULT_CACHE_MAX_BYTES)),
        cache_max_entries=int(
            fb.get("cache_max_entries", DEFAULT_CACHE_MAX_ENTRIES)
        ),
        fetch_timeout=final_timeout,
        categories=list(categories or fb.get("categories") or ["core"]),
        docs_path=fb.get("docs_path") or DEFAULT_DOCS_PATH,
        source_root=fb.get("source_root") or DEFAULT_SOURCE_ROOT,
        verbose=final_verbose,
        log_file=log_file or fb.get("log_file"),
        log_level=fb.get("log_level"),
    )

    validate_config(config)

    return config
