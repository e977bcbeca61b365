"""
Hierarchical configuration loader for corpus-sync.

Finds config files by convention, expands ``!include`` directives and
``${VAR}`` references, and layers the results so project settings win.

Usage:
    from corpus_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config(Path("my-project"))
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from corpus_sync.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every string in a parsed document."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    Uses a dedicated subclass so the global ``yaml.SafeLoader`` is never
    modified.  Tracks an *include stack* per-load to detect circular includes.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Parse the file named by an ``!include`` scalar in place of the node."""
    include_path = Path(loader.construct_scalar(node)).expanduser()

    # Relative includes resolve against the including file
    if not include_path.is_absolute():
        include_path = Path(loader.name).resolve().parent / include_path
    include_path = include_path.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if include_path in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, include_path])
        raise ConfigurationError(
            f"Circular include detected: {chain}", operation="load_config"
        )

    if not include_path.exists():
        raise ConfigurationError(
            f"Include file not found: {include_path} "
            f"(referenced from {Path(loader.name).resolve()})",
            operation="load_config",
        )

    return _load_yaml_with_includes(
        include_path, _include_stack=[*include_stack, include_path]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse *path*, resolving nested ``!include`` tags."""
    path = path.resolve()
    if _include_stack is None:
        _include_stack = [path]

    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files(project_dir: Path | None = None) -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``CORPUS_SYNC_CONFIG`` env var (explicit single path).
        2. ``.corpus_sync/config.yml`` in the project directory
        3. ``.corpus_sync/config.yaml`` in the project directory
        4. ``~/.config/corpus_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.

    Args:
        project_dir: Project directory; defaults to CWD.
    """
    candidates: list[Path] = []

    env_path = os.environ.get("CORPUS_SYNC_CONFIG")
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    project = project_dir or Path.cwd()
    candidates.append(project / ".corpus_sync" / "config.yml")
    candidates.append(project / ".corpus_sync" / "config.yaml")

    candidates.append(Path.home() / ".config" / "corpus_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def load_hierarchical_config(project_dir: Path | None = None) -> dict[str, Any]:
    """Load and merge all discovered config files.

    Merge strategy ("project wins"):
        Files are loaded from lowest precedence to highest.  Each file's
        top-level keys **replace** (not deep-merge) those from earlier files.

    After merging, env var interpolation is applied to all string values.

    Returns an empty dict when no config files exist (zero-config).

    Raises:
        ConfigurationError: If a file cannot be read or parsed.
    """
    paths = discover_config_files(project_dir)

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Invalid YAML in {path}: {exc}",
                operation="load_config",
                context={"path": str(path)},
            ) from exc
        except OSError as exc:
            raise ConfigurationError(
                f"Cannot read config file {path}: {exc}",
                operation="load_config",
                context={"path": str(path)},
            ) from exc

        if isinstance(data, dict):
            # Shallow merge: top-level keys from higher-precedence win
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
