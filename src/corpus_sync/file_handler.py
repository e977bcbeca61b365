"""File handler module: digests, encoding-aware reads, atomic writes.

Provides the file I/O primitives shared by the cache, the sync engine
and the reporter.  Digests are SHA-256 over raw bytes, so the same
content always maps to the same key regardless of encoding.
"""

import hashlib
import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Digests
# =============================================================================


def content_digest(data: bytes) -> str:
    """Return the SHA-256 hex digest of *data*."""
    return hashlib.sha256(data).hexdigest()


def file_digest(path: Path) -> str:
    """Return the SHA-256 hex digest of the file at *path*.

    Raises:
        OSError: If the file cannot be read.
    """
    return content_digest(path.read_bytes())


# =============================================================================
# Path Validation
# =============================================================================


def validate_target_directory(path_str: str) -> Path:
    """Validate and resolve a target project directory.

    The directory itself need not exist yet, but its parent must.

    Args:
        path_str: Directory path (relative paths resolve against CWD).

    Returns:
        Resolved Path object.

    Raises:
        ValueError: If the name starts with a dash, the parent directory
            is missing, or the path exists and is not a directory.
    """
    if Path(path_str).name.startswith("-"):
        raise ValueError(
            f"Invalid directory name '{path_str}': cannot start with a dash"
        )
    resolved = Path(path_str).expanduser().resolve()
    if not resolved.parent.exists():
        raise ValueError(f"Parent directory not found: {resolved.parent}")
    if resolved.exists() and not resolved.is_dir():
        raise ValueError(f"Path is not a directory: {resolved}")
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files or when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        # Detection failed, fall back to utf-8
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        # Normalize ascii to utf-8 (ascii is a strict subset of utf-8)
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_bytes_atomic(path: Path, data: bytes) -> int:
    """Write *data* to *path* atomically, creating parent directories.

    Writes to a temporary file in the destination directory, then
    ``os.replace()`` moves it into place so readers never see a partial
    file.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(data)
