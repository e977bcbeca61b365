"""
Input validation functions for corpus-sync.

Validates path patterns, remote URLs, version references and category
names before they are handed to the version-control binary.  All
functions are pure and return ``(is_valid, reason)`` tuples; callers
decide which typed error to raise.
"""

import re

# Remote URL shapes accepted by the transport.
_REMOTE_URL_PATTERNS = (
    re.compile(r"\Ahttps?://[\w.\-]+(:\d+)?(/[\w.\-~]+)+/?\Z"),
    re.compile(r"\Assh://([\w.\-]+@)?[\w.\-]+(:\d+)?(/[\w.\-~]+)+/?\Z"),
    re.compile(r"\A[\w.\-]+@[\w.\-]+:[\w.\-~/]+\Z"),
    re.compile(r"\Afile://\S+\Z"),
)

_CATEGORY_NAME = re.compile(r"\A[a-z0-9][a-z0-9_\-]*\Z")


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Path")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_sparse_path(path: str) -> tuple[bool, str]:
    """
    Validate a sparse-checkout path pattern.

    Args:
        path: Relative path pattern, e.g. ``docs/tenets/``

    Returns:
        Tuple of (is_valid, error_message).

    Validation rules:
        - Cannot be empty
        - Cannot contain spaces
        - Cannot be absolute (leading '/')
        - Cannot contain parent traversal ('../')
    """
    if not path or not path.strip():
        return (False, format_validation_error("Path", "cannot be empty"))

    if " " in path:
        return (
            False,
            format_validation_error("Path", "cannot contain spaces"),
        )

    if path.startswith("/"):
        return (
            False,
            format_validation_error("Path", "cannot be absolute"),
        )

    if "../" in path or path == "..":
        return (
            False,
            format_validation_error(
                "Path", "cannot contain parent directory traversal"
            ),
        )

    return (True, "")


def validate_manifest_path(path: str) -> tuple[bool, str]:
    """
    Validate a manifest key (a relative, normalized POSIX path).

    Manifest paths follow the sparse-path rules and additionally must
    not contain backslashes, empty segments or ``.`` segments.
    """
    ok, reason = validate_sparse_path(path)
    if not ok:
        return (ok, reason)

    if "\\" in path:
        return (
            False,
            format_validation_error("Path", "must use forward slashes"),
        )

    segments = path.split("/")
    if any(seg in ("", ".", "..") for seg in segments):
        return (
            False,
            format_validation_error("Path", "must be normalized"),
        )

    return (True, "")


def validate_remote_url(url: str) -> tuple[bool, str]:
    """
    Validate a remote repository URL.

    Accepted forms: ``https://host/path``, ``ssh://host/path``,
    ``user@host:path`` and ``file://path``.
    """
    if not url or not url.strip():
        return (
            False,
            format_validation_error("Remote URL", "cannot be empty"),
        )

    if url.startswith("-"):
        return (
            False,
            format_validation_error("Remote URL", "cannot start with '-'"),
        )

    if not any(p.match(url) for p in _REMOTE_URL_PATTERNS):
        return (
            False,
            format_validation_error(
                "Remote URL", "has an unsupported format"
            ),
        )

    return (True, "")


def validate_version_reference(ref: str) -> tuple[bool, str]:
    """
    Validate a branch, tag or commit reference.

    Validation rules:
        - Cannot be empty
        - Cannot contain spaces or '..'
        - Cannot start with '-' (would be read as an option)
    """
    if not ref or not ref.strip():
        return (
            False,
            format_validation_error("Version reference", "cannot be empty"),
        )

    if " " in ref:
        return (
            False,
            format_validation_error(
                "Version reference", "cannot contain spaces"
            ),
        )

    if ".." in ref:
        return (
            False,
            format_validation_error("Version reference", "cannot contain '..'"),
        )

    if ref.startswith("-"):
        return (
            False,
            format_validation_error(
                "Version reference", "cannot start with '-'"
            ),
        )

    return (True, "")


def validate_category_name(name: str) -> tuple[bool, str]:
    """
    Validate a category name (lowercase letters, digits, '-' and '_').
    """
    if not _CATEGORY_NAME.match(name or ""):
        return (
            False,
            format_validation_error(
                "Category",
                f"'{name}' must be lowercase letters, digits, '-' or '_'",
            ),
        )
    return (True, "")
