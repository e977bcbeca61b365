"""Sync state persistence layer.

Stores the manifest of the last successful sync of one project.  State
files live under the shared cache root, one per project:

    <cache_dir>/state/<project key>.json

where the project key is the first 16 hex digits of the SHA-256 of the
absolute target path.  The file layout is::

    {
      "schema_version": 1,
      "tool_version": "0.4.0",
      "timestamp": "2026-10-18T09:12:44+00:00",
      "version": "<commit id>",
      "categories": ["core", "python"],
      "manifest": {"tenets/simplicity.md": "<sha256>", ...},
      "total_files": 1,
      "cache_hit_ratio": 0.0,
      "sync_duration_ms": 812.4
    }

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Corruption is not fatal** -- ``load()`` reports an unreadable or
  invalid file as "no prior state" with a warning; ``read()`` raises
  ``SyncStateCorrupt`` for callers that need to know why.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from corpus_sync import __version__
from corpus_sync.errors import CacheError, SyncStateCorrupt
from corpus_sync.validators import validate_manifest_path

from .models import SCHEMA_VERSION, SyncManifest

logger = logging.getLogger(__name__)

_DIGEST_RE = re.compile(r"\A[0-9a-f]{64}\Z")


def project_key(target: Path) -> str:
    """Stable key for a project directory."""
    absolute = str(Path(target).expanduser().resolve())
    return hashlib.sha256(absolute.encode("utf-8")).hexdigest()[:16]


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601."""
    return datetime.now(timezone.utc).isoformat()


class SyncStateStore:
    """Load, save and clear the sync state of one project.

    Args:
        cache_dir: Cache root shared by all projects.
        target: Project directory the state belongs to.
    """

    def __init__(self, cache_dir: Path, target: Path) -> None:
        self._state_dir = Path(cache_dir).expanduser() / "state"
        self._target = Path(target)

    @property
    def state_path(self) -> Path:
        return self._state_dir / f"{project_key(self._target)}.json"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, manifest: SyncManifest) -> None:
        """Persist *manifest* atomically.

        Creates the state directory if needed.  ``tool_version`` is
        stamped with the running version.

        Raises:
            CacheError: If the state file cannot be written.  The
                previous state file, if any, is left untouched.
        """
        payload = {
            "schema_version": SCHEMA_VERSION,
            "tool_version": __version__,
            "timestamp": manifest.timestamp,
            "version": manifest.version,
            "categories": list(manifest.categories),
            "manifest": dict(sorted(manifest.files.items())),
            "total_files": manifest.total_files,
            "cache_hit_ratio": manifest.cache_hit_ratio,
            "sync_duration_ms": manifest.sync_duration_ms,
        }

        target = self.state_path
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._state_dir), suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2)
                os.replace(tmp_path, target)
            except BaseException:
                # Clean up temp file on any failure.
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as exc:
            raise CacheError(
                f"Cannot save sync state to {target}: {exc}",
                cache_path=str(target),
                operation="save_state",
            ) from exc
        logger.debug(
            "Saved sync state (%d files) to %s", manifest.total_files, target
        )

    def read(self) -> SyncManifest | None:
        """Return the saved manifest, or ``None`` if never synced.

        Raises:
            SyncStateCorrupt: If the file is unreadable, not JSON, fails
                validation, or was written by a newer schema.
        """
        path = self.state_path
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise SyncStateCorrupt(
                f"Cannot read sync state: {exc}", state_file=str(path)
            ) from exc

        return self._parse(data, path)

    def load(self) -> SyncManifest | None:
        """Like ``read()``, but a corrupt state counts as no state."""
        try:
            return self.read()
        except SyncStateCorrupt as exc:
            logger.warning(
                "%s; treating project as never synced (%s)",
                exc.message,
                exc.state_file,
            )
            return None

    def clear(self) -> bool:
        """Delete the state file.  Returns ``True`` if one was removed."""
        try:
            self.state_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CacheError(
                f"Cannot remove sync state {self.state_path}: {exc}",
                cache_path=str(self.state_path),
                operation="clear_state",
            ) from exc
        return True

    def age_seconds(self) -> float | None:
        """Seconds since the state file was last written, or ``None``."""
        try:
            return max(0.0, time.time() - self.state_path.stat().st_mtime)
        except OSError:
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(data: object, path: Path) -> SyncManifest:
        if not isinstance(data, dict):
            raise SyncStateCorrupt(
                "Sync state is not a JSON object", state_file=str(path)
            )

        errors: list[str] = []
        schema = data.get("schema_version", SCHEMA_VERSION)
        if not isinstance(schema, int) or schema > SCHEMA_VERSION:
            errors.append(f"unsupported schema_version {schema!r}")

        files = data.get("manifest")
        if not isinstance(files, dict):
            errors.append("manifest must be an object")
            files = {}
        for rel, digest in files.items():
            ok, reason = validate_manifest_path(str(rel))
            if not ok:
                errors.append(f"{rel}: {reason}")
            elif not isinstance(digest, str) or not _DIGEST_RE.match(digest):
                errors.append(f"{rel}: invalid digest")

        if errors:
            raise SyncStateCorrupt(
                "Sync state failed validation",
                state_file=str(path),
                validation_errors=errors,
            )

        try:
            return SyncManifest(
                timestamp=data.get("timestamp"),
                version=data.get("version"),
                categories=data.get("categories") or [],
                files=files,
                schema_version=schema,
                tool_version=data.get("tool_version"),
                cache_hit_ratio=data.get("cache_hit_ratio"),
                sync_duration_ms=data.get("sync_duration_ms"),
            )
        except ValidationError as exc:
            raise SyncStateCorrupt(
                "Sync state failed validation",
                state_file=str(path),
                validation_errors=[
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in exc.errors()
                ],
            ) from exc
