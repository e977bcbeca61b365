"""Content-addressable blob store.

Blobs live under ``<cache_dir>/content/<first two hex digits>/<digest>``.
The key is the SHA-256 of the bytes, so:

* ``get(put(b)) == b`` for every byte string ``b``.
* ``put`` is idempotent: storing the same bytes twice keeps one file.
* Concurrent writers of the same content from several processes are a
  benign last-write-wins, because each write is an atomic
  ``os.replace()`` of identical bytes.

Recency is tracked through the blob's mtime (refreshed on ``get`` and on
repeated ``put``); eviction removes the least recently used blobs until
both the byte and the entry bounds hold again.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import Any

from corpus_sync.errors import CacheError
from corpus_sync.file_handler import content_digest, write_bytes_atomic

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 256 * 1024 * 1024
DEFAULT_MAX_ENTRIES = 20_000

_DIGEST_RE = re.compile(r"\A[0-9a-f]{64}\Z")


class ContentCache:
    """SHA-256 keyed blob store with LRU eviction.

    Args:
        cache_dir: Cache root directory.
        max_bytes: Total blob size bound (``0`` disables it).
        max_entries: Blob count bound (``0`` disables it).
    """

    def __init__(
        self,
        cache_dir: Path,
        max_bytes: int = DEFAULT_MAX_BYTES,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self.cache_dir = Path(cache_dir).expanduser()
        self.content_dir = self.cache_dir / "content"
        self.max_bytes = max_bytes
        self.max_entries = max_entries
        # (total bytes, entry count); computed lazily on first put
        self._usage: tuple[int, int] | None = None

        try:
            self.content_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            # Reported by health_status(); every operation degrades to a miss.
            logger.debug("Cannot create cache directory %s: %s", self.content_dir, exc)

    # ------------------------------------------------------------------
    # Blob operations
    # ------------------------------------------------------------------

    def put(self, data: bytes) -> str:
        """Store *data* and return its digest.

        Idempotent: if a blob with the same digest exists, only its
        recency is refreshed.  May evict older blobs afterwards.

        Raises:
            CacheError: If the blob cannot be written.
        """
        digest = content_digest(data)
        path = self._blob_path(digest)
        try:
            if path.exists():
                os.utime(path)
                return digest
            write_bytes_atomic(path, data)
        except OSError as exc:
            raise CacheError(
                f"Failed to store blob {digest[:12]}: {exc}",
                cache_path=str(path),
                operation="put",
            ) from exc

        if self._usage is not None:
            size, count = self._usage
            self._usage = (size + len(data), count + 1)
        self._evict_if_needed(protect=digest)
        return digest

    def get(self, digest: str) -> bytes | None:
        """Return the bytes stored under *digest*, or ``None`` on a miss.

        A blob whose content no longer hashes to *digest* is deleted and
        reported as a miss.

        Raises:
            CacheError: If the blob exists but cannot be read.
        """
        if not _DIGEST_RE.match(digest or ""):
            return None

        path = self._blob_path(digest)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(
                f"Failed to read blob {digest[:12]}: {exc}",
                cache_path=str(path),
                operation="get",
            ) from exc

        if content_digest(data) != digest:
            logger.warning("Discarding corrupt cache blob %s", digest[:12])
            self._remove(path)
            self._usage = None
            return None

        try:
            os.utime(path)
        except OSError as exc:
            logger.debug("Could not refresh recency of %s: %s", path, exc)
        return data

    def contains(self, digest: str) -> bool:
        """Return ``True`` if a blob for *digest* is present (unverified)."""
        return bool(_DIGEST_RE.match(digest or "")) and self._blob_path(
            digest
        ).is_file()

    def clear(self) -> int:
        """Delete every blob.  Returns the number of blobs removed."""
        try:
            blobs = self._scan()
            if self.content_dir.exists():
                shutil.rmtree(self.content_dir)
            self.content_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(
                f"Failed to clear cache: {exc}",
                cache_path=str(self.content_dir),
                operation="clear",
            ) from exc
        self._usage = (0, 0)
        return len(blobs)

    # ------------------------------------------------------------------
    # Health and statistics
    # ------------------------------------------------------------------

    def health_status(self) -> dict[str, Any]:
        """Report cache health.

        An unhealthy cache never blocks an operation; the diagnostics only
        explain why cache lookups may be missing.

        Returns:
            ``{"healthy": bool, "diagnostics": [{"type": ..., ...}]}``
        """
        diagnostics: list[dict[str, Any]] = []
        root = self.content_dir

        if not root.is_dir():
            diagnostics.append({"type": "missing_directory", "path": str(root)})
        else:
            if not os.access(root, os.R_OK):
                diagnostics.append({"type": "not_readable", "path": str(root)})
            if not os.access(root, os.W_OK):
                diagnostics.append({"type": "not_writable", "path": str(root)})
            try:
                size, _ = self._current_usage()
            except OSError as exc:
                diagnostics.append({"type": "stat_failed", "error": str(exc)})
            else:
                if self.max_bytes and size > self.max_bytes:
                    diagnostics.append(
                        {
                            "type": "over_capacity",
                            "size": size,
                            "max_bytes": self.max_bytes,
                        }
                    )

        return {"healthy": not diagnostics, "diagnostics": diagnostics}

    def directory_stats(self) -> dict[str, Any]:
        """Return ``{path, file_count, size, utilization_percent}``."""
        try:
            size, count = self._current_usage()
        except OSError as exc:
            logger.debug("Cannot stat cache directory: %s", exc)
            size, count = 0, 0

        utilization = 0.0
        if self.max_bytes:
            utilization = round(size / self.max_bytes * 100, 2)

        return {
            "path": str(self.cache_dir),
            "file_count": count,
            "size": size,
            "utilization_percent": utilization,
        }

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _over_capacity(self, size: int, count: int) -> bool:
        return bool(
            (self.max_bytes and size > self.max_bytes)
            or (self.max_entries and count > self.max_entries)
        )

    def _evict_if_needed(self, protect: str | None = None) -> int:
        """Evict least recently used blobs until within bounds."""
        try:
            size, count = self._current_usage()
        except OSError as exc:
            logger.debug("Skipping eviction, cannot stat cache: %s", exc)
            return 0
        if not self._over_capacity(size, count):
            return 0

        try:
            blobs = sorted(self._scan(), key=lambda item: item[2])
        except OSError as exc:
            logger.debug("Skipping eviction, cannot scan cache: %s", exc)
            return 0

        evicted = 0
        for path, blob_size, _mtime in blobs:
            if not self._over_capacity(size, count):
                break
            if path.name == protect:
                continue
            if self._remove(path):
                size -= blob_size
                count -= 1
                evicted += 1

        self._usage = (size, count)
        if evicted:
            logger.debug("Evicted %d blob(s) from %s", evicted, self.cache_dir)
        return evicted

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _blob_path(self, digest: str) -> Path:
        return self.content_dir / digest[:2] / digest

    def _scan(self) -> list[tuple[Path, int, float]]:
        """List ``(path, size, mtime)`` for every blob on disk."""
        blobs: list[tuple[Path, int, float]] = []
        if not self.content_dir.is_dir():
            return blobs
        for shard in self.content_dir.iterdir():
            if not shard.is_dir():
                continue
            for blob in shard.iterdir():
                if not _DIGEST_RE.match(blob.name):
                    continue
                try:
                    st = blob.stat()
                except FileNotFoundError:
                    # Removed by a concurrent process
                    continue
                blobs.append((blob, st.st_size, st.st_mtime))
        return blobs

    def _current_usage(self) -> tuple[int, int]:
        if self._usage is None:
            blobs = self._scan()
            self._usage = (sum(b[1] for b in blobs), len(blobs))
        return self._usage

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.debug("Could not remove blob %s: %s", path, exc)
            return False
