"""Cache-aware corpus sync engine.

Public API for distributing a version-controlled document corpus into
consumer project trees.

Architecture
------------
Each project keeps a **manifest** (path -> SHA-256 digest) of its last
successful sync.  Every workflow is a comparison of two manifests:

- ``status``: local tree vs saved manifest (no network).
- ``diff``: upstream vs saved manifest.
- ``update``: both of the above; paths drifting on both sides are
  conflicts.

Fetches go through a sparse-checkout transport and are skipped when the
content cache already holds enough of the last known upstream snapshot.

Modules:

- ``engine``     -- ``SyncEngine``: fetch decision and materialisation.
- ``workflow``   -- ``CorpusWorkflow``: sync/status/diff/update.
- ``state``      -- ``SyncStateStore``: per-project JSON state files.
- ``catalog``    -- ``CorpusCatalog``: category-to-path rules.
- ``comparator`` -- pure manifest comparison and conflict detection.
- ``models``     -- pydantic data contracts.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from corpus_sync.config import load_config
    from corpus_sync.sync import CorpusWorkflow, format_status

    config = load_config(remote_url="https://github.com/org/corpus.git")
    workflow = CorpusWorkflow.from_config(config, Path("."))

    workflow.sync(["python"])
    print(format_status(workflow.status()))
"""

from .catalog import CorpusCatalog
from .comparator import (
    compare,
    detect_conflicts,
    plan_update,
    settle_manifest,
    sync_coverage,
)
from .engine import SyncEngine
from .models import (
    ChangeKind,
    ComparisonResult,
    Conflict,
    ConflictType,
    DiffReport,
    FileError,
    StatusReport,
    SyncManifest,
    SyncResult,
    UpdateReport,
)
from .reporter import (
    format_diff,
    format_error,
    format_status,
    format_sync_result,
    format_update,
)
from .state import SyncStateStore
from .workflow import CorpusWorkflow

__all__ = [
    "ChangeKind",
    "ComparisonResult",
    "Conflict",
    "ConflictType",
    "CorpusCatalog",
    "CorpusWorkflow",
    "DiffReport",
    "FileError",
    "StatusReport",
    "SyncEngine",
    "SyncManifest",
    "SyncResult",
    "SyncStateStore",
    "UpdateReport",
    "compare",
    "detect_conflicts",
    "format_diff",
    "format_error",
    "format_status",
    "format_sync_result",
    "format_update",
    "plan_update",
    "settle_manifest",
    "sync_coverage",
]
