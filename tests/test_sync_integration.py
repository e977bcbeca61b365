"""Integration tests for the sync/status/diff/update workflows.

Each test drives ``CorpusWorkflow`` end to end against an in-memory
``FakeTransport``, a real content cache and a real state store under
``tmp_path``.  The real git transport is exercised in test_transport.py.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import CORE_PATHS, CORPUS, FakeTransport

from corpus_sync.errors import ConflictDetected, TransportUnavailable

SIMPLICITY = "tenets/simplicity.md"
TESTABILITY = "tenets/testability.md"
API_DESIGN = "bindings/core/api-design.md"


def _upstream_edit(transport: FakeTransport, rel: str, data: bytes) -> None:
    transport.files[f"docs/{rel}"] = data


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_first_sync_into_empty_project(self, make_workflow, docs_root: Path):
        workflow = make_workflow()

        status = workflow.status(["core"])
        assert status.has_state is False
        assert status.coverage_rating == "no_sync_state"
        assert status.comparison is None

        result = workflow.sync(["core"])
        assert result.fetched is True
        assert result.copied == CORE_PATHS
        assert result.skipped == []
        for rel in CORE_PATHS:
            assert (docs_root / rel).read_bytes() == CORPUS[f"docs/{rel}"]

    def test_status_right_after_sync_is_clean(self, make_workflow):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])

        status = workflow.status()
        assert status.has_state is True
        assert status.categories == ["core"]
        assert status.comparison.unchanged == CORE_PATHS
        assert status.comparison.total_changes == 0
        assert (status.coverage_percent, status.coverage_rating) == (100.0, "perfect")
        assert status.synced_version == transport.revision
        assert status.by_category == {"core": 3}

    def test_local_edit_shows_as_modified(self, make_workflow, docs_root: Path):
        workflow = make_workflow()
        workflow.sync(["core"])
        (docs_root / SIMPLICITY).write_text("# Simplicity\n\nMy own take.\n")

        status = workflow.status()
        assert status.comparison.modified == [SIMPLICITY]
        assert status.comparison.added == []
        assert status.comparison.removed == []
        assert status.coverage_rating == "fair"

    def test_conflict_blocks_update_until_forced(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])

        local_text = b"# Simplicity\n\nLocal wording.\n"
        upstream_text = b"# Simplicity\n\nUpstream wording.\n"
        (docs_root / SIMPLICITY).write_bytes(local_text)
        _upstream_edit(transport, SIMPLICITY, upstream_text)

        diff = workflow.diff(with_text=True)
        assert diff.comparison.modified == [SIMPLICITY]
        assert "+Upstream wording." in diff.text_diffs[SIMPLICITY]
        assert "-Local wording." in diff.text_diffs[SIMPLICITY]

        with pytest.raises(ConflictDetected) as exc_info:
            workflow.update()
        assert exc_info.value.conflicted_paths == [SIMPLICITY]
        assert (docs_root / SIMPLICITY).read_bytes() == local_text

        forced = workflow.update(force=True)
        assert forced.applied == [SIMPLICITY]
        assert [c.path for c in forced.conflicts] == [SIMPLICITY]
        assert (docs_root / SIMPLICITY).read_bytes() == upstream_text
        assert workflow.status().comparison.total_changes == 0

    def test_warm_cache_and_matching_tree_skip_fetch(self, make_workflow):
        transport = FakeTransport()
        make_workflow(transport).sync(["core"])
        assert len(transport.fetch_calls) == 1

        workflow = make_workflow(transport)
        result = workflow.sync(["core"])

        assert len(transport.fetch_calls) == 1
        assert result.fetched is False
        assert result.skipped == CORE_PATHS
        assert result.copied == []
        assert workflow.stats.fetch_skipped is True


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


class TestSync:
    def test_state_saved_after_fetch(self, make_workflow):
        workflow = make_workflow()
        result = workflow.sync(["python"])

        saved = workflow.state_store.load()
        assert saved.categories == ["core", "python"]
        assert saved.files == result.manifest
        assert saved.version == result.version
        assert saved.sync_duration_ms >= 0

    def test_corrupt_state_is_treated_as_first_sync(self, make_workflow):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        workflow.state_store.state_path.write_text("{broken")

        result = make_workflow(transport).sync(["core"])
        assert result.fetched is True
        assert result.skipped == CORE_PATHS
        assert workflow.state_store.read() is not None

    def test_without_cache_always_fetches(self, make_workflow):
        transport = FakeTransport()
        make_workflow(transport, use_cache=False).sync(["core"])
        result = make_workflow(transport, use_cache=False).sync(["core"])
        assert result.fetched is True
        assert len(transport.fetch_calls) == 2

    def test_transport_unavailable_propagates(self, make_workflow):
        transport = FakeTransport()
        transport.available = False
        with pytest.raises(TransportUnavailable):
            make_workflow(transport).sync(["core"])


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


class TestStatus:
    def test_never_touches_network(self, make_workflow):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        transport.available = False

        workflow.status()
        assert len(transport.fetch_calls) == 1

    def test_added_and_removed_locally(self, make_workflow, docs_root: Path):
        workflow = make_workflow()
        workflow.sync(["core"])
        (docs_root / "tenets" / "ownership.md").write_text("# Ownership\n")
        (docs_root / TESTABILITY).unlink()

        comparison = workflow.status().comparison
        assert comparison.added == ["tenets/ownership.md"]
        assert comparison.removed == [TESTABILITY]

    def test_categories_discovered_without_state(self, make_workflow, docs_root: Path):
        target = docs_root / "bindings" / "categories" / "python" / "typing.md"
        target.parent.mkdir(parents=True)
        target.write_text("# Typing\n")

        status = make_workflow().status()
        assert status.has_state is False
        assert status.categories == ["core", "python"]
        assert status.by_category == {"python": 1}

    def test_cache_info_reported(self, make_workflow):
        workflow = make_workflow()
        workflow.sync(["core"])
        cache = workflow.status().cache
        assert cache["healthy"] is True
        assert cache["file_count"] == 3

    def test_no_cache_info_when_uncached(self, make_workflow):
        assert make_workflow(use_cache=False).status().cache is None


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------


class TestDiff:
    def test_no_upstream_changes(self, make_workflow):
        workflow = make_workflow()
        workflow.sync(["core"])
        diff = workflow.diff()
        assert diff.comparison.has_changes is False
        assert diff.has_state is True

    def test_reports_each_kind_without_writing(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])

        _upstream_edit(transport, API_DESIGN, b"# API design\n\nRevised.\n")
        _upstream_edit(transport, "tenets/ownership.md", b"# Ownership\n")
        del transport.files[f"docs/{TESTABILITY}"]

        diff = workflow.diff()
        assert diff.comparison.added == ["tenets/ownership.md"]
        assert diff.comparison.modified == [API_DESIGN]
        assert diff.comparison.removed == [TESTABILITY]
        assert diff.version == transport.revision
        assert not (docs_root / "tenets" / "ownership.md").exists()
        assert (docs_root / TESTABILITY).exists()

    def test_without_state_everything_is_added(self, make_workflow):
        diff = make_workflow().diff(["core"])
        assert diff.has_state is False
        assert diff.comparison.added == CORE_PATHS


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_applies_upstream_and_preserves_local(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])

        (docs_root / SIMPLICITY).write_text("# Simplicity\n\nLocal.\n")
        _upstream_edit(transport, API_DESIGN, b"# API design\n\nRevised.\n")
        _upstream_edit(transport, "tenets/ownership.md", b"# Ownership\n")
        del transport.files[f"docs/{TESTABILITY}"]

        report = workflow.update()
        assert report.conflicts == []
        assert report.applied == [API_DESIGN, "tenets/ownership.md"]
        assert report.deleted == [TESTABILITY]
        assert report.preserved == [SIMPLICITY]
        assert (docs_root / API_DESIGN).read_bytes() == b"# API design\n\nRevised.\n"
        assert not (docs_root / TESTABILITY).exists()
        assert (docs_root / SIMPLICITY).read_text() == "# Simplicity\n\nLocal.\n"

        status = workflow.status()
        assert status.synced_version == transport.revision
        assert status.comparison.modified == [SIMPLICITY]

    def test_dry_run_writes_nothing(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        before = workflow.state_store.state_path.read_text()
        _upstream_edit(transport, API_DESIGN, b"changed\n")

        report = workflow.update(dry_run=True)
        assert report.dry_run is True
        assert report.to_write == [API_DESIGN]
        assert report.applied == []
        assert (docs_root / API_DESIGN).read_bytes() == CORPUS[f"docs/{API_DESIGN}"]
        assert workflow.state_store.state_path.read_text() == before

    def test_dry_run_reports_conflicts(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        (docs_root / SIMPLICITY).write_text("local\n")
        _upstream_edit(transport, SIMPLICITY, b"upstream\n")

        report = workflow.update(dry_run=True)
        assert report.blocked is True
        assert [c.path for c in report.conflicts] == [SIMPLICITY]
        assert report.to_write == []

    def test_conflict_writes_nothing_at_all(self, make_workflow, docs_root: Path):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        (docs_root / SIMPLICITY).write_text("local\n")
        _upstream_edit(transport, SIMPLICITY, b"upstream\n")
        _upstream_edit(transport, API_DESIGN, b"unrelated upstream change\n")

        with pytest.raises(ConflictDetected):
            workflow.update()
        assert (docs_root / API_DESIGN).read_bytes() == CORPUS[f"docs/{API_DESIGN}"]

    def test_failed_write_is_retried_by_next_update(
        self, make_workflow, docs_root: Path
    ):
        import corpus_sync.sync.workflow as workflow_module

        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        upstream_text = b"# Simplicity\n\nRevised upstream.\n"
        _upstream_edit(transport, SIMPLICITY, upstream_text)
        _upstream_edit(transport, API_DESIGN, b"# API design\n\nRevised.\n")

        real_write = workflow_module.write_bytes_atomic

        def failing_write(path: Path, data: bytes) -> int:
            if path.name == "simplicity.md":
                raise PermissionError("denied")
            return real_write(path, data)

        with patch.object(workflow_module, "write_bytes_atomic", failing_write):
            first = workflow.update()
        assert [e.file for e in first.errors] == [SIMPLICITY]
        assert first.applied == [API_DESIGN]

        status = workflow.status()
        assert status.comparison.modified == []
        assert status.comparison.total_changes == 0

        second = workflow.update()
        assert second.to_write == [SIMPLICITY]
        assert second.applied == [SIMPLICITY]
        assert (docs_root / SIMPLICITY).read_bytes() == upstream_text

    def test_failed_delete_is_retried_by_next_update(
        self, make_workflow, docs_root: Path
    ):
        transport = FakeTransport()
        workflow = make_workflow(transport)
        workflow.sync(["core"])
        del transport.files[f"docs/{TESTABILITY}"]

        with patch.object(Path, "unlink", side_effect=PermissionError("denied")):
            first = workflow.update()
        assert [e.file for e in first.errors] == [TESTABILITY]
        assert workflow.status().comparison.total_changes == 0

        second = workflow.update()
        assert second.deleted == [TESTABILITY]
        assert not (docs_root / TESTABILITY).exists()

    def test_up_to_date(self, make_workflow):
        workflow = make_workflow()
        workflow.sync(["core"])
        report = workflow.update()
        assert report.has_changes is False
        assert report.applied == []

    def test_first_update_without_state(self, make_workflow, docs_root: Path):
        report = make_workflow().update(["core"])
        assert report.applied == CORE_PATHS
        for rel in CORE_PATHS:
            assert (docs_root / rel).is_file()
