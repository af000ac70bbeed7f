"""
Tests for workspace validation, cleanup and build output verification.
"""

from collections import namedtuple

import pytest

from shipyard import workspace as ws
from shipyard.errors import WorkspaceValidationError

Usage = namedtuple("Usage", "total used free")


class TestValidateWorkspace:

    def test_reports_every_missing_path(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        (tmp_path / "src" / "backend").mkdir(parents=True)
        required = ["package.json", "tsconfig.json", "src/backend", "src/frontend", "ecosystem.config.cjs"]

        report = ws.validate_workspace(tmp_path, required, min_free_bytes=0)

        assert not report.ok
        assert report.missing_paths == ["tsconfig.json", "src/frontend", "ecosystem.config.cjs"]
        assert len(report.violations) == 3

    def test_disk_space_violation_is_reported_alongside_paths(self, tmp_path, monkeypatch):
        monkeypatch.setattr(ws.shutil, "disk_usage", lambda path: Usage(10 * ws.MB, 9 * ws.MB, 1 * ws.MB))
        report = ws.validate_workspace(tmp_path, ["package.json"], min_free_bytes=100 * ws.MB)
        assert len(report.violations) == 2
        assert any("Insufficient disk space" in v for v in report.violations)

    def test_valid_workspace(self, workspace):
        report = ws.validate_workspace(workspace, ws.DEPLOY_REQUIRED_PATHS, min_free_bytes=0)
        assert report.ok
        assert report.free_bytes is not None

    def test_require_valid_workspace_raises_with_all_violations(self, tmp_path):
        with pytest.raises(WorkspaceValidationError) as exc:
            ws.require_valid_workspace(tmp_path, ws.BUILD_REQUIRED_PATHS, min_free_bytes=0)
        assert len(exc.value.violations) == len(ws.BUILD_REQUIRED_PATHS)

    def test_missing_root(self, tmp_path):
        report = ws.validate_workspace(tmp_path / "nope")
        assert not report.ok


def test_clean_previous_build(tmp_path):
    (tmp_path / "dist" / "backend").mkdir(parents=True)
    (tmp_path / ".next").mkdir()
    (tmp_path / "src").mkdir()
    removed = ws.clean_previous_build(tmp_path)
    assert removed == ["dist", ".next"]
    assert (tmp_path / "src").exists()


def test_verify_build_output(tmp_path):
    (tmp_path / "backend").mkdir()
    with pytest.raises(WorkspaceValidationError) as exc:
        ws.verify_build_output(tmp_path)
    assert len(exc.value.violations) == 2
    (tmp_path / "frontend").mkdir()
    (tmp_path / "shared").mkdir()
    ws.verify_build_output(tmp_path)
