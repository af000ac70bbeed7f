"""
Workspace preconditions, pre-build cleanup and post-build verification.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .errors import WorkspaceValidationError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

BUILD_REQUIRED_PATHS = (
    "package.json",
    "tsconfig.json",
    "src/backend",
    "src/frontend",
)

DEPLOY_REQUIRED_PATHS = BUILD_REQUIRED_PATHS + (
    "ecosystem.config.cjs",
    "src/backend/package.json",
)

BUILD_OUTPUT_DIRS = ("backend", "frontend", "shared")

CLEANUP_TARGETS = ("dist", "build", "out", ".next", ".nuxt")


@dataclass
class WorkspaceReport:
    root: str
    missing_paths: List[str] = field(default_factory=list)
    free_bytes: Optional[int] = None
    required_free_bytes: int = 0
    violations: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


def validate_workspace(
    root,
    required_paths: Sequence[str] = BUILD_REQUIRED_PATHS,
    min_free_bytes: int = 100 * MB,
) -> WorkspaceReport:
    """
    Check workspace preconditions without modifying anything.

    Every missing path is reported, not just the first one.

    Args:
        root: Workspace root directory
        required_paths: Paths relative to root that must exist
        min_free_bytes: Minimum free space on the workspace filesystem

    Returns:
        WorkspaceReport listing every violation found
    """
    root_path = Path(root)
    report = WorkspaceReport(root=str(root_path), required_free_bytes=min_free_bytes)

    if not root_path.is_dir():
        report.violations.append(f"Workspace root does not exist: {root_path}")
        return report

    for rel in required_paths:
        if not (root_path / rel).exists():
            report.missing_paths.append(rel)
            report.violations.append(f"Missing required path: {rel}")

    try:
        report.free_bytes = shutil.disk_usage(root_path).free
    except OSError as e:
        report.violations.append(f"Unable to determine free disk space: {e}")
    else:
        if report.free_bytes < min_free_bytes:
            report.violations.append(
                f"Insufficient disk space: {report.free_bytes // MB}MB free, "
                f"{min_free_bytes // MB}MB required"
            )

    if report.ok:
        logger.info(f"✅ Workspace {root_path} passed validation")
    else:
        for violation in report.violations:
            logger.error(f"❌ {violation}")
    return report


def require_valid_workspace(root, required_paths: Sequence[str] = BUILD_REQUIRED_PATHS,
                            min_free_bytes: int = 100 * MB) -> WorkspaceReport:
    """Like validate_workspace, but raises WorkspaceValidationError on any violation."""
    report = validate_workspace(root, required_paths, min_free_bytes)
    if not report.ok:
        raise WorkspaceValidationError(report.violations, root=str(root))
    return report


def clean_previous_build(root, targets: Iterable[str] = CLEANUP_TARGETS) -> List[str]:
    """
    Remove output directories left over from a previous build.

    Returns:
        Relative paths that were removed
    """
    removed = []
    root_path = Path(root)
    for rel in targets:
        target = root_path / rel
        if target.is_dir():
            shutil.rmtree(target)
            removed.append(rel)
        elif target.exists():
            target.unlink()
            removed.append(rel)
    if removed:
        logger.info(f"🧹 Removed previous build output: {', '.join(removed)}")
    return removed


def verify_build_output(output_dir, required: Sequence[str] = BUILD_OUTPUT_DIRS) -> None:
    """
    Check that the organized build output has the expected layout.

    Raises:
        WorkspaceValidationError: Listing every missing output directory
    """
    out = Path(output_dir)
    missing = [f"Missing build output: {out.name}/{name}" for name in required if not (out / name).exists()]
    if missing:
        raise WorkspaceValidationError(missing, root=str(out))
    logger.info(f"✅ Build output verified in {out}")
