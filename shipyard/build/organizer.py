"""
Post-build output organization.

The frontend bundler and the backend compiler both write into the output
directory; this module arranges the result into ``frontend/``, ``shared/``
and ``data/`` next to ``backend/``. Every step checks before it acts and a
missing source only produces a warning.
"""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

FRONTEND_FILE_SUFFIXES = (".html", ".css", ".js")
FRONTEND_ASSET_DIRS = ("assets", "js", "fonts", "img", "video")


@dataclass
class OrganizeResult:
    moved: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def _replace_dir(source: Path, destination: Path, copy: bool) -> None:
    if destination.exists():
        shutil.rmtree(destination)
    if copy:
        shutil.copytree(source, destination)
    else:
        shutil.move(str(source), str(destination))


def organize_output(output_dir, source_dir) -> OrganizeResult:
    """
    Arrange build output in place.

    Args:
        output_dir: Build output directory (usually ``dist``)
        source_dir: Source directory (usually ``src``); ``data`` is copied from here

    Returns:
        OrganizeResult listing moves and warnings
    """
    dist = Path(output_dir)
    src = Path(source_dir)
    result = OrganizeResult()

    if not dist.is_dir():
        result.warn(f"Output directory {dist} does not exist; nothing to organize")
        return result

    frontend = dist / "frontend"
    frontend.mkdir(exist_ok=True)

    for entry in sorted(dist.iterdir()):
        if entry.is_file() and entry.suffix in FRONTEND_FILE_SUFFIXES:
            target = frontend / entry.name
        elif entry.is_dir() and entry.name in FRONTEND_ASSET_DIRS:
            target = frontend / entry.name
        else:
            continue
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
            shutil.move(str(entry), str(target))
            result.moved.append(f"{entry.name} -> frontend/{entry.name}")
        except OSError as e:
            result.warn(f"Could not move {entry} into frontend/: {e}")

    compiled_shared = dist / "backend" / "shared"
    if compiled_shared.is_dir():
        try:
            _replace_dir(compiled_shared, dist / "shared", copy=False)
            result.moved.append("backend/shared -> shared")
        except OSError as e:
            result.warn(f"Could not relocate compiled shared code: {e}")
    else:
        result.warn(f"No compiled shared code at {compiled_shared}")

    data_dir = src / "data"
    if data_dir.is_dir():
        try:
            _replace_dir(data_dir, dist / "data", copy=True)
            result.moved.append("src/data -> data")
        except OSError as e:
            result.warn(f"Could not copy data directory: {e}")
    else:
        result.warn(f"No data directory at {data_dir}")

    logger.info(f"📦 Organized build output: {len(result.moved)} move(s), {len(result.warnings)} warning(s)")
    return result
