from __future__ import annotations

import logging
import os
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Collection, Generator, Iterable, Optional, Set

from .engine import TransformationEngine
from .report import BatchConversionReport, ConversionReport

logger = logging.getLogger(__name__)

IGNORE_DIRS = {
    ".git",
    "node_modules",
    ".conversion-backup",
}

DEFAULT_EXTENSIONS = (".js", ".mjs", ".jsx", ".ts", ".tsx")

RELATIVE_JS_REQUIRE = re.compile(r"""require\((['"])(\.{1,2}/[^'"]+?)\.js\1\)""")


@dataclass
class ConversionOptions:
    write: bool = True
    backup: bool = False
    keep_partial: bool = False
    rename_to_cjs: bool = False


def scan_targets(root: str | Path, extensions: Iterable[str] = DEFAULT_EXTENSIONS) -> Generator[Path, None, None]:
    """Yield source files under ``root``, skipping dependency and backup dirs and minified bundles."""
    root_path = Path(root)
    if root_path.is_file():
        yield root_path
        return
    suffixes = tuple(extensions)
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORE_DIRS)
        for filename in sorted(filenames):
            if filename.endswith(".min.js") or not filename.endswith(suffixes):
                continue
            yield Path(dirpath) / filename


def retarget_requires(text: str, base: Optional[Path] = None, available: Collection[Path] = ()) -> str:
    """
    Point relative ``require('./x.js')`` calls at the renamed ``.cjs`` files.

    With ``base`` (the requiring file's directory) a call is only rewritten
    when its ``.cjs`` target is in ``available`` or already on disk.
    """
    def swap(m):
        if base is not None:
            target = (base / f"{m.group(2)}.cjs").resolve()
            if target not in available and not target.exists():
                return m.group(0)
        return f"require({m.group(1)}{m.group(2)}.cjs{m.group(1)})"

    return RELATIVE_JS_REQUIRE.sub(swap, text)


def _renamed_targets(paths: Iterable[Path], engine: TransformationEngine, options: ConversionOptions) -> Set[Path]:
    """The ``.cjs`` files a renaming batch will leave behind."""
    targets = set()
    for path in paths:
        if path.suffix != ".js":
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        _, report = engine.convert(text, path=str(path))
        if report.ok or options.keep_partial:
            targets.add(path.with_suffix(".cjs").resolve())
    return targets


def _backup(path: Path) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    backup_dir = path.parent / ".conversion-backup"
    backup_dir.mkdir(exist_ok=True)
    target = backup_dir / f"{path.name}.{stamp}"
    shutil.copy2(path, target)
    return target


def convert_file(
    path: Path,
    engine: TransformationEngine,
    options: ConversionOptions,
    renamed: Collection[Path] = (),
) -> ConversionReport:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return ConversionReport(path=str(path), error=f"read failed: {e}")

    out, report = engine.convert(text, path=str(path))
    renaming = options.rename_to_cjs and path.suffix == ".js"
    if options.rename_to_cjs:
        out = retarget_requires(out, base=path.parent.resolve(), available=renamed)
        report.changed = out != text

    # a renaming batch moves every .js file, converted or not
    if not options.write or not (report.changed or renaming):
        return report
    if not report.ok and not options.keep_partial:
        return report

    target = path.with_suffix(".cjs") if renaming else path
    try:
        if options.backup:
            report.backup_path = str(_backup(path))
        target.write_text(out, encoding="utf-8")
        if target != path:
            path.unlink()
    except OSError as e:
        report.error = f"write failed: {e}"
        return report

    report.written_to = str(target)
    return report


def convert_files(
    paths: Iterable[str | Path],
    engine: Optional[TransformationEngine] = None,
    options: Optional[ConversionOptions] = None,
) -> BatchConversionReport:
    """
    Convert a batch of files, continuing past per-file failures.

    Files that fail to read, or whose output still contains ESM syntax, go to
    the ``failed`` partition; they are left untouched on disk unless
    ``keep_partial`` is set.
    """
    engine = engine or TransformationEngine()
    options = options or ConversionOptions()
    batch = BatchConversionReport()
    paths = [Path(p) for p in paths]
    renamed = _renamed_targets(paths, engine, options) if options.rename_to_cjs and options.write else set()

    for path in paths:
        report = convert_file(path, engine, options, renamed)
        batch.add(report)
        if not report.ok:
            logger.error(f"❌ {path}: {report.error or ', '.join(report.violations)}")
        elif report.needed:
            logger.info(f"✅ Converted {path}")

    logger.info(f"Conversion finished: {batch.summary()}")
    return batch
