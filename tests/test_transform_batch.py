from pathlib import Path

from shipyard.transform import ConversionOptions, convert_files, retarget_requires, scan_targets


def _write_batch(root: Path):
    files = {
        "a.js": "import { join } from 'path';\nmodule.exports = join;\n",
        "b.js": "const fs = require('fs');\nmodule.exports = fs;\n",
        "c.js": "export let counter;\n",
        "d.mjs": "export default { name: 'd' };\n",
        "e.js": "const url = import.meta.env.VITE_URL;\nmodule.exports = url;\n",
    }
    for name, text in files.items():
        (root / name).write_text(text)
    return [root / name for name in sorted(files)]


def test_batch_continues_past_failures(tmp_path):
    paths = _write_batch(tmp_path)
    original_c = (tmp_path / "c.js").read_text()

    batch = convert_files(paths)

    assert len(batch.succeeded) == 4
    assert len(batch.failed) == 1
    assert batch.failed[0].path == str(tmp_path / "c.js")
    assert batch.converted == 3
    assert batch.skipped == 1
    assert not batch.ok
    # failed file is left as it was
    assert (tmp_path / "c.js").read_text() == original_c
    assert (tmp_path / "a.js").read_text().startswith("const { join } = require('path');")
    assert (tmp_path / "d.mjs").read_text() == "module.exports = { name: 'd' };\n"


def test_keep_partial_writes_failed_output(tmp_path):
    target = tmp_path / "partial.js"
    target.write_text("import x from 'y';\nexport let counter;\n")
    batch = convert_files([target], options=ConversionOptions(keep_partial=True))
    assert len(batch.failed) == 1
    assert target.read_text().startswith("const x = require('y');")


def test_check_mode_does_not_write(tmp_path):
    target = tmp_path / "a.js"
    target.write_text("import x from 'y';\n")
    batch = convert_files([target], options=ConversionOptions(write=False))
    assert batch.converted == 1
    assert target.read_text() == "import x from 'y';\n"


def test_unreadable_file_is_reported(tmp_path):
    target = tmp_path / "binary.js"
    target.write_bytes(b"\xff\xfe\x00import")
    batch = convert_files([target])
    assert len(batch.failed) == 1
    assert batch.failed[0].error.startswith("read failed")


def test_backup_before_overwrite(tmp_path):
    target = tmp_path / "a.js"
    target.write_text("import x from 'y';\n")
    batch = convert_files([target], options=ConversionOptions(backup=True))
    backup = Path(batch.succeeded[0].backup_path)
    assert backup.parent.name == ".conversion-backup"
    assert backup.read_text() == "import x from 'y';\n"


def test_rename_to_cjs_moves_whole_batch(tmp_path):
    index = tmp_path / "index.js"
    index.write_text("import util from './util.js';\nmodule.exports = util;\n")
    (tmp_path / "util.js").write_text("module.exports = { add: (a, b) => a + b };\n")

    batch = convert_files(sorted(tmp_path.glob("*.js")), options=ConversionOptions(rename_to_cjs=True))

    assert batch.ok
    assert sorted(p.name for p in tmp_path.iterdir()) == ["index.cjs", "util.cjs"]
    assert (tmp_path / "index.cjs").read_text().startswith("const util = require('./util.cjs');")
    assert (tmp_path / "util.cjs").read_text() == "module.exports = { add: (a, b) => a + b };\n"


def test_rename_keeps_requires_without_cjs_target(tmp_path):
    index = tmp_path / "index.js"
    index.write_text("import gone from './gone.js';\nimport bad from './bad.js';\nmodule.exports = [gone, bad];\n")
    (tmp_path / "bad.js").write_text("export let counter;\n")

    batch = convert_files([index, tmp_path / "bad.js"], options=ConversionOptions(rename_to_cjs=True))

    assert [r.path for r in batch.failed] == [str(tmp_path / "bad.js")]
    text = (tmp_path / "index.cjs").read_text()
    assert "require('./gone.js')" in text
    assert "require('./bad.js')" in text
    assert (tmp_path / "bad.js").exists()


def test_retarget_requires_only_touches_relative_js():
    text = "require('./a.js'); require('../b/c.js'); require('lodash.js'); require(\"./d.json\")"
    assert retarget_requires(text) == (
        "require('./a.cjs'); require('../b/c.cjs'); require('lodash.js'); require(\"./d.json\")"
    )


def test_scan_skips_dependencies_backups_and_minified(tmp_path):
    for rel in ("node_modules/x.js", ".git/c.js", ".conversion-backup/d.js", "lib/a.min.js",
                "lib/b.js", "lib/types.ts", "lib/readme.md"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("export default 1;\n")

    found = sorted(p.relative_to(tmp_path).as_posix() for p in scan_targets(tmp_path))
    assert found == ["lib/b.js", "lib/types.ts"]
