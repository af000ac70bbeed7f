"""
Tests for the ESM to CommonJS transformation engine.
"""

import re

import pytest

from shipyard.transform import (
    DEFAULT_RULES, SHIM_MARKER, Computed, Literal, RuleCategory, TransformationEngine,
    TransformationRule, apply_rule, convert_text, needs_conversion,
)


SAMPLES = [
    "const api = import.meta.env.VITE_API_URL;\nif (import.meta.env.DEV) { console.log(api); }\n",
    "import React, { useState as useS } from 'react';\nimport * as path from \"path\";\nimport './styles.css';\n",
    "import { readFile as read, join } from 'fs';\nexport default function load(p) { return read(join(p)); }\n",
    "const a = 1;\nconst c = 2;\nexport { a as b, c };\nexport * from './more';\n",
    "export const PORT = 5000;\nexport async function boot() {}\nexport class Store {}\n",
    "export const width = () => window.innerWidth + localStorage.length;\n",
    "const lazy = () => import('./lazy.js');\nexport { lazy };\n",
]


class TestDirectiveRules:
    """Meta-environment accessor rewrites."""

    def test_vite_prefix_is_preserved(self):
        out, report = convert_text("const api = import.meta.env.VITE_API_URL;\n")
        assert out == "const api = process.env.VITE_API_URL;\n"
        assert "process.env.API_URL" not in out
        assert report.rule_hits == {"vite_env": 1}
        assert report.category_counts == {"directive": 1}

    def test_mode_dev_prod(self):
        out, _ = convert_text(
            "const m = import.meta.env.MODE;\n"
            "if (!import.meta.env.DEV && import.meta.env.PROD) {}\n"
        )
        assert "const m = process.env.NODE_ENV;" in out
        assert '!(process.env.NODE_ENV === "development")' in out
        assert '(process.env.NODE_ENV === "production")' in out

    def test_generic_and_bare_env(self):
        out, report = convert_text("const base = import.meta.env.BASE_URL;\nconst all = import.meta.env;\n")
        assert out == "const base = process.env.BASE_URL;\nconst all = process.env;\n"
        assert report.rule_hits == {"env_generic": 1, "env_object": 1}

    def test_meta_url(self):
        out, report = convert_text("const here = new URL(import.meta.url);\n")
        assert 'require("url").pathToFileURL(__filename).href' in out
        assert report.ok


class TestImportRules:

    def test_named_import_with_alias(self):
        out, report = convert_text("import { readFile as read, join } from 'fs';\n")
        assert out == "const { readFile: read, join } = require('fs');\n"
        assert report.category_counts == {"import": 1}

    def test_default_namespace_side_effect(self):
        out, _ = convert_text(
            "import React from 'react';\n"
            "import * as path from \"path\";\n"
            "import './styles.css';\n"
        )
        assert out == (
            "const React = require('react');\n"
            "const path = require(\"path\");\n"
            "require('./styles.css');\n"
        )

    def test_default_and_named_together(self):
        out, _ = convert_text("import React, { useState as useS } from 'react';\n")
        assert out == "const React = require('react');\nconst { useState: useS } = React;\n"

    def test_multiline_named_import(self):
        out, report = convert_text("import {\n  a,\n  b as c,\n} from './mod';\n")
        assert out == "const { a, b: c } = require('./mod');\n"
        assert report.ok

    def test_dynamic_import(self):
        out, report = convert_text("const m = await import('./lazy.js');\n")
        assert out == "const m = await Promise.resolve().then(() => require('./lazy.js'));\n"
        assert report.ok

    def test_type_only_import_is_dropped(self):
        out, _ = convert_text("import type { Foo } from './types';\nimport { bar } from './bar';\n")
        assert out == "const { bar } = require('./bar');\n"

    def test_import_without_semicolon_keeps_line_break(self):
        out, _ = convert_text("import x from 'y'\nconst z = x\n")
        assert out == "const x = require('y');\nconst z = x\n"


class TestExportRules:

    def test_export_list_one_assignment_per_binding(self):
        out, report = convert_text("const a = 1;\nconst c = 2;\nexport { a as b, c };\n")
        assert out == "const a = 1;\nconst c = 2;\nmodule.exports.b = a;\nmodule.exports.c = c;\n"
        assert report.rule_hits == {"export_list": 1}

    def test_export_default(self):
        out, _ = convert_text("export default function handler(req) {\n  return req;\n}\n")
        assert out == "module.exports = function handler(req) {\n  return req;\n}\n"

    def test_exported_declarations(self):
        out, report = convert_text(
            "export const PORT = 5000;\n"
            "export async function boot() {}\n"
            "export class Store {}\n"
        )
        assert "const PORT = module.exports.PORT = 5000;" in out
        assert "module.exports.boot = boot;\nasync function boot() {}" in out
        assert "const Store = module.exports.Store = class Store {}" in out
        assert report.ok

    def test_reexports(self):
        out, _ = convert_text("export * from './a';\nexport { x as y } from './b';\nexport * as ns from './c';\n")
        assert "Object.assign(module.exports, require('./a'));" in out
        assert "module.exports.y = require('./b').x;" in out
        assert "module.exports.ns = require('./c');" in out

    def test_empty_export_is_removed(self):
        out, report = convert_text("export {};\n")
        assert out.strip() == ""
        assert report.needed
        assert report.ok

    def test_type_only_export_is_dropped(self):
        out, report = convert_text("export type { A } from './a';\nexport type { B };\nconst x = 1;\n")
        assert out == "const x = 1;\n"
        assert report.rule_hits == {"type_only_export": 2}
        assert report.ok

    @pytest.mark.parametrize("text", [
        "export type Id = string;\n",
        "export interface Point { x: number }\n",
        "export enum Color { Red }\n",
        "export abstract class Shape {}\n",
    ])
    def test_typescript_declarations_are_reported(self, text):
        out, report = convert_text(text)
        assert report.needed
        assert not report.ok
        assert "residual typescript_export" in report.violations
        assert out == text

    def test_several_declarators_are_left_and_reported(self):
        out, report = convert_text("export const a = 1, b = 2;\n")
        assert out == "export const a = 1, b = 2;\n"
        assert "residual export_statement" in report.violations

    def test_commas_inside_initialiser_still_convert(self):
        out, report = convert_text(
            "export const f = (a, b) => a;\n"
            "export const o = { k: [1, 2] };\n"
            "export const s = 'x, y';\n"
        )
        assert "const f = module.exports.f = (a, b) => a;" in out
        assert "const o = module.exports.o = { k: [1, 2] };" in out
        assert "const s = module.exports.s = 'x, y';" in out
        assert report.ok


class TestEngineBehaviour:

    def test_plain_commonjs_is_not_converted(self):
        text = "const x = require('y');\nmodule.exports = x;\n"
        out, report = convert_text(text)
        assert out == text
        assert not report.needed
        assert not report.changed
        assert report.rule_hits == {}

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        engine = TransformationEngine()
        once, first = engine.convert(text)
        twice, second = engine.convert(once)
        assert first.ok
        assert twice == once
        assert not second.needed

    def test_shim_injected_once_for_browser_globals(self):
        engine = TransformationEngine()
        out, report = engine.convert("export const width = () => window.innerWidth;\n")
        assert report.shim_injected
        assert out.startswith(f"/* {SHIM_MARKER} */")
        again, _ = engine.convert(out)
        assert again.count(SHIM_MARKER) == 1

    def test_shim_can_be_disabled(self):
        out, report = convert_text("export const w = window;\n", inject_shim=False)
        assert SHIM_MARKER not in out
        assert not report.shim_injected

    def test_shim_goes_after_shebang(self):
        out, _ = convert_text("#!/usr/bin/env node\nimport x from 'y';\nconsole.log(document.title, x);\n")
        assert out.startswith("#!/usr/bin/env node\n/* " + SHIM_MARKER)

    def test_residual_syntax_is_a_violation(self):
        out, report = convert_text("export let counter;\n")
        assert report.needed
        assert not report.ok
        assert "residual export_statement" in report.violations

    def test_implausibly_small_output_is_a_violation(self):
        _, report = convert_text("export default 1", min_output_chars=100)
        assert any("too small" in v for v in report.violations)

    def test_category_order_ignores_rule_declaration_order(self):
        text = SAMPLES[0] + SAMPLES[2]
        expected, _ = TransformationEngine().convert(text)
        shuffled = [r for category in reversed(list(RuleCategory)) for r in DEFAULT_RULES if r.category is category]
        assert shuffled[0].category is RuleCategory.EXPORT
        reversed_engine = TransformationEngine(rules=shuffled)
        out, _ = reversed_engine.convert(text)
        assert out == expected

    def test_needs_conversion(self):
        assert needs_conversion("import x from 'y'")
        assert needs_conversion("const e = import.meta.env;")
        assert needs_conversion("  export default {}")
        assert not needs_conversion("module.exports = { important: 'yes' };")


def test_literal_and_computed_replacements():
    literal = TransformationRule("lit", re.compile(r"foo\((\w+)\)"), Literal(r"bar(\1)"), "", RuleCategory.DIRECTIVE)
    computed = TransformationRule("cmp", re.compile(r"\d+"), Computed(lambda m: str(int(m.group(0)) * 2)), "",
                                  RuleCategory.EXPORT)
    assert apply_rule(literal, "foo(a) foo(b)") == ("bar(a) bar(b)", 2)
    assert apply_rule(computed, "1 and 21") == ("2 and 42", 2)
