from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from re import Match, Pattern
from typing import Callable, List, Tuple, Union

ID = r"[A-Za-z_$][\w$]*"
# quote char in one group, module specifier in the next
MODULE = r"""(['"])([^'"\n]+)\{q}"""


class RuleCategory(Enum):
    DIRECTIVE = "directive"
    IMPORT = "import"
    EXPORT = "export"


CATEGORY_ORDER = (RuleCategory.DIRECTIVE, RuleCategory.IMPORT, RuleCategory.EXPORT)


@dataclass(frozen=True)
class Literal:
    """Fixed replacement; group references like ``\\1`` are expanded."""
    template: str

    def render(self, match: Match[str]) -> str:
        return match.expand(self.template)


@dataclass(frozen=True)
class Computed:
    """Replacement produced by a function of the match."""
    fn: Callable[[Match[str]], str]

    def render(self, match: Match[str]) -> str:
        return self.fn(match)


Replacement = Union[Literal, Computed]


@dataclass(frozen=True)
class TransformationRule:
    name: str
    pattern: Pattern[str]
    replacement: Replacement
    description: str
    category: RuleCategory


def apply_rule(rule: TransformationRule, text: str) -> Tuple[str, int]:
    """Apply one rule to every match; returns the new text and the match count."""
    return rule.pattern.subn(rule.replacement.render, text)


def _module(q: int) -> str:
    return MODULE.replace("{q}", str(q))


def _bindings(clause: str) -> List[Tuple[str, str]]:
    """Parse ``a, b as c, type T`` into (source, local) pairs, dropping type-only entries."""
    pairs = []
    for item in clause.split(","):
        item = " ".join(item.split())
        if not item or item.startswith("type "):
            continue
        if " as " in item:
            source, local = (part.strip() for part in item.split(" as ", 1))
        else:
            source = local = item
        pairs.append((source, local))
    return pairs


def _destructure(pairs: List[Tuple[str, str]]) -> str:
    return ", ".join(source if source == local else f"{source}: {local}" for source, local in pairs)


def _named_import(m: Match[str]) -> str:
    q, mod = m.group(2), m.group(3)
    pairs = _bindings(m.group(1))
    if not pairs:
        return f"require({q}{mod}{q});"
    return f"const {{ {_destructure(pairs)} }} = require({q}{mod}{q});"


def _default_and_named_import(m: Match[str]) -> str:
    default, q, mod = m.group(1), m.group(3), m.group(4)
    lines = [f"const {default} = require({q}{mod}{q});"]
    pairs = _bindings(m.group(2))
    if pairs:
        lines.append(f"const {{ {_destructure(pairs)} }} = {default};")
    return "\n".join(lines)


def _reexport_named(m: Match[str]) -> str:
    q, mod = m.group(2), m.group(3)
    pairs = _bindings(m.group(1))
    if not pairs:
        return f"require({q}{mod}{q});"
    return "\n".join(f"module.exports.{local} = require({q}{mod}{q}).{source};" for source, local in pairs)


def _export_list(m: Match[str]) -> str:
    return "\n".join(f"module.exports.{local} = {source};" for source, local in _bindings(m.group(1)))


def _declares_several(text: str, start: int) -> bool:
    """Whether the declaration continuing at ``start`` has a top-level comma before it ends."""
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch in "'\"`":
            end = text.find(ch, i + 1)
            while end != -1 and text[end - 1] == "\\":
                end = text.find(ch, end + 1)
            if end == -1:
                return False
            i = end
        elif text.startswith("//", i):
            return False
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                return False
            i = end + 1
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth < 0:
                return False
        elif depth == 0 and ch in ";\n":
            return False
        elif depth == 0 and ch == ",":
            return True
        i += 1
    return False


def _export_variable(m: Match[str]) -> str:
    # several declarators in one export are left as they are and reported
    if _declares_several(m.string, m.end()):
        return m.group(0)
    return f"{m.group(1)} {m.group(2)} = module.exports.{m.group(2)} ="


def _export_function(m: Match[str]) -> str:
    # function declarations are hoisted, so the assignment can precede them
    return f"module.exports.{m.group(2)} = {m.group(2)};\n{m.group(1)}"


DIRECTIVE_RULES = [
    TransformationRule(
        name="vite_env",
        pattern=re.compile(r"\bimport\.meta\.env\.(VITE_[\w$]*)"),
        replacement=Literal(r"process.env.\1"),
        description="import.meta.env.VITE_* -> process.env.VITE_*",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="env_mode",
        pattern=re.compile(r"\bimport\.meta\.env\.MODE\b"),
        replacement=Literal("process.env.NODE_ENV"),
        description="import.meta.env.MODE -> process.env.NODE_ENV",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="env_dev",
        pattern=re.compile(r"\bimport\.meta\.env\.DEV\b"),
        replacement=Literal('(process.env.NODE_ENV === "development")'),
        description="import.meta.env.DEV -> NODE_ENV check",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="env_prod",
        pattern=re.compile(r"\bimport\.meta\.env\.PROD\b"),
        replacement=Literal('(process.env.NODE_ENV === "production")'),
        description="import.meta.env.PROD -> NODE_ENV check",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="env_generic",
        pattern=re.compile(r"\bimport\.meta\.env\.(" + ID + r")"),
        replacement=Literal(r"process.env.\1"),
        description="import.meta.env.X -> process.env.X",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="env_object",
        pattern=re.compile(r"\bimport\.meta\.env\b"),
        replacement=Literal("process.env"),
        description="import.meta.env -> process.env",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="meta_url",
        pattern=re.compile(r"\bimport\.meta\.url\b"),
        replacement=Literal('require("url").pathToFileURL(__filename).href'),
        description="import.meta.url -> file URL of __filename",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="meta_dirname",
        pattern=re.compile(r"\bimport\.meta\.dirname\b"),
        replacement=Literal("__dirname"),
        description="import.meta.dirname -> __dirname",
        category=RuleCategory.DIRECTIVE,
    ),
    TransformationRule(
        name="meta_filename",
        pattern=re.compile(r"\bimport\.meta\.filename\b"),
        replacement=Literal("__filename"),
        description="import.meta.filename -> __filename",
        category=RuleCategory.DIRECTIVE,
    ),
]

IMPORT_RULES = [
    TransformationRule(
        name="type_only_import",
        pattern=re.compile(r"\bimport\s+type\s+[^;'\"]*?\bfrom\s*" + _module(1) + r"[ \t]*;?[ \t]*\n?"),
        replacement=Literal(""),
        description="drop type-only imports",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="default_and_named_import",
        pattern=re.compile(r"\bimport\s+(" + ID + r")\s*,\s*\{([^}]*)\}\s*from\s*" + _module(3) + r"[ \t]*;?"),
        replacement=Computed(_default_and_named_import),
        description="import X, { a } from 'm' -> require + destructure",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="default_and_namespace_import",
        pattern=re.compile(r"\bimport\s+(" + ID + r")\s*,\s*\*\s*as\s+(" + ID + r")\s+from\s*" + _module(3) + r"[ \t]*;?"),
        replacement=Literal(r"const \1 = require(\3\4\3);" + "\n" + r"const \2 = \1;"),
        description="import X, * as Y from 'm' -> require",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="namespace_import",
        pattern=re.compile(r"\bimport\s*\*\s*as\s+(" + ID + r")\s+from\s*" + _module(2) + r"[ \t]*;?"),
        replacement=Literal(r"const \1 = require(\2\3\2);"),
        description="import * as X from 'm' -> const X = require('m')",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="named_import",
        pattern=re.compile(r"\bimport\s*\{([^}]*)\}\s*from\s*" + _module(2) + r"[ \t]*;?"),
        replacement=Computed(_named_import),
        description="import { a as b } from 'm' -> const { a: b } = require('m')",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="default_import",
        pattern=re.compile(r"\bimport\s+(" + ID + r")\s+from\s*" + _module(2) + r"[ \t]*;?"),
        replacement=Literal(r"const \1 = require(\2\3\2);"),
        description="import X from 'm' -> const X = require('m')",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="side_effect_import",
        pattern=re.compile(r"\bimport\s*" + _module(1) + r"[ \t]*;?"),
        replacement=Literal(r"require(\1\2\1);"),
        description="import 'm' -> require('m')",
        category=RuleCategory.IMPORT,
    ),
    TransformationRule(
        name="dynamic_import",
        pattern=re.compile(r"\bimport\s*\(\s*(['\"`])([^'\"`\n]+)\1\s*\)"),
        replacement=Literal(r"Promise.resolve().then(() => require(\1\2\1))"),
        description="import('m') -> promise of require('m')",
        category=RuleCategory.IMPORT,
    ),
]

EXPORT_RULES = [
    TransformationRule(
        name="type_only_export",
        pattern=re.compile(r"\bexport\s+type\s*\{[^}]*\}(?:\s*from\s*" + _module(1) + r")?[ \t]*;?[ \t]*\n?"),
        replacement=Literal(""),
        description="drop type-only exports",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_star_as",
        pattern=re.compile(r"\bexport\s*\*\s*as\s+(" + ID + r")\s+from\s*" + _module(2) + r"[ \t]*;?"),
        replacement=Literal(r"module.exports.\1 = require(\2\3\2);"),
        description="export * as ns from 'm'",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_star",
        pattern=re.compile(r"\bexport\s*\*\s*from\s*" + _module(1) + r"[ \t]*;?"),
        replacement=Literal(r"Object.assign(module.exports, require(\1\2\1));"),
        description="export * from 'm' -> Object.assign(module.exports, require('m'))",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="reexport_named",
        pattern=re.compile(r"\bexport\s*\{([^}]*)\}\s*from\s*" + _module(2) + r"[ \t]*;?"),
        replacement=Computed(_reexport_named),
        description="export { a as b } from 'm'",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_default",
        pattern=re.compile(r"\bexport\s+default\s+"),
        replacement=Literal("module.exports = "),
        description="export default X -> module.exports = X",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_function",
        pattern=re.compile(r"\bexport\s+((?:async\s+)?function\s*\*?\s*(" + ID + r"))"),
        replacement=Computed(_export_function),
        description="export function f -> function f + module.exports.f",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_class",
        pattern=re.compile(r"\bexport\s+class\s+(" + ID + r")"),
        replacement=Literal(r"const \1 = module.exports.\1 = class \1"),
        description="export class C -> const C = module.exports.C = class C",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_variable",
        pattern=re.compile(r"\bexport\s+(const|let|var)\s+(" + ID + r")\s*="),
        replacement=Computed(_export_variable),
        description="export const x = v -> const x = module.exports.x = v",
        category=RuleCategory.EXPORT,
    ),
    TransformationRule(
        name="export_list",
        pattern=re.compile(r"\bexport\s*\{([^}]*)\}[ \t]*;?"),
        replacement=Computed(_export_list),
        description="export { a as b, c } -> one module.exports assignment per binding",
        category=RuleCategory.EXPORT,
    ),
]

DEFAULT_RULES: List[TransformationRule] = DIRECTIVE_RULES + IMPORT_RULES + EXPORT_RULES


# Dialect indicators: present before conversion means "needs conversion",
# present after conversion means "conversion incomplete".
DIALECT_INDICATORS: List[Tuple[str, Pattern[str]]] = [
    ("import_meta", re.compile(r"\bimport\.meta\b")),
    ("import_statement", re.compile(r"(?m)(?:^|[;{}])[ \t]*import\s*(?:[\w$*{][^;]*?\bfrom\s*)?['\"]")),
    ("dynamic_import", re.compile(r"\bimport\s*\(")),
    ("export_statement", re.compile(
        r"(?m)(?:^|[;{}])[ \t]*export\s*(?:\{|\*|default\b|(?:async\s+)?function\b|class\b|const\b|let\b|var\b)"
    )),
    ("typescript_export", re.compile(
        r"(?m)(?:^|[;{}])[ \t]*export\s+(?:type\b|interface\b|enum\b|abstract\s+class\b|declare\b|namespace\b)"
    )),
]


def rules_in_order(rules: List[TransformationRule]) -> List[TransformationRule]:
    """Stable sort by category; declaration order is kept within a category."""
    rank = {category: i for i, category in enumerate(CATEGORY_ORDER)}
    return sorted(rules, key=lambda rule: rank[rule.category])
