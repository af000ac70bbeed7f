"""
ESM to CommonJS source transformation.

The engine applies an ordered rule list (directives, then imports, then
exports) to a module's text, optionally injects a browser-globals shim, and
then checks that no ESM syntax is left behind.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence, Tuple

from .report import ConversionReport
from .rules import DEFAULT_RULES, DIALECT_INDICATORS, TransformationRule, apply_rule, rules_in_order

logger = logging.getLogger(__name__)

SHIM_MARKER = "shipyard:browser-shim"

BROWSER_GLOBALS = re.compile(r"\b(window|document|localStorage|sessionStorage|navigator)\b")

BROWSER_SHIM = f"""/* {SHIM_MARKER} */
if (typeof window === 'undefined') {{
  const __memoryStorage = () => {{
    const store = {{}};
    return {{
      getItem: (key) => (Object.prototype.hasOwnProperty.call(store, key) ? store[key] : null),
      setItem: (key, value) => {{ store[key] = String(value); }},
      removeItem: (key) => {{ delete store[key]; }},
      clear: () => {{ Object.keys(store).forEach((key) => delete store[key]); }},
    }};
  }};
  global.window = global;
  if (!global.localStorage) global.localStorage = __memoryStorage();
  if (!global.sessionStorage) global.sessionStorage = __memoryStorage();
  if (!global.document) global.document = {{ addEventListener() {{}}, removeEventListener() {{}}, createElement: () => ({{}}) }};
  if (!global.navigator) global.navigator = {{ userAgent: 'node' }};
}}
"""


def find_indicators(text: str) -> List[str]:
    """Names of the ESM constructs present in ``text``."""
    return [name for name, pattern in DIALECT_INDICATORS if pattern.search(text)]


def needs_conversion(text: str) -> bool:
    return bool(find_indicators(text))


def inject_shim(text: str) -> Tuple[str, bool]:
    """Prepend the browser shim (after any shebang line) unless it is already there."""
    if SHIM_MARKER in text:
        return text, False
    if text.startswith("#!"):
        first, _, rest = text.partition("\n")
        return f"{first}\n{BROWSER_SHIM}{rest}", True
    return BROWSER_SHIM + text, True


class TransformationEngine:
    """Converts one module's text from ESM to CommonJS."""

    def __init__(
        self,
        rules: Optional[Sequence[TransformationRule]] = None,
        inject_shim: bool = True,
        min_output_chars: int = 10,
    ):
        self.rules = rules_in_order(list(rules if rules is not None else DEFAULT_RULES))
        self.inject_shim = inject_shim
        self.min_output_chars = min_output_chars

    def convert(self, text: str, path: Optional[str] = None) -> Tuple[str, ConversionReport]:
        """
        Convert ``text``.

        Text without any ESM indicator is returned unchanged and reported as
        not needing conversion. Otherwise every rule is applied in order and
        the result is validated; violations are listed on the report rather
        than raised.

        Args:
            text: Module source
            path: Optional file path, recorded on the report

        Returns:
            Tuple of (converted text, ConversionReport)
        """
        report = ConversionReport(path=path, input_size=len(text), output_size=len(text))
        report.indicators = find_indicators(text)
        if not report.indicators:
            return text, report

        report.needed = True
        out = text
        for rule in self.rules:
            out, count = apply_rule(rule, out)
            if count:
                report.rule_hits[rule.name] = report.rule_hits.get(rule.name, 0) + count
                category = rule.category.value
                report.category_counts[category] = report.category_counts.get(category, 0) + count

        if self.inject_shim and BROWSER_GLOBALS.search(out):
            out, report.shim_injected = inject_shim(out)

        for name in find_indicators(out):
            report.violations.append(f"residual {name}")

        stripped = out.strip()
        if stripped and len(stripped) < self.min_output_chars:
            report.violations.append(
                f"output too small ({len(stripped)} chars, minimum {self.min_output_chars})"
            )

        report.changed = out != text
        report.output_size = len(out)
        if report.violations:
            logger.warning(f"Conversion of {path or '<text>'} incomplete: {', '.join(report.violations)}")
        else:
            logger.debug(f"Converted {path or '<text>'}: {report.category_counts}")
        return out, report


def convert_text(text: str, **options) -> Tuple[str, ConversionReport]:
    """Convenience wrapper around a default TransformationEngine."""
    return TransformationEngine(**options).convert(text)
