"""
ESM to CommonJS source transformation.
"""

from .rules import (
    Computed, Literal, RuleCategory, TransformationRule,
    DEFAULT_RULES, apply_rule,
)
from .engine import TransformationEngine, convert_text, needs_conversion, find_indicators, SHIM_MARKER
from .report import ConversionReport, BatchConversionReport
from .batch import ConversionOptions, convert_files, scan_targets, retarget_requires

__all__ = [
    "Computed",
    "Literal",
    "RuleCategory",
    "TransformationRule",
    "DEFAULT_RULES",
    "apply_rule",
    "TransformationEngine",
    "convert_text",
    "needs_conversion",
    "find_indicators",
    "SHIM_MARKER",
    "ConversionReport",
    "BatchConversionReport",
    "ConversionOptions",
    "convert_files",
    "scan_targets",
    "retarget_requires",
]
