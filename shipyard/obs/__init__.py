"""
Observability module for Shipyard runs.

Provides phase results, run reports and error classification.
"""

from .report import Phase, Severity, ErrorRecord, PhaseResult, PipelineRunReport
from .classify import ErrorClassifier, HintRule, BEST_EFFORT_PHASES

__all__ = [
    "Phase",
    "Severity",
    "ErrorRecord",
    "PhaseResult",
    "PipelineRunReport",
    "ErrorClassifier",
    "HintRule",
    "BEST_EFFORT_PHASES",
]
