"""
Run report: phase results and structured error records.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Phase(Enum):
    """Pipeline phases, in the order they can run."""
    WORKSPACE_VALIDATION = "workspace_validation"
    CLEANUP = "cleanup"
    SOURCE_TRANSFORM = "source_transform"
    BACKEND_BUILD = "backend_build"
    FRONTEND_BUILD = "frontend_build"
    ORGANIZE_OUTPUT = "organize_output"
    BUILD_VERIFICATION = "build_verification"
    PROXY_CONFIG = "proxy_config"
    PROXY_ROLLBACK = "proxy_rollback"
    SUPERVISOR_START = "supervisor_start"
    LOG_ROTATION = "log_rotation"
    MONITORING = "monitoring"
    HEALTH_CHECK = "health_check"


class Severity(Enum):
    FATAL = "fatal"
    RECOVERABLE = "recoverable"


@dataclass(frozen=True)
class ErrorRecord:
    """A classified failure attached to the phase that produced it."""
    phase: Phase
    message: str
    severity: Severity
    kind: str = "ShipyardError"
    context: Dict[str, Any] = field(default_factory=dict)
    reason_code: Optional[str] = None
    hint: Optional[str] = None

    @property
    def fatal(self) -> bool:
        return self.severity is Severity.FATAL

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "phase": self.phase.value,
            "message": self.message,
            "severity": self.severity.value,
            "kind": self.kind,
        }
        if self.context:
            data["context"] = dict(self.context)
        if self.reason_code:
            data["reason_code"] = self.reason_code
        if self.hint:
            data["hint"] = self.hint
        return data


@dataclass(frozen=True)
class PhaseResult:
    phase: Phase
    success: bool
    duration_ms: int = 0
    output: Optional[str] = None
    error: Optional[ErrorRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.phase.value,
            "success": self.success,
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class PipelineRunReport:
    """
    Report for one pipeline run.

    Phase results are only ever appended; ``finalize`` fixes the outcome and
    total duration once the run ends.
    """
    run_id: str
    pipeline: str
    phases: List[PhaseResult] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    success: bool = False
    aborted_at: Optional[Phase] = None
    started_at: float = field(default_factory=time.time)
    duration_ms: int = 0
    finalized: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    def add_phase(self, result: PhaseResult) -> None:
        if self.finalized:
            raise RuntimeError("Cannot add phases to a finalized report")
        self.phases.append(result)
        if result.error is not None:
            self.errors.append(result.error)

    def add_error(self, record: ErrorRecord) -> None:
        if self.finalized:
            raise RuntimeError("Cannot add errors to a finalized report")
        self.errors.append(record)

    def phase(self, phase: Phase) -> Optional[PhaseResult]:
        for result in self.phases:
            if result.phase is phase:
                return result
        return None

    @property
    def fatal_errors(self) -> List[ErrorRecord]:
        return [e for e in self.errors if e.fatal]

    @property
    def warnings(self) -> List[ErrorRecord]:
        return [e for e in self.errors if not e.fatal]

    def finalize(self) -> "PipelineRunReport":
        if not self.finalized:
            self.success = not self.fatal_errors
            self.duration_ms = int((time.time() - self.started_at) * 1000)
            self.finalized = True
        return self

    def summary(self) -> str:
        if self.aborted_at is not None:
            reason = self.fatal_errors[0].message if self.fatal_errors else "unknown error"
            return f"Pipeline '{self.pipeline}' aborted at phase {self.aborted_at.value}: {reason}"
        return f"Pipeline '{self.pipeline}' completed with {len(self.warnings)} advisory warning(s)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "success": self.success,
            "duration_ms": self.duration_ms,
            "aborted_at": self.aborted_at.value if self.aborted_at else None,
            "summary": self.summary(),
            "phases": [p.to_dict() for p in self.phases],
            "errors": [e.to_dict() for e in self.errors],
            "details": dict(self.details),
        }
