"""
Pipeline steps: a phase name bound to the action that performs it.
"""

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from .commands import CommandResult
from .context import RunContext
from .events import EventTypes
from .obs.report import ErrorRecord, Phase, PhaseResult, Severity

logger = logging.getLogger(__name__)


def _describe(value: Any):
    if value is None:
        return None
    if isinstance(value, CommandResult):
        return "\n".join(value.tail())
    return str(value)


@dataclass
class Step:
    """
    A phase whose failure is classified and, outside best-effort phases, fatal.

    ``action`` returns optional output (text or a CommandResult) and signals
    failure by raising. Any exception is classified at the phase boundary,
    so a failing action never escapes the run.
    """
    phase: Phase
    action: Callable[[], Any]

    def run(self, ctx: RunContext) -> PhaseResult:
        ctx.emit(EventTypes.PHASE_START, {"phase": self.phase.value})
        start = time.monotonic()
        try:
            output = self.action()
            if isinstance(output, CommandResult):
                output.raise_for_status()
        except Exception as e:
            return self._failed(ctx, e, start)

        duration = int((time.monotonic() - start) * 1000)
        ctx.emit(EventTypes.PHASE_DONE, {"phase": self.phase.value, "duration_ms": duration})
        return PhaseResult(self.phase, True, duration, output=_describe(output))

    def _failed(self, ctx: RunContext, error: Exception, start: float) -> PhaseResult:
        record = self._adjust(ctx.classifier.classify(error, self.phase, ctx.base_context()))
        ctx.record(record)
        logger.error(f"❌ Phase {self.phase.value} failed: {record.message}")
        return PhaseResult(
            self.phase,
            False,
            int((time.monotonic() - start) * 1000),
            output=getattr(error, "output", None) or None,
            error=record,
        )

    def _adjust(self, record: ErrorRecord) -> ErrorRecord:
        return record


@dataclass
class BestEffortStep(Step):
    """
    A phase whose failure is recorded as a recoverable warning and never
    aborts the run, whatever the action raises.
    """

    def _adjust(self, record: ErrorRecord) -> ErrorRecord:
        if record.severity is Severity.RECOVERABLE:
            return record
        return dataclasses.replace(record, severity=Severity.RECOVERABLE)
