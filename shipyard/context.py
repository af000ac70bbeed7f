"""
Per-run context passed explicitly through the pipeline.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .config import RunConfiguration
from .events import EventTypes, emit_event
from .ids import new_run_id
from .obs.classify import ErrorClassifier
from .obs.report import ErrorRecord

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """
    Run ID, configuration, error history and event sink for one run.

    Created at the start of a run and handed to every phase; nothing about a
    run lives in module-level state.
    """
    config: RunConfiguration
    run_id: str = field(default_factory=new_run_id)
    classifier: ErrorClassifier = field(default_factory=ErrorClassifier)
    history: List[ErrorRecord] = field(default_factory=list)
    pending_advisories: List[ErrorRecord] = field(default_factory=list)

    def base_context(self) -> Dict[str, Any]:
        return {"workspace_root": str(self.config.workspace_path)}

    def emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.config.record_events:
            emit_event(self.run_id, event_type, data)

    def record(self, record: ErrorRecord) -> None:
        """Add a classified error to the run's history."""
        self.history.append(record)
        if record.fatal:
            self.emit(EventTypes.PHASE_FAILED, record.to_dict())
        else:
            self.emit(EventTypes.WARNING, record.to_dict())

    def advise(self, record: ErrorRecord) -> None:
        """Queue an advisory record raised from inside a phase."""
        logger.warning(f"⚠️  {record.phase.value}: {record.message}")
        self.record(record)
        self.pending_advisories.append(record)

    def drain_advisories(self) -> List[ErrorRecord]:
        drained, self.pending_advisories = self.pending_advisories, []
        return drained
