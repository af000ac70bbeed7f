"""
Event logging utilities for NDJSON format.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from .state import get_run_dir


EVENTS_FILE = "events.ndjson"


def emit_event(run_id: str, event_type: str, data: Dict[str, Any]) -> None:
    """
    Emit an event to the run's events.ndjson file.

    Args:
        run_id: Run ID
        event_type: Event type (e.g., "RUN_START", "PHASE_DONE")
        data: Event data
    """
    run_dir = get_run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    events_file = run_dir / EVENTS_FILE

    event = {
        "ts": datetime.now().isoformat(),
        "type": event_type,
        "data": data
    }

    with open(events_file, "a") as f:
        f.write(json.dumps(event) + "\n")
        f.flush()


def read_events(run_id: str) -> List[Dict[str, Any]]:
    """
    Read all events from a run's events.ndjson file.

    Args:
        run_id: Run ID

    Returns:
        List of events
    """
    events_file = get_run_dir(run_id) / EVENTS_FILE

    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r") as f:
        for line in f:
            line = line.strip()
            if line:
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue  # Skip malformed lines

    return events


def get_last_event(run_id: str) -> Optional[Dict[str, Any]]:
    events = read_events(run_id)
    return events[-1] if events else None


def get_status_from_events(run_id: str) -> str:
    """
    Determine run status from events.

    Args:
        run_id: Run ID

    Returns:
        Status string
    """
    last_event = get_last_event(run_id)
    if not last_event:
        return "unknown"

    event_type = last_event.get("type", "")

    status_map = {
        EventTypes.RUN_START: "running",
        EventTypes.PHASE_START: "running",
        EventTypes.PHASE_DONE: "running",
        EventTypes.PHASE_SKIPPED: "running",
        EventTypes.WARNING: "running",
        EventTypes.PHASE_FAILED: "failing",
        EventTypes.ROLLBACK: "rolling_back",
        EventTypes.RUN_DONE: "succeeded",
        EventTypes.RUN_ABORTED: "failed",
    }

    return status_map.get(event_type, "unknown")


class EventTypes:
    RUN_START = "RUN_START"
    PHASE_START = "PHASE_START"
    PHASE_DONE = "PHASE_DONE"
    PHASE_FAILED = "PHASE_FAILED"
    PHASE_SKIPPED = "PHASE_SKIPPED"
    WARNING = "WARNING"
    ROLLBACK = "ROLLBACK"
    RUN_DONE = "RUN_DONE"
    RUN_ABORTED = "RUN_ABORTED"
    # Transformation events
    FILE_CONVERTED = "FILE_CONVERTED"
    FILE_CONVERSION_FAILED = "FILE_CONVERSION_FAILED"
    # Health events
    HEALTH_OK = "HEALTH_OK"
    HEALTH_FAIL = "HEALTH_FAIL"
