from shipyard.events import EventTypes, emit_event, get_status_from_events, read_events
from shipyard.ids import is_valid_run_id, new_run_id
from shipyard.state import create_run_dir, list_runs, run_exists


def test_status_progression_basic(tmp_path, monkeypatch):
    monkeypatch.setenv("SHIPYARD_HOME", str(tmp_path))
    run_id = new_run_id()
    create_run_dir(run_id)
    assert get_status_from_events(run_id) == "unknown"
    emit_event(run_id, EventTypes.RUN_START, {"pipeline": "deploy"})
    assert get_status_from_events(run_id) == "running"
    emit_event(run_id, EventTypes.PHASE_FAILED, {"phase": "proxy_config"})
    assert get_status_from_events(run_id) == "failing"
    emit_event(run_id, EventTypes.RUN_ABORTED, {})
    assert get_status_from_events(run_id) == "failed"
    assert [e["type"] for e in read_events(run_id)] == ["RUN_START", "PHASE_FAILED", "RUN_ABORTED"]


def test_malformed_lines_are_skipped(tmp_path, monkeypatch):
    monkeypatch.setenv("SHIPYARD_HOME", str(tmp_path))
    run_id = new_run_id()
    run_dir = create_run_dir(run_id)
    emit_event(run_id, EventTypes.RUN_DONE, {})
    with open(run_dir / "events.ndjson", "a") as f:
        f.write("{not json\n")
    assert get_status_from_events(run_id) == "succeeded"


def test_run_ids_and_listing(tmp_path, monkeypatch):
    monkeypatch.setenv("SHIPYARD_HOME", str(tmp_path))
    assert is_valid_run_id("r-20240101-120000-ab12")
    assert not is_valid_run_id("d-20240101-120000-ab12")
    assert not is_valid_run_id("r-2024-120000-ab12")
    create_run_dir("r-20240101-120000-ab12")
    create_run_dir("r-20240102-120000-cd34")
    (tmp_path / "scratch").mkdir()
    assert list_runs() == ["r-20240102-120000-cd34", "r-20240101-120000-ab12"]
    assert run_exists("r-20240101-120000-ab12")
    assert not run_exists("../etc")


def test_new_run_ids_are_valid_and_distinct():
    ids = {new_run_id() for _ in range(20)}
    assert all(is_valid_run_id(run_id) for run_id in ids)
    assert len(ids) > 1
    assert not is_valid_run_id("r-20240101-120000-ab12/..")
