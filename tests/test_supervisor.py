import json

import pytest

from shipyard.commands import CommandResult
from shipyard.supervisor import Pm2Supervisor, parse_jlist

JLIST = json.dumps([
    {"name": "api", "pid": 101, "pm2_env": {"status": "online", "restart_time": 2}, "monit": {"cpu": 1.5, "memory": 2048}},
    {"name": "web", "pid": 0, "pm2_env": {"status": "errored"}},
])


@pytest.fixture
def supervisor(runner, tmp_path):
    return Pm2Supervisor(runner, workspace=str(tmp_path))


def test_parse_jlist():
    processes = parse_jlist(JLIST)
    assert [p.name for p in processes] == ["api", "web"]
    assert processes[0].online
    assert processes[0].restarts == 2
    assert not processes[1].online


def test_parse_jlist_rejects_non_list():
    with pytest.raises(ValueError):
        parse_jlist('{"name": "api"}')


def test_status(supervisor, runner):
    runner.script("pm2 jlist", CommandResult(args=[], exit_code=0, stdout=JLIST))
    status = supervisor.status()
    assert status.online == 1
    assert not status.healthy
    assert status.to_dict()["total"] == 2


def test_status_with_garbage_output(supervisor, runner):
    runner.script("pm2 jlist", CommandResult(args=[], exit_code=0, stdout="not json"))
    status = supervisor.status()
    assert status.error.startswith("Unparseable")
    assert not status.healthy


def test_start_and_fallback_commands(supervisor, runner):
    supervisor.stop()
    supervisor.start()
    supervisor.restart_or_start()
    supervisor.save()
    assert runner.lines() == [
        "pm2 stop all",
        "pm2 start ecosystem.config.cjs --env production",
        "pm2 startOrRestart ecosystem.config.cjs --env production",
        "pm2 save",
    ]


def test_log_rotation_stops_at_first_failure(supervisor, runner):
    runner.script("pm2 install pm2-logrotate", 1)
    result = supervisor.setup_log_rotation()
    assert not result.ok
    assert runner.count("pm2 set") == 0


def test_log_rotation_settings(supervisor, runner):
    assert supervisor.setup_log_rotation(max_size="50M", retain=3).ok
    assert runner.lines() == [
        "pm2 install pm2-logrotate",
        "pm2 set pm2-logrotate:max_size 50M",
        "pm2 set pm2-logrotate:retain 3",
    ]
