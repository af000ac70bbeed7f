import json
from pathlib import Path
from typing import Dict, List
from unittest.mock import Mock

import pytest
import requests

from shipyard.commands import CommandResult, CommandRunner
from shipyard.config import BuildSettings, ProxySettings, RunConfiguration


class FakeRunner(CommandRunner):
    """Records every command; scripted outcomes are matched by command-line prefix."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.scripted: Dict[str, List[CommandResult]] = {}

    def script(self, prefix: str, *outcomes):
        queue = self.scripted.setdefault(prefix, [])
        for outcome in outcomes:
            if isinstance(outcome, CommandResult):
                queue.append(outcome)
            else:
                queue.append(CommandResult(args=prefix.split(), exit_code=int(outcome)))

    def run(self, args, cwd=None, timeout=None, env=None):
        args = list(args)
        self.calls.append(args)
        line = " ".join(args)
        for prefix, queue in self.scripted.items():
            if line.startswith(prefix) and queue:
                scripted = queue.pop(0) if len(queue) > 1 else queue[0]
                return CommandResult(args=args, exit_code=scripted.exit_code, stdout=scripted.stdout,
                                     stderr=scripted.stderr, timed_out=scripted.timed_out)
        return CommandResult(args=args, exit_code=0)

    def count(self, prefix: str) -> int:
        return sum(1 for call in self.calls if " ".join(call).startswith(prefix))

    def lines(self) -> List[str]:
        return [" ".join(call) for call in self.calls]


def make_response(status_code: int):
    response = Mock()
    response.status_code = status_code
    return response


def make_session(statuses: Dict[str, object], default: int = 200):
    """Mock requests session; values are status codes or exceptions to raise, keyed by URL."""
    session = Mock()

    def get(url, timeout=None):
        outcome = statuses.get(url, default)
        if isinstance(outcome, Exception):
            raise outcome
        return make_response(outcome)

    session.get.side_effect = get
    return session


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def healthy_session():
    return make_session({})


@pytest.fixture
def workspace(tmp_path):
    """A workspace that passes deploy validation, with pre-built output in dist/."""
    root = tmp_path / "app"
    (root / "src" / "backend").mkdir(parents=True)
    (root / "src" / "frontend").mkdir(parents=True)
    (root / "src" / "shared").mkdir(parents=True)
    (root / "src" / "data").mkdir(parents=True)
    (root / "src" / "data" / "seed.json").write_text("[]")
    (root / "package.json").write_text(json.dumps({"name": "app"}))
    (root / "tsconfig.json").write_text("{}")
    (root / "src" / "backend" / "package.json").write_text(json.dumps({"name": "backend"}))
    (root / "ecosystem.config.cjs").write_text("module.exports = { apps: [] };\n")

    dist = root / "dist"
    (dist / "backend" / "shared").mkdir(parents=True)
    (dist / "backend" / "index.js").write_text("require('./shared/util');\n")
    (dist / "backend" / "shared" / "util.js").write_text("module.exports = {};\n")
    (dist / "index.html").write_text("<html></html>")
    (dist / "assets").mkdir()
    (dist / "assets" / "app.css").write_text("body{}")
    return root


@pytest.fixture
def make_config(workspace, tmp_path):
    def factory(**kwargs) -> RunConfiguration:
        kwargs.setdefault("workspace", str(workspace))
        kwargs.setdefault("record_events", False)
        kwargs.setdefault("build", BuildSettings(min_free_mb=0))
        kwargs.setdefault("proxy", ProxySettings(config_path=str(tmp_path / "nginx" / "nginx.conf")))
        return RunConfiguration(**kwargs)
    return factory


def timeout_error(url: str) -> Exception:
    return requests.exceptions.ConnectTimeout(f"Connection to {url} timed out")
