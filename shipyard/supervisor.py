"""
pm2 process supervisor adapter.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .commands import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


@dataclass
class ProcessInfo:
    name: str
    status: str
    pid: Optional[int] = None
    restarts: int = 0
    cpu: float = 0.0
    memory: int = 0

    @property
    def online(self) -> bool:
        return self.status == "online"


@dataclass
class SupervisorStatus:
    processes: List[ProcessInfo] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def online(self) -> int:
        return sum(1 for p in self.processes if p.online)

    @property
    def healthy(self) -> bool:
        return self.error is None and bool(self.processes) and self.online == len(self.processes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "online": self.online,
            "total": len(self.processes),
            "error": self.error,
            "processes": [p.__dict__ for p in self.processes],
        }


def parse_jlist(output: str) -> List[ProcessInfo]:
    """
    Parse ``pm2 jlist`` JSON output.

    Raises:
        ValueError: If the output is not a JSON list
    """
    data = json.loads(output or "[]")
    if not isinstance(data, list):
        raise ValueError("pm2 jlist did not return a list")
    processes = []
    for entry in data:
        env = entry.get("pm2_env") or {}
        monit = entry.get("monit") or {}
        processes.append(ProcessInfo(
            name=entry.get("name", "unknown"),
            status=env.get("status", "unknown"),
            pid=entry.get("pid"),
            restarts=env.get("restart_time", 0),
            cpu=monit.get("cpu", 0.0),
            memory=monit.get("memory", 0),
        ))
    return processes


class Pm2Supervisor:
    """
    Thin wrapper over the pm2 CLI.

    Every call returns the CommandResult; callers decide what a failure means.
    """

    def __init__(
        self,
        runner: CommandRunner,
        workspace: str = ".",
        manifest: str = "ecosystem.config.cjs",
        environment: str = "production",
        process_group: str = "all",
        binary: str = "pm2",
        timeout: float = 60.0,
    ):
        self.runner = runner
        self.workspace = workspace
        self.manifest = manifest
        self.environment = environment
        self.process_group = process_group
        self.binary = binary
        self.timeout = timeout

    def _run(self, *args: str) -> CommandResult:
        result = self.runner.run([self.binary, *args], cwd=self.workspace, timeout=self.timeout)
        if not result.ok:
            logger.warning(f"{self.binary} {' '.join(args)} failed (exit {result.exit_code})")
        return result

    def start(self) -> CommandResult:
        logger.info(f"🚀 Starting processes from {self.manifest} ({self.environment})")
        return self._run("start", self.manifest, "--env", self.environment)

    def stop(self) -> CommandResult:
        return self._run("stop", self.process_group)

    def delete(self) -> CommandResult:
        return self._run("delete", self.process_group)

    def restart_or_start(self) -> CommandResult:
        logger.info(f"🔁 Restarting (or starting) processes from {self.manifest}")
        return self._run("startOrRestart", self.manifest, "--env", self.environment)

    def save(self) -> CommandResult:
        return self._run("save")

    def status(self) -> SupervisorStatus:
        result = self._run("jlist")
        if not result.ok:
            return SupervisorStatus(error=result.output or f"exit code {result.exit_code}")
        try:
            return SupervisorStatus(processes=parse_jlist(result.stdout))
        except ValueError as e:
            return SupervisorStatus(error=f"Unparseable pm2 output: {e}")

    def setup_log_rotation(self, max_size: str = "10M", retain: int = 7) -> CommandResult:
        """Install pm2-logrotate and configure it; stops at the first failing step."""
        for args in (
            ("install", "pm2-logrotate"),
            ("set", "pm2-logrotate:max_size", max_size),
            ("set", "pm2-logrotate:retain", str(retain)),
        ):
            result = self._run(*args)
            if not result.ok:
                return result
        return result

    def setup_monitoring(self) -> CommandResult:
        return self._run("install", "pm2-server-monit")
