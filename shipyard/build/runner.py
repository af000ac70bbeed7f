"""
Two-stage build runner: backend first, then frontend, fail-fast.
"""

import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..commands import CommandResult, CommandRunner
from ..config import RunConfiguration
from ..obs.report import Phase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildTarget:
    name: str
    phase: Phase
    args: List[str]
    cwd: str
    timeout: float
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class BuildOutcome:
    target: BuildTarget
    result: CommandResult
    attempts: int

    @property
    def ok(self) -> bool:
        return self.result.ok


def build_targets(config: RunConfiguration) -> List[BuildTarget]:
    """Backend and frontend targets, in build order."""
    root = config.workspace_path
    env = {"NODE_ENV": "production"}
    return [
        BuildTarget(
            name="backend",
            phase=Phase.BACKEND_BUILD,
            args=shlex.split(config.build.backend_command),
            cwd=str((root / config.build.backend_dir).resolve()),
            timeout=config.timeouts.build,
            env=env,
        ),
        BuildTarget(
            name="frontend",
            phase=Phase.FRONTEND_BUILD,
            args=shlex.split(config.build.frontend_command),
            cwd=str((root / config.build.frontend_dir).resolve()),
            timeout=config.timeouts.build,
            env=env,
        ),
    ]


class BuildRunner:
    """Runs build targets through a CommandRunner, retrying each up to ``attempts`` times."""

    def __init__(self, runner: CommandRunner, attempts: int = 1, retry_delay: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.runner = runner
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self.sleep = sleep

    def build(self, target: BuildTarget) -> BuildOutcome:
        """
        Build one target.

        Args:
            target: Target to build

        Returns:
            BuildOutcome with the last attempt's result
        """
        result: Optional[CommandResult] = None
        for attempt in range(1, self.attempts + 1):
            logger.info(f"🔨 Building {target.name} (attempt {attempt}/{self.attempts}): {' '.join(target.args)}")
            result = self.runner.run(target.args, cwd=target.cwd, timeout=target.timeout, env=target.env)
            if result.ok:
                logger.info(f"✅ {target.name} build finished in {result.duration_ms}ms")
                return BuildOutcome(target, result, attempt)
            logger.warning(f"{target.name} build failed (exit {result.exit_code})")
            if attempt < self.attempts and self.retry_delay > 0:
                logger.debug(f"Retrying {target.name} in {self.retry_delay}s...")
                self.sleep(self.retry_delay)
        logger.error(f"❌ {target.name} build failed after {self.attempts} attempt(s)")
        return BuildOutcome(target, result, self.attempts)

    def build_all(self, targets: List[BuildTarget]) -> List[BuildOutcome]:
        """Build targets in order, stopping at the first failure."""
        outcomes = []
        for target in targets:
            outcome = self.build(target)
            outcomes.append(outcome)
            if not outcome.ok:
                break
        return outcomes
