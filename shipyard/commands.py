"""
External command execution boundary.

Every external tool (npm, nginx, pm2) is invoked through a ``CommandRunner``.
The real implementation shells out with ``subprocess``; tests inject a fake
that records calls and returns canned results.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .errors import ExternalCommandError

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of one external command."""
    args: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout.rstrip(), self.stderr.rstrip()) if part)

    def tail(self, lines: int = 40) -> List[str]:
        return self.output.splitlines()[-lines:]

    def raise_for_status(self, message: Optional[str] = None) -> "CommandResult":
        """
        Raise ExternalCommandError if the command did not succeed.

        Args:
            message: Optional message; defaults to a description of the command

        Returns:
            self, for chaining
        """
        if self.ok:
            return self
        if message is None:
            command = " ".join(self.args)
            if self.timed_out:
                message = f"Command timed out: {command}"
            else:
                message = f"Command failed with exit code {self.exit_code}: {command}"
        raise ExternalCommandError(
            message,
            args=self.args,
            exit_code=self.exit_code,
            output=self.output,
            timed_out=self.timed_out,
        )


class CommandRunner:
    """Interface for running external commands."""

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        raise NotImplementedError


class SubprocessRunner(CommandRunner):
    """Runs commands with subprocess, capturing output."""

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        A non-zero exit, a timeout, or a missing executable is reported in the
        returned CommandResult; this method does not raise for them.

        Args:
            args: Command and arguments
            cwd: Working directory
            timeout: Seconds before the process is killed
            env: Extra environment variables merged over os.environ

        Returns:
            CommandResult
        """
        args = list(args)
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        logger.debug(f"Running: {' '.join(args)} (cwd={cwd}, timeout={timeout})")
        start = time.monotonic()
        try:
            completed = subprocess.run(
                args,
                cwd=cwd,
                env=full_env,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                args=args,
                exit_code=EXIT_TIMEOUT,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr) or f"Timed out after {timeout}s",
                duration_ms=_elapsed_ms(start),
                timed_out=True,
            )
        except FileNotFoundError as e:
            return CommandResult(
                args=args,
                exit_code=EXIT_NOT_FOUND,
                stderr=f"{args[0]}: command not found ({e})",
                duration_ms=_elapsed_ms(start),
            )
        except PermissionError as e:
            return CommandResult(
                args=args,
                exit_code=126,
                stderr=f"{args[0]}: Permission denied ({e})",
                duration_ms=_elapsed_ms(start),
            )

        return CommandResult(
            args=args,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=_elapsed_ms(start),
        )


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
