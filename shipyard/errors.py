"""
Exception taxonomy for pipeline failures.
"""

from typing import Any, Dict, List, Optional, Sequence


class ShipyardError(Exception):
    """Base class for every failure the pipeline knows how to report."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        return self.message


class ConfigurationError(ShipyardError):
    """Run configuration is malformed or violates an invariant."""


class WorkspaceValidationError(ShipyardError):
    """One or more workspace preconditions are not met."""

    def __init__(self, violations: Sequence[str], root: Optional[str] = None):
        self.violations: List[str] = list(violations)
        message = f"Workspace validation failed with {len(self.violations)} violation(s): " + "; ".join(self.violations)
        super().__init__(message, {"workspace_root": root, "violations": self.violations})


class TransformationError(ShipyardError):
    """Source conversion left one or more files unconverted."""

    def __init__(self, message: str, failed_files: Optional[Sequence[str]] = None):
        self.failed_files: List[str] = list(failed_files or [])
        super().__init__(message, {"failed_files": self.failed_files})


class ExternalCommandError(ShipyardError):
    """An external command exited non-zero, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        args: Optional[Sequence[str]] = None,
        exit_code: Optional[int] = None,
        output: str = "",
        timed_out: bool = False,
    ):
        self.command: List[str] = list(args or [])
        self.exit_code = exit_code
        self.output = output
        self.timed_out = timed_out
        super().__init__(message, {
            "command": " ".join(self.command),
            "exit_code": exit_code,
            "timed_out": timed_out,
        })


class ConfigValidationError(ExternalCommandError):
    """The reverse proxy rejected a configuration file during its dry run."""

    def __init__(self, path: str, output: str, args: Optional[Sequence[str]] = None, exit_code: Optional[int] = None):
        self.path = path
        super().__init__(
            f"Reverse proxy configuration {path} failed validation",
            args=args,
            exit_code=exit_code,
            output=output,
        )
        self.context["file"] = path


class BackupNotFoundError(ShipyardError):
    """A requested configuration backup does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Backup file not found: {path}", {"file": path})
