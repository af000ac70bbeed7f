"""
Error classification for pipeline phases.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from ..errors import ExternalCommandError, ShipyardError
from .report import ErrorRecord, Phase, Severity

# Phases whose failures never abort a run.
BEST_EFFORT_PHASES: FrozenSet[Phase] = frozenset({
    Phase.ORGANIZE_OUTPUT,
    Phase.LOG_ROTATION,
    Phase.MONITORING,
    Phase.HEALTH_CHECK,
})


@dataclass
class HintRule:
    """A pattern in failure output that maps to an operator hint."""
    id: str
    name: str
    regexes: List[str]
    hint: str


class ErrorClassifier:
    """Turns exceptions raised inside a phase into ErrorRecords."""

    def __init__(self):
        self.rules = self._load_default_rules()

    def _load_default_rules(self) -> List[HintRule]:
        return [
            HintRule(
                id="command_not_found",
                name="Executable Not Found",
                regexes=[r'command not found', r'No such file or directory: \'(npm|nginx|pm2)'],
                hint="Install the missing tool or fix its path in shipyard.yml",
            ),
            HintRule(
                id="timeout",
                name="Command Timed Out",
                regexes=[r'timed out', r'ETIMEDOUT'],
                hint="Raise the matching value under 'timeouts' or investigate the hang",
            ),
            HintRule(
                id="typescript_error",
                name="TypeScript Compilation Failed",
                regexes=[r'error TS\d+:', r'Found \d+ errors?\b'],
                hint="Fix the reported type errors; run the build command locally to reproduce",
            ),
            HintRule(
                id="module_not_found",
                name="Node Module Not Found",
                regexes=[r'Error: Cannot find module', r'Module not found:', r'ERR_MODULE_NOT_FOUND'],
                hint="Run 'npm install' and check relative import paths",
            ),
            HintRule(
                id="esm_syntax",
                name="ESM Syntax In CommonJS",
                regexes=[r'Cannot use import statement outside a module', r'ERR_REQUIRE_ESM',
                         r'residual (import|export|dynamic)'],
                hint="Enable the source transform or convert the listed files to CommonJS",
            ),
            HintRule(
                id="npm_error",
                name="npm Script Failed",
                regexes=[r'npm ERR!', r'npm error', r'Missing script:'],
                hint="Check package.json scripts and the lockfile",
            ),
            HintRule(
                id="out_of_memory",
                name="Out Of Memory",
                regexes=[r'JavaScript heap out of memory', r'ENOMEM', r'Cannot allocate memory'],
                hint="Increase NODE_OPTIONS=--max-old-space-size or free memory on the host",
            ),
            HintRule(
                id="disk_full",
                name="Disk Full",
                regexes=[r'ENOSPC', r'No space left on device', r'Insufficient disk space'],
                hint="Free disk space; old build output and logs are the usual suspects",
            ),
            HintRule(
                id="address_in_use",
                name="Port Already In Use",
                regexes=[r'EADDRINUSE', r'Address already in use', r'bind\(\) to .* failed'],
                hint="Stop the process holding the port or change the listen port",
            ),
            HintRule(
                id="permission_denied",
                name="Permission Denied",
                regexes=[r'Permission denied', r'EACCES', r'Operation not permitted'],
                hint="Check file permissions; nginx and pm2 operations may need elevated privileges",
            ),
            HintRule(
                id="nginx_config",
                name="nginx Rejected Configuration",
                regexes=[r'nginx: \[emerg\]', r'configuration file .* test failed'],
                hint="Inspect the generated file; restore the previous backup with 'shipyard proxy restore'",
            ),
            HintRule(
                id="missing_path",
                name="Missing Workspace Path",
                regexes=[r'Missing required path', r'Missing build output'],
                hint="Run from the project root and make sure the build produced every output directory",
            ),
        ]

    def match_hint(self, text: str) -> Optional[HintRule]:
        """Return the first hint rule whose pattern appears in ``text``."""
        for rule in self.rules:
            for pattern in rule.regexes:
                if re.search(pattern, text, re.IGNORECASE):
                    return rule
        return None

    def severity_for(self, phase: Phase) -> Severity:
        return Severity.RECOVERABLE if phase in BEST_EFFORT_PHASES else Severity.FATAL

    def classify(self, error: BaseException, phase: Phase, context: Optional[Dict[str, Any]] = None) -> ErrorRecord:
        """
        Classify an exception raised inside ``phase``.

        Args:
            error: The exception
            phase: Phase that raised it
            context: Extra context (workspace root, file, command)

        Returns:
            ErrorRecord with severity, kind and, when recognizable, a hint
        """
        merged: Dict[str, Any] = {}
        if isinstance(error, ShipyardError):
            merged.update({k: v for k, v in error.context.items() if v not in (None, "", [])})
        merged.update(context or {})

        text = str(error)
        if isinstance(error, ExternalCommandError) and error.output:
            text = f"{text}\n{error.output}"
            merged.setdefault("output_tail", error.output.splitlines()[-20:])
        rule = self.match_hint(text)

        return ErrorRecord(
            phase=phase,
            message=str(error) or error.__class__.__name__,
            severity=self.severity_for(phase),
            kind=error.__class__.__name__,
            context=merged,
            reason_code=rule.id if rule else None,
            hint=rule.hint if rule else None,
        )

    def advisory(self, phase: Phase, message: str, context: Optional[Dict[str, Any]] = None,
                 kind: str = "Advisory") -> ErrorRecord:
        """Build a recoverable record for a condition that is reported but never escalated."""
        rule = self.match_hint(message)
        return ErrorRecord(
            phase=phase,
            message=message,
            severity=Severity.RECOVERABLE,
            kind=kind,
            context=dict(context or {}),
            reason_code=rule.id if rule else None,
            hint=rule.hint if rule else None,
        )

    def add_custom_rule(self, rule: HintRule):
        self.rules.insert(0, rule)
