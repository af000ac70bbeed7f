"""
Versioned management of the reverse proxy configuration file.

Lifecycle: NO_CONFIG -> GENERATED -> VALIDATED -> APPLIED, with backups taken
before any overwrite. When a freshly written file fails validation it is
left in place; restoring a backup is always an explicit call.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..commands import CommandResult, CommandRunner
from ..errors import BackupNotFoundError, ConfigValidationError
from .render import ReverseProxyConfig, render_config

logger = logging.getLogger(__name__)


class ConfigState(Enum):
    NO_CONFIG = "no_config"
    GENERATED = "generated"
    VALIDATED = "validated"
    APPLIED = "applied"


class ReverseProxyManager:
    """Generates, backs up, validates, applies and restores the nginx config."""

    def __init__(
        self,
        runner: CommandRunner,
        config_path: str,
        backup_dir: Optional[str] = None,
        binary: str = "nginx",
        timeout: float = 30.0,
    ):
        self.runner = runner
        self.config_path = Path(config_path)
        self.backup_dir = Path(backup_dir) if backup_dir else self.config_path.parent
        self.binary = binary
        self.timeout = timeout
        self.state = ConfigState.NO_CONFIG
        self.backed_up = False
        self.last_backup: Optional[Path] = None

    def generate(self, cfg: ReverseProxyConfig) -> str:
        text = render_config(cfg)
        self.state = ConfigState.GENERATED
        return text

    def backup(self, path: Optional[str] = None) -> Optional[Path]:
        """
        Copy the current config file to a timestamped backup.

        Args:
            path: Config file; defaults to the managed path

        Returns:
            Path of the backup, or None when there is no file to back up
        """
        source = Path(path) if path else self.config_path
        if not source.exists():
            logger.debug(f"No existing config at {source}; nothing to back up")
            return None

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.backup_dir / f"{source.name}.backup.{stamp}"
        counter = 1
        while target.exists():
            target = self.backup_dir / f"{source.name}.backup.{stamp}.{counter}"
            counter += 1

        target.write_bytes(source.read_bytes())
        self.backed_up = True
        self.last_backup = target
        logger.info(f"💾 Backed up {source} to {target}")
        return target

    def validate(self, path: Optional[str] = None) -> CommandResult:
        """Dry-run the proxy against ``path``; never touches the running proxy."""
        target = str(Path(path) if path else self.config_path)
        result = self.runner.run([self.binary, "-t", "-c", target], timeout=self.timeout)
        if result.ok:
            if self.state is ConfigState.GENERATED:
                self.state = ConfigState.VALIDATED
            logger.info(f"✅ nginx accepted {target}")
        else:
            logger.error(f"❌ nginx rejected {target}: {result.output}")
        return result

    def apply(self, text: str, path: Optional[str] = None) -> Optional[Path]:
        """
        Write ``text`` to the config file, backing up any existing file first,
        then validate it.

        A file that fails validation stays in place and the state does not
        advance; call ``restore`` to roll back.

        Returns:
            Backup path, if an existing file was backed up

        Raises:
            ConfigValidationError: If the written file fails validation
        """
        target = Path(path) if path else self.config_path
        backup_path = self.backup(str(target))

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        self.state = ConfigState.GENERATED
        logger.info(f"📝 Wrote proxy configuration to {target}")

        result = self.validate(str(target))
        if not result.ok:
            raise ConfigValidationError(str(target), result.output, args=result.args, exit_code=result.exit_code)

        self.state = ConfigState.APPLIED
        return backup_path

    def restore(self, backup_path: str, path: Optional[str] = None) -> None:
        """
        Copy a backup over the config file.

        Raises:
            BackupNotFoundError: If the backup does not exist
        """
        source = Path(backup_path)
        if not source.is_file():
            raise BackupNotFoundError(str(source))
        target = Path(path) if path else self.config_path
        target.write_bytes(source.read_bytes())
        self.state = ConfigState.APPLIED
        logger.info(f"↩️  Restored {target} from {source}")

    def reload(self) -> CommandResult:
        """Ask the running proxy to reload its configuration."""
        result = self.runner.run([self.binary, "-s", "reload"], timeout=self.timeout)
        if result.ok:
            logger.info("🔄 nginx reloaded")
        else:
            logger.error(f"nginx reload failed: {result.output}")
        return result

    def list_backups(self) -> List[Path]:
        """Backups of the managed file, oldest first."""
        if not self.backup_dir.exists():
            return []
        prefix = f"{self.config_path.name}.backup."
        return sorted(p for p in self.backup_dir.iterdir() if p.is_file() and p.name.startswith(prefix))
