"""
Run configuration: a frozen snapshot built once per invocation.

The configuration is read from ``shipyard.yml`` in the workspace (if present),
then dotted ``key=value`` overrides from the command line are applied on top.
Invariants are checked when the snapshot is constructed, so a
``RunConfiguration`` that exists is always a valid one.
"""

from __future__ import annotations

import dataclasses
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "shipyard.yml"


@dataclass(frozen=True)
class Timeouts:
    """Per-call timeouts, in seconds."""
    build: float = 300.0
    supervisor: float = 60.0
    proxy: float = 30.0
    health: float = 10.0


@dataclass(frozen=True)
class RetryLimits:
    build_attempts: int = 1
    retry_delay: float = 2.0


@dataclass(frozen=True)
class BuildSettings:
    backend_command: str = "npm run build:backend:production"
    frontend_command: str = "npm run build:production"
    backend_dir: str = "."
    frontend_dir: str = "."
    source_dir: str = "src"
    output_dir: str = "dist"
    min_free_mb: int = 100


@dataclass(frozen=True)
class TransformSettings:
    enabled: bool = False
    paths: Tuple[str, ...] = ("src/shared",)
    extensions: Tuple[str, ...] = (".js", ".mjs", ".jsx", ".ts", ".tsx")
    inject_shim: bool = True
    backup: bool = False
    keep_partial: bool = False
    rename_to_cjs: bool = False
    min_output_chars: int = 10


@dataclass(frozen=True)
class ProxySettings:
    server_name: str = "localhost"
    listen_port: int = 80
    root: str = "/usr/share/nginx/html"
    index: str = "index.html"
    backend_url: str = "http://localhost"
    backend_port: int = 5000
    frontend_url: str = "http://localhost"
    frontend_port: int = 3000
    production: bool = True
    enable_gzip: bool = True
    enable_security: bool = True
    enable_caching: bool = True
    enable_proxy: bool = True
    tls_cert_path: Optional[str] = None
    tls_key_path: Optional[str] = None
    config_path: str = "/etc/nginx/nginx.conf"
    backup_dir: Optional[str] = None
    binary: str = "nginx"


@dataclass(frozen=True)
class SupervisorSettings:
    binary: str = "pm2"
    manifest: str = "ecosystem.config.cjs"
    environment: str = "production"
    process_group: str = "all"
    log_max_size: str = "10M"
    log_retain: int = 7


def _require_number(name: str, value: Any, integer: bool = False) -> None:
    kinds = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        expected = "an integer" if integer else "a number"
        raise ConfigurationError(f"{name} must be {expected}, got {value!r}")


def _require_command(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigurationError(f"{name} must be a string, got {value!r}")
    try:
        args = shlex.split(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} cannot be parsed: {e}") from e
    if not args:
        raise ConfigurationError(f"{name} must not be empty")


@dataclass(frozen=True)
class RunConfiguration:
    """Everything a pipeline run needs to know, fixed for the whole run."""
    workspace: str = "."
    timeouts: Timeouts = field(default_factory=Timeouts)
    retries: RetryLimits = field(default_factory=RetryLimits)
    build: BuildSettings = field(default_factory=BuildSettings)
    transform: TransformSettings = field(default_factory=TransformSettings)
    proxy: ProxySettings = field(default_factory=ProxySettings)
    supervisor: SupervisorSettings = field(default_factory=SupervisorSettings)
    health_endpoints: Tuple[Tuple[str, str], ...] = ()
    validate_after_build: bool = True
    cleanup_before_build: bool = False
    enable_reverse_proxy: bool = False
    enable_tls: bool = False
    setup_log_rotation: bool = True
    setup_monitoring: bool = False
    restore_proxy_on_failure: bool = False
    record_events: bool = True

    def __post_init__(self):
        for name, value in dataclasses.asdict(self.timeouts).items():
            _require_number(f"timeouts.{name}", value)
            if value <= 0:
                raise ConfigurationError(f"timeouts.{name} must be positive, got {value}")
        for name in ("listen_port", "backend_port", "frontend_port"):
            port = getattr(self.proxy, name)
            _require_number(f"proxy.{name}", port, integer=True)
            if not 1 <= port <= 65535:
                raise ConfigurationError(f"proxy.{name} out of range: {port}")
        if self.enable_tls and not (self.proxy.tls_cert_path and self.proxy.tls_key_path):
            raise ConfigurationError("enable_tls requires proxy.tls_cert_path and proxy.tls_key_path")
        _require_number("retries.build_attempts", self.retries.build_attempts, integer=True)
        if self.retries.build_attempts < 1:
            raise ConfigurationError("retries.build_attempts must be at least 1")
        _require_number("retries.retry_delay", self.retries.retry_delay)
        if self.retries.retry_delay < 0:
            raise ConfigurationError("retries.retry_delay must not be negative")
        _require_number("build.min_free_mb", self.build.min_free_mb, integer=True)
        if self.build.min_free_mb < 0:
            raise ConfigurationError("build.min_free_mb must not be negative")
        _require_number("transform.min_output_chars", self.transform.min_output_chars, integer=True)
        _require_number("supervisor.log_retain", self.supervisor.log_retain, integer=True)
        for name in ("backend_command", "frontend_command"):
            _require_command(f"build.{name}", getattr(self.build, name))

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace).resolve()

    @property
    def output_path(self) -> Path:
        return self.workspace_path / self.build.output_dir

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


_SECTIONS = {
    "timeouts": Timeouts,
    "retries": RetryLimits,
    "build": BuildSettings,
    "transform": TransformSettings,
    "proxy": ProxySettings,
    "supervisor": SupervisorSettings,
}


def _build_section(name: str, cls, data: Any):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in data.items()}
    try:
        return cls(**values)
    except TypeError as e:
        raise ConfigurationError(f"Invalid '{name}' section: {e}") from e


def config_from_dict(data: Dict[str, Any]) -> RunConfiguration:
    """
    Build a RunConfiguration from a plain mapping (as loaded from YAML).

    Args:
        data: Mapping with top-level flags and optional section mappings

    Returns:
        RunConfiguration

    Raises:
        ConfigurationError: On unknown keys or violated invariants
    """
    known = {f.name for f in dataclasses.fields(RunConfiguration)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    kwargs: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _SECTIONS:
            kwargs[key] = _build_section(key, _SECTIONS[key], value)
        elif key == "health_endpoints":
            kwargs[key] = _parse_endpoints(value)
        else:
            kwargs[key] = value
    return RunConfiguration(**kwargs)


def _parse_endpoints(value: Any) -> Tuple[Tuple[str, str], ...]:
    endpoints = []
    for item in value or []:
        if isinstance(item, dict) and "name" in item and "url" in item:
            endpoints.append((str(item["name"]), str(item["url"])))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            endpoints.append((str(item[0]), str(item[1])))
        else:
            raise ConfigurationError(f"Invalid health endpoint entry: {item!r}")
    return tuple(endpoints)


def apply_overrides(data: Dict[str, Any], overrides: Iterable[str]) -> Dict[str, Any]:
    """Apply dotted ``section.key=value`` overrides; values are parsed as YAML scalars."""
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    for override in overrides:
        if "=" not in override:
            raise ConfigurationError(f"Override must be key=value: {override}")
        key, raw = override.split("=", 1)
        value = yaml.safe_load(raw) if raw else ""
        parts = key.strip().split(".")
        if len(parts) == 1:
            merged[parts[0]] = value
        elif len(parts) == 2:
            section = merged.setdefault(parts[0], {})
            if not isinstance(section, dict):
                raise ConfigurationError(f"Cannot override '{key}': '{parts[0]}' is not a section")
            section[parts[1]] = value
        else:
            raise ConfigurationError(f"Override key too deep: {key}")
    return merged


def load_config(
    path: Optional[str] = None,
    workspace: Optional[str] = None,
    overrides: Iterable[str] = (),
) -> RunConfiguration:
    """
    Load the run configuration.

    Args:
        path: Explicit YAML file; defaults to shipyard.yml in the workspace
        workspace: Workspace root; overrides the file's ``workspace`` key
        overrides: Dotted key=value pairs applied last

    Returns:
        RunConfiguration

    Raises:
        ConfigurationError: If the file is unreadable, malformed, or invalid
    """
    root = Path(workspace or ".")
    config_file = Path(path) if path else root / DEFAULT_CONFIG_FILE

    data: Dict[str, Any] = {}
    if config_file.exists():
        try:
            with open(config_file, "r") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read {config_file}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_file} must contain a mapping")
        data = loaded or {}
        logger.debug(f"Loaded configuration from {config_file}")
    elif path:
        raise ConfigurationError(f"Configuration file not found: {config_file}")

    if workspace is not None:
        data["workspace"] = str(workspace)

    data = apply_overrides(data, overrides)
    return config_from_dict(data)
