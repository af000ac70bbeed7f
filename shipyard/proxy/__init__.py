"""
Reverse proxy (nginx) configuration rendering and management.
"""

from .render import (
    ReverseProxyConfig, render_config, from_settings,
    development_config, production_config, config_for_domain,
)
from .manager import ReverseProxyManager, ConfigState

__all__ = [
    "ReverseProxyConfig",
    "render_config",
    "from_settings",
    "development_config",
    "production_config",
    "config_for_domain",
    "ReverseProxyManager",
    "ConfigState",
]
