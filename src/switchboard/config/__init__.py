"""Configuration model and loader for switchboard."""

from switchboard.config.models import SwitchboardConfig
from switchboard.config.parser import ConfigError, load_config

__all__ = [
    "ConfigError",
    "SwitchboardConfig",
    "load_config",
]
