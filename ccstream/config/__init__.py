"""Configuration loading (file, environment, defaults)."""

from __future__ import annotations

from ccstream.config.config import ConfigManager, get_config, init_config, set_config
from ccstream.models import Config

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "init_config",
    "set_config",
]
