"""Configuration loading for ccstream.

Values are layered: model defaults, then a ``ccstream.toml`` file, then
``CCSTREAM_*`` environment variables. Command line options are applied on
top by the CLI.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml
from pydantic import ValidationError as PydanticValidationError

from ccstream.models import Config
from ccstream.utils.exceptions import ConfigurationError
from ccstream.utils.logging_config import setup_logging

CONFIG_FILE_NAME = "ccstream.toml"


# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    # Server
    "CCSTREAM_HOST": "server.host",
    "CCSTREAM_PORT": "server.port",
    "CCSTREAM_STATIC_DIR": "server.static_dir",
    "CCSTREAM_STREAM_CHUNK_SIZE": "server.stream_chunk_size",
    # Streaming
    "CCSTREAM_URGENT_WINDOW_BYTES": "streaming.urgent_window_bytes",
    "CCSTREAM_MAX_URGENT_PIECES": "streaming.max_urgent_pieces",
    "CCSTREAM_METADATA_TIMEOUT": "streaming.metadata_timeout",
    # Engine
    "CCSTREAM_TEMP_DIR": "engine.temp_dir",
    "CCSTREAM_LISTEN_INTERFACES": "engine.listen_interfaces",
    "CCSTREAM_UPLOAD_RATE_LIMIT": "engine.upload_rate_limit",
    "CCSTREAM_SEQUENTIAL_DOWNLOAD": "engine.sequential_download",
    "CCSTREAM_PIECE_POLL_INTERVAL": "engine.piece_poll_interval",
    "CCSTREAM_DELETE_TIMEOUT": "engine.delete_timeout",
    # Trackers
    "CCSTREAM_TRACKERS_FILE": "trackers.trackers_file",
    "CCSTREAM_TRACKERS_URL": "trackers.remote_url",
    "CCSTREAM_FETCH_REMOTE_TRACKERS": "trackers.fetch_remote",
    # Observability
    "CCSTREAM_LOG_LEVEL": "observability.log_level",
    "CCSTREAM_LOG_FILE": "observability.log_file",
    "CCSTREAM_STRUCTURED_LOGGING": "observability.structured_logging",
}

# Config paths that must stay strings even when the value looks numeric
_STRING_PATHS = frozenset(
    {
        "server.host",
        "server.static_dir",
        "engine.temp_dir",
        "engine.listen_interfaces",
        "trackers.trackers_file",
        "trackers.remote_url",
        "observability.log_level",
        "observability.log_file",
    }
)

_TRUE_VALUES = frozenset({"true", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "no", "off"})

_config_manager: ConfigManager | None = None

logger = logging.getLogger(__name__)


def parse_env_value(raw: str, path: str) -> Any:
    """Convert an environment string for config ``path`` to bool, int or float where it looks like one."""
    if path in _STRING_PATHS:
        return raw
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    for convert in (int, float):
        try:
            return convert(raw)
        except ValueError:
            continue
    return raw


def environment_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Nested config dict built from the ``CCSTREAM_*`` variables that are set."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for env_name, path in ENV_MAPPINGS.items():
        if env_name not in environ:
            continue
        section, key = path.split(".", 1)
        overrides.setdefault(section, {})[key] = parse_env_value(environ[env_name], path)
    return overrides


def merge_sections(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_sections(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Loads and validates the configuration; optionally applies its logging section."""

    def __init__(self, config_file: str | Path | None = None, configure_logging: bool = True):
        """Load configuration.

        Args:
            config_file: TOML file to read; searched for when None
            configure_logging: apply the observability section to logging

        Raises:
            ConfigurationError: unreadable file or invalid values

        """
        self.config_file = Path(config_file) if config_file else self.find_config_file()
        self.config = self._load()
        if configure_logging:
            setup_logging(self.config.observability)

    @staticmethod
    def find_config_file() -> Path | None:
        """First existing config file in the working directory or the user's home."""
        home = Path.home()
        for candidate in (
            Path.cwd() / CONFIG_FILE_NAME,
            home / ".config" / "ccstream" / CONFIG_FILE_NAME,
            home / f".{CONFIG_FILE_NAME}",
        ):
            if candidate.is_file():
                return candidate
        return None

    def _read_file(self) -> dict[str, Any]:
        if self.config_file is None:
            return {}
        try:
            return toml.loads(self.config_file.read_text(encoding="utf-8"))
        except (OSError, toml.TomlDecodeError) as e:
            msg = f"Failed to load config file {self.config_file}: {e}"
            raise ConfigurationError(msg) from e

    def _load(self) -> Config:
        data = merge_sections(self._read_file(), environment_overrides())
        try:
            return Config.model_validate(data)
        except PydanticValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def export(self) -> str:
        """Current configuration as TOML (unset optional values omitted)."""
        return toml.dumps(self.config.model_dump(mode="json", exclude_none=True))


def get_config() -> Config:
    """The global configuration, loaded on first use."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Load configuration and make it the global one."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    logger.debug("Configuration loaded from %s", _config_manager.config_file or "defaults")
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration and re-apply its logging section."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(configure_logging=False)
    _config_manager.config = new_config
    setup_logging(new_config.observability)
