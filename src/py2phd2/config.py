"""
Settings loading for py2phd2.

Settings come from an optional YAML file, then environment overrides:

    host: localhost
    instance: 1
    call_timeout: 10.0
    log_level: INFO

PHD2_HOST and PHD2_INSTANCE override the file.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core.errors import ConfigurationError, ErrorCodes, wrap_external_error
from .models.connection import DEFAULT_BASE_PORT, ConnectionConfig

logger = logging.getLogger(__name__)

ENV_HOST = "PHD2_HOST"
ENV_INSTANCE = "PHD2_INSTANCE"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ClientSettings:
    """User-level settings for the PHD2 client and CLI."""
    host: str = "localhost"
    instance: int = 1
    base_port: int = DEFAULT_BASE_PORT
    connect_timeout: float = 2.0
    call_timeout: float = 10.0
    poll_interval: float = 1.0
    join_timeout: float = 5.0
    log_level: str = "INFO"

    def to_connection_config(self) -> ConnectionConfig:
        """
        Build the connection configuration.

        Raises:
            ConfigurationError: If the resulting configuration is invalid
        """
        config = ConnectionConfig(
            host=self.host,
            instance=self.instance,
            base_port=self.base_port,
            connect_timeout=self.connect_timeout,
            call_timeout=self.call_timeout,
            poll_interval=self.poll_interval,
            join_timeout=self.join_timeout,
        )
        is_valid, errors = config.validate()
        if not is_valid:
            raise ConfigurationError(
                f"Invalid PHD2 connection settings: {'; '.join(errors)}",
                suggestions=["Check the settings file and PHD2_* environment variables"]
            )
        return config


_CONVERTERS = {
    'host': str,
    'instance': int,
    'base_port': int,
    'connect_timeout': float,
    'call_timeout': float,
    'poll_interval': float,
    'join_timeout': float,
    'log_level': lambda value: str(value).upper(),
}


def _apply(values: Dict[str, Any], settings: ClientSettings, source: str) -> None:
    known = {f.name for f in fields(ClientSettings)}
    for key, raw in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{key}' from {source}")
            continue
        if isinstance(raw, bool) and key != 'host':
            raise ConfigurationError(f"Invalid value for '{key}': {raw!r}", setting_name=key)
        try:
            value = _CONVERTERS[key](raw)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid value for '{key}' in {source}: {raw!r}",
                setting_name=key,
                cause=e
            )
        setattr(settings, key, value)

    if settings.log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level: {settings.log_level}. Valid values are: {', '.join(LOG_LEVELS)}",
            setting_name='log_level'
        )


def load_settings(path: Optional[Union[str, Path]] = None,
                  environ: Optional[Dict[str, str]] = None) -> ClientSettings:
    """
    Load client settings.

    Args:
        path: YAML settings file. A missing file yields the defaults
        environ: Environment mapping, os.environ when omitted

    Returns:
        ClientSettings with file values and environment overrides applied

    Raises:
        ConfigurationError: If the file is unreadable or a value is invalid
    """
    settings = ClientSettings()
    environ = os.environ if environ is None else environ

    if path is not None:
        path = Path(path)
        if path.exists():
            try:
                with open(path, 'r') as f:
                    data = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise wrap_external_error(
                    e,
                    f"Could not read settings file {path}: {e}",
                    ConfigurationError,
                    error_code=ErrorCodes.CONFIG_UNREADABLE,
                    path=str(path)
                )

            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise ConfigurationError(f"Settings file {path} must contain a mapping")

            _apply(data, settings, str(path))
            logger.info(f"Loaded PHD2 settings from {path}")
        else:
            logger.warning(f"Settings file {path} not found, using defaults")

    overrides = {}
    if environ.get(ENV_HOST):
        overrides['host'] = environ[ENV_HOST]
    if environ.get(ENV_INSTANCE):
        overrides['instance'] = environ[ENV_INSTANCE]
    if overrides:
        _apply(overrides, settings, "environment")
        logger.debug(f"Environment overrides: {overrides}")

    return settings
