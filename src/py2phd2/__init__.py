# py2phd2 package
"""Python client for the PHD2 guiding application's event server."""

__version__ = "0.1.0"

from .client import PHD2Client
from .core.errors import (
    PHD2Error,
    DisconnectedError,
    ProtocolError,
    NotSettlingError,
    ConfigurationError,
    ValidationError,
    CallTimeoutError,
)
from .models.connection import ConnectionConfig
from .models.guiding import GuideStats, SettleProgress

__all__ = [
    "PHD2Client",
    "ConnectionConfig",
    "GuideStats",
    "SettleProgress",
    "PHD2Error",
    "DisconnectedError",
    "ProtocolError",
    "NotSettlingError",
    "ConfigurationError",
    "ValidationError",
    "CallTimeoutError",
]
