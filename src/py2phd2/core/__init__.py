"""
Core layer for PHD2 communication.

This package contains the line transport, the JSON-RPC codec, the call
engine and the background reader that keeps session state current.
"""

from .accumulator import Accumulator
from .command_client import CommandClient
from .errors import (
    PHD2Error,
    DisconnectedError,
    ProtocolError,
    NotSettlingError,
    ConfigurationError,
    ValidationError,
    CallTimeoutError,
    ErrorCodes,
)
from .session_state import SessionState
from .socket_reader import EventDispatcher, SocketReader
from .tcp_connection import LineConnection

__all__ = [
    'Accumulator',
    'CommandClient',
    'SessionState',
    'EventDispatcher',
    'SocketReader',
    'LineConnection',
    # Errors
    'PHD2Error',
    'DisconnectedError',
    'ProtocolError',
    'NotSettlingError',
    'ConfigurationError',
    'ValidationError',
    'CallTimeoutError',
    'ErrorCodes',
]
