"""
Connection models for py2phd2.

Classes:
    ConnectionConfig: Immutable configuration for a PHD2 connection
    ConnectionState: Enumeration of connection states
    ConnectionStatus: Current status of a connection
    ConnectionModel: Observable model for connection state management
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

# PHD2 instance 1 listens on 4400, instance 2 on 4401, ...
DEFAULT_BASE_PORT = 4400


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Immutable configuration for a PHD2 connection.

    Attributes:
        host: Hostname or IP address of the machine running PHD2
        instance: PHD2 instance number, starting at 1
        base_port: Port of instance 1
        connect_timeout: TCP connect timeout in seconds
        call_timeout: Total time to wait for a call response
        poll_interval: Slice length for the response wait, so a lost
            connection is noticed before call_timeout elapses
        join_timeout: Bounded wait for the reader thread on disconnect

    Example:
        >>> config = ConnectionConfig("localhost", instance=2)
        >>> config.port
        4401
    """

    host: str = "localhost"
    instance: int = 1
    base_port: int = DEFAULT_BASE_PORT
    connect_timeout: float = 2.0
    call_timeout: float = 10.0
    poll_interval: float = 1.0
    join_timeout: float = 5.0

    @property
    def port(self) -> int:
        return self.base_port + self.instance - 1

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate the connection configuration.

        Returns:
            Tuple of (is_valid, list_of_error_messages)

        Example:
            >>> ConnectionConfig("", instance=0).validate()
            (False, ['Host cannot be empty', 'Instance must be >= 1: 0'])
        """
        errors = []

        if not isinstance(self.host, str) or not self.host.strip():
            errors.append("Host cannot be empty")

        if not isinstance(self.instance, int) or self.instance < 1:
            errors.append(f"Instance must be >= 1: {self.instance}")
        elif not (1 <= self.port <= 65535):
            errors.append(f"Port out of range (1-65535): {self.port}")

        for name in ('connect_timeout', 'call_timeout', 'poll_interval', 'join_timeout'):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name} must be positive: {value}")

        return (len(errors) == 0, errors)


class ConnectionState(Enum):
    """
    Enumeration of possible connection states.

    States:
        DISCONNECTED: Not connected to PHD2
        CONNECTING: Connection attempt in progress
        CONNECTED: Connected and reader running
        ERROR: Connection attempt failed or the connection was lost
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ConnectionStatus:
    """
    Current status of a connection.

    Attributes:
        state: Current connection state
        host: Host if connected, None otherwise
        port: Port number if connected, None otherwise
        connected_at: Timestamp when connection was established
        last_error: Last error message if state is ERROR
    """

    state: ConnectionState
    host: Optional[str] = None
    port: Optional[int] = None
    connected_at: Optional[datetime] = None
    last_error: Optional[str] = None


class ConnectionModel:
    """
    Observable model for connection state management.

    Observers are called with the new ConnectionStatus whenever it changes,
    on whichever thread made the change.

    Example:
        >>> model = ConnectionModel()
        >>> model.add_observer(lambda status: print(status.state.value))
        >>> model.status = ConnectionStatus(state=ConnectionState.CONNECTED)
        connected
    """

    def __init__(self):
        self._status = ConnectionStatus(state=ConnectionState.DISCONNECTED)
        self._observers: List[Callable[[ConnectionStatus], None]] = []

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @status.setter
    def status(self, new_status: ConnectionStatus) -> None:
        self._status = new_status
        self._notify()

    def add_observer(self, callback: Callable[[ConnectionStatus], None]) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def remove_observer(self, callback: Callable[[ConnectionStatus], None]) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self._status)
