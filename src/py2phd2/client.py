"""
PHD2 client facade.

Owns the connection lifecycle, the background reader thread and the
session state, and exposes the guiding operations built on the generic
call mechanism.

Example:
    >>> with PHD2Client("localhost", instance=1) as phd2:
    ...     phd2.guide(settle_pixels=1.5, settle_time=10, settle_timeout=60)
    ...     while True:
    ...         progress = phd2.check_settling()
    ...         if progress.done:
    ...             break
    ...         time.sleep(1)
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .core.command_client import CommandClient
from .core.errors import DisconnectedError, ErrorCodes, NotSettlingError
from .core.protocol import AppStates
from .core.session_state import SessionState
from .core.socket_reader import EventDispatcher, SocketReader
from .core.tcp_connection import LineConnection
from .models.connection import (
    ConnectionConfig,
    ConnectionModel,
    ConnectionState,
    ConnectionStatus,
)
from .models.guiding import (
    GuideStarInfo,
    GuideStats,
    PHD2Status,
    SettleProgress,
    StarLostInfo,
)


class PHD2Client:
    """
    Client for one PHD2 instance.

    Two threads matter: caller threads issuing operations, and one reader
    thread per connection. Calls block the caller until PHD2 answers, the
    connection drops, or the call timeout elapses.
    """

    def __init__(
        self,
        host: str = "localhost",
        instance: int = 1,
        config: Optional[ConnectionConfig] = None
    ):
        """
        Initialize the client. No connection is made until connect().

        Args:
            host: Host running PHD2 (ignored when config is given)
            instance: PHD2 instance number (ignored when config is given)
            config: Full connection configuration
        """
        self.config = config or ConnectionConfig(host=host, instance=instance)
        self.logger = logging.getLogger(__name__)

        self._lifecycle_lock = threading.RLock()
        self._state = SessionState()
        self._connection = LineConnection()
        # Goes through the facade so a reconnect swaps the transport underneath
        self._command_client = CommandClient(
            write_line=self._write_line,
            is_connected=lambda: self.is_connected,
            condition=self._state.condition,
            call_timeout=self.config.call_timeout,
            poll_interval=self.config.poll_interval
        )
        self._dispatcher = EventDispatcher(self._state, self._command_client)
        self._reader: Optional[SocketReader] = None
        self.model = ConnectionModel()

    def _write_line(self, text: str) -> None:
        self._connection.write_line(text)

    # ========== Lifecycle ==========

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def instance(self) -> int:
        return self.config.instance

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected()

    def connect(self) -> None:
        """
        Connect to PHD2 and start the reader thread.

        Any previous session is disconnected first.

        Raises:
            DisconnectedError: If PHD2 cannot be reached
        """
        with self._lifecycle_lock:
            self.disconnect()

            port = self.config.port
            self.model.status = ConnectionStatus(
                state=ConnectionState.CONNECTING, host=self.host, port=port
            )

            if not self._connection.connect(self.host, port, timeout=self.config.connect_timeout):
                message = f"Could not connect to PHD2 instance {self.instance} on {self.host}"
                self.model.status = ConnectionStatus(
                    state=ConnectionState.ERROR, host=self.host, port=port, last_error=message
                )
                raise DisconnectedError(
                    message,
                    error_code=ErrorCodes.CONNECTION_REFUSED,
                    context={'host': self.host, 'port': port},
                    suggestions=[
                        "Check that PHD2 is running",
                        "Enable Tools > Enable Server in PHD2",
                        f"Check that instance {self.instance} listens on port {port}",
                    ]
                )

            self._state.reset()
            self._reader = SocketReader(
                self._connection,
                self._dispatcher,
                self._command_client,
                on_exit=self._on_reader_exit
            )
            self._reader.start()

            self.model.status = ConnectionStatus(
                state=ConnectionState.CONNECTED,
                host=self.host,
                port=port,
                connected_at=datetime.now()
            )
            self.logger.info(f"Connected to PHD2 instance {self.instance} on {self.host}:{port}")

    def disconnect(self) -> None:
        """
        Stop the reader thread and close the connection. Safe to call repeatedly.
        """
        with self._lifecycle_lock:
            reader = self._reader
            if reader is not None:
                reader.request_stop()
                self._connection.terminate()
                reader.join(timeout=self.config.join_timeout)
                self._reader = None

            self._connection.close()
            self._connection = LineConnection()

            if self.model.status.state != ConnectionState.DISCONNECTED:
                self.model.status = ConnectionStatus(state=ConnectionState.DISCONNECTED)
                self.logger.info("Disconnected from PHD2")

    def _on_reader_exit(self, stop_requested: bool) -> None:
        # Runs on the reader thread; only an unrequested exit is a lost connection
        if not stop_requested and self.model.status.state == ConnectionState.CONNECTED:
            self.logger.error("PHD2 connection lost")
            self.model.status = ConnectionStatus(
                state=ConnectionState.ERROR,
                host=self.host,
                port=self.config.port,
                last_error="PHD2 connection lost"
            )

    def dispose(self) -> None:
        self.disconnect()

    close = dispose

    def __enter__(self) -> "PHD2Client":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def get_connection_status(self) -> ConnectionStatus:
        return self.model.status

    # ========== Generic call ==========

    def call(self, method: str, params: Any = None) -> Any:
        """
        Issue a raw PHD2 JSON-RPC call.

        Returns:
            The response's result payload

        Raises:
            DisconnectedError, CallTimeoutError, ProtocolError
        """
        return self._command_client.call(method, params)

    def check_connected(self) -> None:
        if not self.is_connected:
            raise DisconnectedError("PHD2 Server disconnected")

    # ========== Event hooks ==========

    def add_event_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        """Register a callback run on the reader thread for every PHD2 event."""
        self._dispatcher.add_listener(listener)

    def remove_event_listener(self, listener: Callable[[Dict[str, Any]], None]) -> None:
        self._dispatcher.remove_listener(listener)

    # ========== Guiding ==========

    @staticmethod
    def _settle_param(settle_pixels: float, settle_time: float, settle_timeout: float) -> Dict[str, float]:
        return {
            "pixels": settle_pixels,
            "time": settle_time,
            "timeout": settle_timeout,
        }

    def guide(self, settle_pixels: float, settle_time: float, settle_timeout: float,
              recalibrate: bool = False) -> None:
        """
        Start guiding, followed by a settle phase.

        Progress is then polled with check_settling(). On failure the local
        settle record is cleared before the error propagates.
        """
        self.check_connected()
        settle = self._settle_param(settle_pixels, settle_time, settle_timeout)
        self._state.set_settle_px(settle_pixels)
        try:
            self.call("guide", [settle, recalibrate])
        except Exception:
            self._state.set_settle(None)
            raise
        self.logger.info(
            f"Guiding started (settle {settle_pixels}px for {settle_time}s, timeout {settle_timeout}s)"
        )

    def dither(self, dither_pixels: float, settle_pixels: float, settle_time: float,
               settle_timeout: float, ra_only: bool = False) -> None:
        """Dither by up to dither_pixels, followed by a settle phase."""
        self.check_connected()
        settle = self._settle_param(settle_pixels, settle_time, settle_timeout)
        self._state.set_settle_px(settle_pixels)
        try:
            self.call("dither", [dither_pixels, ra_only, settle])
        except Exception:
            self._state.set_settle(None)
            raise
        self.logger.info(f"Dither {dither_pixels}px requested")

    def is_settling(self) -> bool:
        """
        True while a settle record exists (active or finished but unread).

        Without a local record PHD2 is asked directly; when it reports
        settling, a placeholder record is created so check_settling() has
        something to report.
        """
        self.check_connected()
        if self._state.snapshot_settle() is not None:
            return True

        settling = bool(self.call("get_settling"))
        if settling:
            self._state.set_settle_if_absent(SettleProgress(done=False, distance=-1.0))
        return settling

    def check_settling(self) -> SettleProgress:
        """
        Report settle progress.

        A finished record is returned once and then cleared; an active one
        is returned as a snapshot and kept.

        Raises:
            NotSettlingError: If there is no settle record
        """
        self.check_connected()
        progress = self._state.take_settle()
        if progress is None:
            raise NotSettlingError()
        return progress

    def stop_capture(self) -> None:
        self.check_connected()
        self.call("stop_capture")

    def loop(self) -> None:
        self.check_connected()
        self.call("loop")

    def pause(self) -> None:
        self.check_connected()
        self.call("set_paused", True)

    def unpause(self) -> None:
        self.check_connected()
        self.call("set_paused", False)

    def set_paused(self, paused: bool, full: bool = False) -> None:
        """Pause guiding; ``full`` also stops looping exposures."""
        self.check_connected()
        self.call("set_paused", [paused, "full"] if full else [paused])

    def get_paused(self) -> bool:
        self.check_connected()
        return bool(self.call("get_paused"))

    # ========== State accessors ==========

    @property
    def app_state(self) -> str:
        return self._state.get_app_state()

    @property
    def avg_dist(self) -> float:
        return self._state.get_avg_dist()

    @property
    def stats(self) -> GuideStats:
        return self._state.snapshot_stats()

    @property
    def version(self) -> Optional[str]:
        return self._state.get_version()[0]

    @property
    def phd_subver(self) -> Optional[str]:
        return self._state.get_version()[1]

    @property
    def last_star_lost(self) -> Optional[StarLostInfo]:
        return self._state.snapshot_last_star_lost()

    @property
    def current_star(self) -> GuideStarInfo:
        return self._state.snapshot_current_star()

    def is_guiding(self) -> bool:
        return self._state.is_guiding()

    def get_status(self) -> PHD2Status:
        """Consistent snapshot of everything PHD2 has reported so far."""
        state = self._state
        with state.condition:
            return PHD2Status(
                app_state=state.app_state,
                avg_dist=state.avg_dist,
                stats=state.stats.copy(),
                version=state.version,
                phd_subver=state.phd_subver,
                is_connected=self.is_connected,
                is_guiding=state.app_state in (AppStates.GUIDING, AppStates.LOST_LOCK),
                is_settling=state.settle is not None,
                settle_progress=state.settle,
                last_star_lost=state.last_star_lost,
                current_star=state.current_star.copy()
            )

    def get_stats(self) -> Dict[str, Any]:
        """Combined reader, dispatcher and call statistics."""
        return {
            'reader': self._reader.get_stats() if self._reader else None,
            'dispatcher': self._dispatcher.get_stats(),
            'calls': self._command_client.get_stats(),
        }
