"""
TCP line transport for PHD2 communication.

PHD2 speaks newline-terminated JSON over a single TCP socket. This module
owns that socket and exposes line-based read/write plus an abrupt
terminate() that unblocks a reader parked in another thread.

Example:
    >>> connection = LineConnection()
    >>> if connection.connect("localhost", 4400):
    ...     connection.write_line('{"method": "get_app_state", "id": 1}')
    ...     line = connection.read_line()
    >>> connection.close()
"""

import logging
import socket
import threading
from typing import BinaryIO, Optional

from .errors import DisconnectedError, ErrorCodes

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\r\n"


class LineConnection:
    """
    Manages the TCP socket connection to a PHD2 instance.

    All reads happen on the reader thread; writes come from caller threads
    and are serialized by a lock. terminate() may be called from any thread.
    """

    def __init__(self):
        self._socket: Optional[socket.socket] = None
        self._reader: Optional[BinaryIO] = None
        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._connected = False


    def connect(self, host: str, port: int, timeout: float = 2.0) -> bool:
        """
        Open a TCP connection to PHD2.

        Args:
            host: Hostname or IP address of the PHD2 machine
            port: PHD2 event server port (4400 + instance - 1)
            timeout: Connection timeout in seconds

        Returns:
            True on success, False if the connection could not be opened
        """
        with self._state_lock:
            if self._connected:
                logger.warning("Already connected. Closing previous socket first.")
                self._close_unsafe()

            try:
                logger.info(f"Connecting to PHD2 at {host}:{port}")
                sock = socket.create_connection((host, port), timeout=timeout)
                # Reads block until data arrives or terminate() shuts the socket down
                sock.settimeout(None)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                self._socket = sock
                self._reader = sock.makefile("rb")
                self._connected = True
                logger.info(f"Connected to PHD2 at {host}:{port}")
                return True

            except OSError as e:
                logger.error(f"Connection to {host}:{port} failed: {e}")
                self._close_unsafe()
                return False

    def is_connected(self) -> bool:
        with self._state_lock:
            return self._connected

    def read_line(self) -> Optional[str]:
        """
        Read one line from the socket.

        Returns:
            The line without its terminator, or None on end-of-stream or
            read failure. Once None has been returned the connection is
            considered lost.
        """
        reader = self._reader
        if reader is None:
            return None

        try:
            raw = reader.readline()
        except (OSError, ValueError) as e:
            # ValueError: file object closed underneath us by terminate()
            logger.debug(f"Read failed: {e}")
            raw = b""

        if not raw:
            with self._state_lock:
                self._connected = False
            return None

        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def write_line(self, text: str) -> None:
        """
        Send one line to PHD2.

        Raises:
            DisconnectedError: If not connected or the send fails
        """
        data = (text + LINE_TERMINATOR).encode("utf-8")

        with self._write_lock:
            sock = self._socket
            if sock is None or not self.is_connected():
                raise DisconnectedError("PHD2 Server disconnected")

            try:
                sock.sendall(data)
                logger.debug(f"Sent {len(data)} bytes")
            except OSError as e:
                logger.error(f"Failed to send data: {e}")
                with self._state_lock:
                    self._connected = False
                raise DisconnectedError(
                    f"Failed to send command to PHD2: {e}",
                    error_code=ErrorCodes.SEND_FAILED,
                    cause=e
                )

    def terminate(self) -> None:
        """
        Force the socket closed, aborting any blocked read.

        Safe to call from a thread other than the one blocked in read_line().
        """
        with self._state_lock:
            self._connected = False
            sock = self._socket

        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already shut down or never fully connected
            pass
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket during terminate: {e}")

    def close(self) -> None:
        """Release all resources. Safe to call multiple times."""
        with self._state_lock:
            self._close_unsafe()

    def _close_unsafe(self) -> None:
        """Close without taking the state lock (caller holds it)."""
        self._connected = False

        if self._reader is not None:
            try:
                self._reader.close()
            except OSError as e:
                logger.debug(f"Error closing reader: {e}")
            finally:
                self._reader = None

        if self._socket is not None:
            try:
                self._socket.close()
                logger.info("Closed PHD2 socket")
            except OSError as e:
                logger.error(f"Error closing PHD2 socket: {e}")
            finally:
                self._socket = None

