"""
Call engine: JSON-RPC request/response correlation for PHD2.

PHD2 responses carry no usable correlation id (every request is sent with
id 1), so a response is matched to "the call currently in flight". To make
that safe, a single-flight gate is held across both the write and the wait:
concurrent callers queue behind the gate rather than interleave.

Architecture:
    caller thread                       reader thread
    -------------                       -------------
    CommandClient.call()
      acquire gate
      write request  ───────────────▶   (PHD2)
      wait on condition  ◀───────────   EventDispatcher -> deliver()
      release gate
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from . import protocol
from .errors import CallTimeoutError, DisconnectedError, ProtocolError

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 1.0


class CommandClient:
    """
    Sends PHD2 calls and waits for their responses.

    The response slot shares its Condition with SessionState; the reader
    thread fills it via deliver() and wakes the waiting caller.
    """

    def __init__(
        self,
        write_line: Callable[[str], None],
        is_connected: Callable[[], bool],
        condition: threading.Condition,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        Initialize the command client.

        Args:
            write_line: Sends one request line; raises DisconnectedError on failure
            is_connected: Reports whether the transport is still usable
            condition: Condition shared with SessionState
            call_timeout: Total seconds to wait for a response
            poll_interval: Maximum length of a single wait slice
        """
        self._write_line = write_line
        self._is_connected = is_connected
        self._condition = condition
        self._gate = threading.Lock()
        self.call_timeout = call_timeout
        self.poll_interval = poll_interval

        # Guarded by _condition
        self._awaiting = False
        self._response: Optional[Dict[str, Any]] = None

        self._stats = {
            'calls': 0,
            'timeouts': 0,
            'errors': 0,
            'unmatched_responses': 0,
        }

    def call(self, method: str, params: Any = None) -> Any:
        """
        Issue a PHD2 call and return the response's result payload.

        Args:
            method: PHD2 method name
            params: Optional parameters (see protocol.make_request)

        Returns:
            The ``result`` value of the response (may be None)

        Raises:
            DisconnectedError: Not connected, or the connection was lost
            CallTimeoutError: No response within call_timeout
            ProtocolError: PHD2 returned an error object
        """
        if not self._is_connected():
            raise DisconnectedError("PHD2 Server disconnected", context={'method': method})

        request = protocol.make_request(method, params)

        with self._gate:
            with self._condition:
                self._response = None
                self._awaiting = True

            try:
                logger.debug(f"PHD2 call: {request}")
                self._write_line(request)
                response = self._wait_for_response(method)
            finally:
                with self._condition:
                    self._awaiting = False
                    self._response = None

        self._stats['calls'] += 1

        if protocol.is_failed_response(response):
            self._stats['errors'] += 1
            message = protocol.error_message(response)
            logger.warning(f"PHD2 call {method} failed: {message}")
            raise ProtocolError(message, method=method, rpc_code=protocol.error_code(response))

        return response.get("result")

    def _wait_for_response(self, method: str) -> Dict[str, Any]:
        deadline = time.monotonic() + self.call_timeout

        with self._condition:
            while self._response is None:
                if not self._is_connected():
                    raise DisconnectedError(
                        "PHD2 Server disconnected during call",
                        context={'method': method}
                    )

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._stats['timeouts'] += 1
                    logger.warning(f"Timeout waiting for response to {method}")
                    raise CallTimeoutError(
                        f"Timeout waiting for response to {method} - PHD2 may be disconnected",
                        method=method,
                        timeout_seconds=self.call_timeout
                    )

                self._condition.wait(timeout=min(self.poll_interval, remaining))

            return self._response

    def deliver(self, message: Dict[str, Any]) -> None:
        """Store a response for the waiting caller. Called by the reader thread."""
        with self._condition:
            if not self._awaiting:
                self._stats['unmatched_responses'] += 1
                logger.debug(f"Discarding response with no call in flight: {message}")
                return
            self._response = message
            self._condition.notify_all()

    def connection_lost(self) -> None:
        """Wake every waiter so it can observe the disconnect."""
        with self._condition:
            self._condition.notify_all()

    def get_stats(self) -> Dict[str, int]:
        return self._stats.copy()
