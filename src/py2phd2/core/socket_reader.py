"""
Background reader and event dispatch for the PHD2 protocol.

The reader thread blocks on one line at a time and hands each line to the
dispatcher, so session state is updated strictly in wire order.

Architecture:
    SocketReader (background thread)
        └── Reads newline-terminated JSON lines
        └── Hands each line to EventDispatcher

    EventDispatcher
        └── Routes call responses to the CommandClient
        └── Applies events to SessionState
        └── Notifies registered event listeners
        └── Logs and drops malformed lines
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import protocol
from .command_client import CommandClient
from .errors import ProtocolError
from .protocol import AppStates, EventNames
from .session_state import SessionState
from ..models.guiding import SettleProgress, StarLostInfo

logger = logging.getLogger(__name__)

EventListener = Callable[[Dict[str, Any]], None]


class EventDispatcher:
    """
    Classifies inbound messages and applies events to session state.

    Handlers for unknown event names are simply absent; those events are
    still passed to listeners.
    """

    def __init__(self, state: SessionState, command_client: CommandClient):
        self._state = state
        self._command_client = command_client
        self._listeners: List[EventListener] = []
        self._listeners_lock = threading.Lock()

        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            EventNames.VERSION: self._on_version,
            EventNames.APP_STATE: self._on_app_state,
            EventNames.START_GUIDING: self._on_start_guiding,
            EventNames.GUIDE_STEP: self._on_guide_step,
            EventNames.GUIDING_STOPPED: self._on_guiding_stopped,
            EventNames.PAUSED: self._on_paused,
            EventNames.STAR_LOST: self._on_star_lost,
            EventNames.SETTLE_BEGIN: self._on_settle_begin,
            EventNames.SETTLING: self._on_settling,
            EventNames.SETTLE_DONE: self._on_settle_done,
        }

        self._stats = {
            'messages_received': 0,
            'responses_dispatched': 0,
            'events_dispatched': 0,
            'messages_dropped': 0,
        }

    def add_listener(self, listener: EventListener) -> None:
        """
        Register a callback invoked with every event dict, after state is updated.

        Listeners run on the reader thread and must not block or call back
        into the client.
        """
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        with self._listeners_lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def dispatch(self, line: str) -> None:
        """
        Route one inbound line.

        Malformed lines are logged and discarded; they never propagate.
        """
        self._stats['messages_received'] += 1

        if not line.strip():
            return

        try:
            message = protocol.parse_message(line)
        except ProtocolError as e:
            self._stats['messages_dropped'] += 1
            logger.warning(f"{e.message}: {line!r}")
            return

        if protocol.is_response(message):
            self._stats['responses_dispatched'] += 1
            self._command_client.deliver(message)
            return

        self._handle_event(message)

    def _handle_event(self, event: Dict[str, Any]) -> None:
        name = event.get(protocol.EVENT_KEY)
        handler = self._handlers.get(name)

        if handler is not None:
            try:
                handler(event)
            except (KeyError, TypeError, ValueError) as e:
                self._stats['messages_dropped'] += 1
                logger.warning(f"Malformed {name} event ({e}): {event}")
                return
        else:
            logger.debug(f"Unhandled PHD2 event {name!r}")

        self._stats['events_dispatched'] += 1

        with self._listeners_lock:
            listeners = self._listeners.copy()

        # Call listeners outside the lock to prevent deadlocks
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener error for {name}: {e}", exc_info=True)

    # ----- event handlers -----

    def _on_version(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.version = event.get("PHDVersion")
            self._state.phd_subver = event.get("PHDSubver")
        logger.info(f"PHD2 version {event.get('PHDVersion')} {event.get('PHDSubver') or ''}")

    def _on_app_state(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.app_state = event["State"]

    def _on_start_guiding(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.app_state = AppStates.GUIDING
            self._state.accum_ra.reset()
            self._state.accum_dec.reset()
            self._state.accum_active = True

    def _on_guide_step(self, event: Dict[str, Any]) -> None:
        avg_dist = float(event["AvgDist"])
        ra = float(event["RADistanceRaw"])
        dec = float(event["DECDistanceRaw"])

        state = self._state
        with state.condition:
            if state.accum_active:
                state.accum_ra.add(ra)
                state.accum_dec.add(dec)
                state.recompute_stats()

            state.app_state = AppStates.GUIDING
            state.avg_dist = avg_dist

            star = state.current_star
            if event.get("SNR") is not None:
                star.snr = float(event["SNR"])
            if event.get("HFD") is not None:
                star.hfd = float(event["HFD"])
            if event.get("StarMass") is not None:
                star.star_mass = float(event["StarMass"])
            star.last_update = datetime.now()

    def _on_guiding_stopped(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.app_state = AppStates.STOPPED

    def _on_paused(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.app_state = AppStates.PAUSED

    def _on_star_lost(self, event: Dict[str, Any]) -> None:
        info = StarLostInfo(
            frame=int(event.get("Frame", 0)),
            time=float(event.get("Time", 0.0)),
            star_mass=float(event.get("StarMass", 0.0)),
            snr=float(event.get("SNR", 0.0)),
            avg_dist=float(event.get("AvgDist", 0.0)),
            error_code=int(event.get("ErrorCode", 0)),
            status=str(event.get("Status", "")),
        )
        with self._state.condition:
            self._state.app_state = AppStates.LOST_LOCK
            self._state.avg_dist = info.avg_dist
            self._state.last_star_lost = info
        logger.warning(f"Guide star lost at frame {info.frame}: {info.status}")

    def _on_settle_begin(self, event: Dict[str, Any]) -> None:
        with self._state.condition:
            self._state.accum_active = False

    def _on_settling(self, event: Dict[str, Any]) -> None:
        distance = float(event["Distance"])
        elapsed = float(event["Time"])
        settle_time = float(event["SettleTime"])
        with self._state.condition:
            self._state.settle = SettleProgress(
                done=False,
                distance=distance,
                settle_px=self._state.settle_px,
                time=elapsed,
                settle_time=settle_time,
            )

    def _on_settle_done(self, event: Dict[str, Any]) -> None:
        status = int(event.get("Status", 0))
        error = event.get("Error") or None
        with self._state.condition:
            self._state.settle = SettleProgress(done=True, status=status, error=error)
            self._state.accum_active = True
        if status != 0:
            logger.warning(f"Settle failed with status {status}: {error}")
        else:
            logger.info("Settle done")

    def get_stats(self) -> Dict[str, int]:
        return self._stats.copy()


class SocketReader:
    """
    Background thread that pumps lines from the transport into the dispatcher.

    The loop ends on stop(), end-of-stream or a read failure. On exit it
    always wakes pending callers so they observe the disconnect.
    """

    def __init__(self, connection, dispatcher: EventDispatcher,
                 command_client: CommandClient,
                 on_exit: Optional[Callable[[bool], None]] = None):
        """
        Initialize the socket reader.

        Args:
            connection: LineConnection to read from
            dispatcher: EventDispatcher to route lines
            command_client: CommandClient whose waiters are woken on exit
            on_exit: Optional callback run on the reader thread when the loop
                ends, called with True when the exit was requested by stop
        """
        self._connection = connection
        self._dispatcher = dispatcher
        self._command_client = command_client
        self._on_exit = on_exit
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self._stats = {
            'lines_read': 0,
            'dispatch_errors': 0,
        }

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                logger.warning("SocketReader already running")
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._read_loop,
                name="PHD2Reader",
                daemon=True
            )
            self._thread.start()
            logger.info("SocketReader background thread started")

    def request_stop(self) -> None:
        """Ask the loop to exit after the current line."""
        self._stop_event.set()

    def join(self, timeout: float) -> bool:
        """
        Wait for the reader thread to finish.

        Returns:
            True if the thread has exited
        """
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("SocketReader thread did not stop cleanly")
            return False
        return True

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _read_loop(self) -> None:
        logger.info("SocketReader read loop starting")
        try:
            while not self._stop_event.is_set():
                line = self._connection.read_line()
                if line is None:
                    if not self._stop_event.is_set():
                        logger.error("PHD2 connection closed - reader stopping")
                    break

                self._stats['lines_read'] += 1
                logger.debug(f"PHD2 line: {line}")

                try:
                    self._dispatcher.dispatch(line)
                except Exception as e:
                    # A bad event must not kill the session
                    self._stats['dispatch_errors'] += 1
                    logger.error(f"Unexpected error dispatching PHD2 line: {e}", exc_info=True)

        finally:
            self._command_client.connection_lost()
            if self._on_exit is not None:
                try:
                    self._on_exit(self._stop_event.is_set())
                except Exception as e:
                    logger.error(f"Reader exit callback failed: {e}")
            logger.info(f"SocketReader read loop exiting. Stats: {self._stats}")

    def get_stats(self) -> Dict[str, int]:
        return self._stats.copy()
