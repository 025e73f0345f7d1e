import json
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection, connect


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class RealtimeClient:
    """
    Persistent WebSocket connection to the realtime hub.

    Every close, including a failed connect, is followed by exactly one
    reconnection attempt after a fixed delay, with no retry cap. The delay is
    waited on the stop event, so stop() interrupts it immediately.
    """

    def __init__(
        self,
        ws_url: str,
        on_message: Callable[[Any], Any],
        reconnect_delay: float = 5.0,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        connect_factory: Callable[..., ClientConnection] = connect,
        stop_event: Optional[threading.Event] = None,
    ):
        self.ws_url = ws_url
        self.on_message = on_message
        self.reconnect_delay = reconnect_delay
        self.on_state_change = on_state_change
        self._connect = connect_factory
        self._stop_event = stop_event or threading.Event()

        self.params: Dict[str, str] = {}
        self.state = ConnectionState.CLOSED
        self.attempts = 0
        self.ws_connection: ClientConnection | None = None
        self.ws_lock = threading.Lock()
        self.thread = None

    def set_params(self, **params):
        """Update query parameters used on the next connection (playerId, clanId)."""
        for key, value in params.items():
            if value is None:
                self.params.pop(key, None)
            else:
                self.params[key] = str(value)

    @property
    def url(self) -> str:
        if not self.params:
            return self.ws_url
        separator = "&" if "?" in self.ws_url else "?"
        return f"{self.ws_url}{separator}{urlencode(self.params)}"

    def start(self):
        if self.thread and self.thread.is_alive():
            logging.warning("RealtimeClient is already running.")
            return

        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, name="RealtimeClient", daemon=True)
        self.thread.start()

    def stop(self):
        """Cancel any pending reconnect wait and close the live connection."""
        logging.info("Stopping realtime connection...")
        self._stop_event.set()

        with self.ws_lock:
            if self.ws_connection:
                try:
                    self.ws_connection.close()
                except Exception as e:
                    logging.warning(f"Error closing WebSocket: {e}")

        if self.thread and self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(timeout=2.0)
            if self.thread.is_alive():
                logging.warning("Realtime thread did not finish within timeout")

    def send(self, message_type: str, payload: Any) -> bool:
        """
        Send one `{type, payload}` envelope.

        Returns:
            bool: False when the connection is not open or the send failed
        """
        if self.state != ConnectionState.OPEN:
            logging.debug(f"Not sending {message_type}: connection is {self.state.value}")
            return False

        with self.ws_lock:
            if not self.ws_connection:
                return False
            try:
                self.ws_connection.send(json.dumps({"type": message_type, "payload": payload}))
                return True
            except ConnectionClosed as e:
                logging.warning(f"Failed to send {message_type}, connection closed: {e}")
                return False

    def _run(self):
        logging.info("Realtime connection thread started.")
        while not self._stop_event.is_set():
            self._connection_cycle()
            if self._stop_event.is_set():
                break
            logging.info(f"Reconnecting to realtime hub in {self.reconnect_delay}s")
            if self._stop_event.wait(self.reconnect_delay):
                break
        logging.info("Realtime connection thread stopped.")

    def _connection_cycle(self):
        """One connect, listen, close cycle. Always ends CLOSED."""
        self.attempts += 1
        self._set_state(ConnectionState.CONNECTING)

        try:
            connection = self._connect(self.url)
        except (OSError, WebSocketException) as e:
            logging.warning(f"Realtime connection to {self.ws_url} failed: {e}")
            self._set_state(ConnectionState.CLOSED)
            return

        with self.ws_lock:
            self.ws_connection = connection
        self._set_state(ConnectionState.OPEN)
        logging.info(f"Connected to realtime hub at {self.ws_url}")

        try:
            while not self._stop_event.is_set():
                try:
                    frame = connection.recv(timeout=1.0)
                except TimeoutError:
                    continue
                try:
                    self.on_message(frame)
                except Exception as e:
                    logging.error(f"Error handling realtime message: {e}", exc_info=True)
        except ConnectionClosed as e:
            logging.warning(f"Realtime connection closed: {e}")
        finally:
            with self.ws_lock:
                self.ws_connection = None
            try:
                connection.close()
            except Exception as e:
                logging.debug(f"Error closing WebSocket: {e}")
            self._set_state(ConnectionState.CLOSED)

    def _set_state(self, state: ConnectionState):
        self.state = state
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logging.error(f"Error in connection state callback: {e}")
