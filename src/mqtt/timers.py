"""Background loops driving buffer flushes and reconnection."""

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .buffer import CoalescingBuffer
    from .connection import ConnectionManager

DEFAULT_FLUSH_INTERVAL = 1
SUPERVISOR_CHECK_INTERVAL = 1.0


class _LoopThread:
    """A daemon thread running until the shared stop event is set."""

    thread_name = "loop"

    def __init__(self, stop_event: threading.Event):
        self.stop_event = stop_event
        self._thread: Optional[threading.Thread] = None
        self.logger = logging.getLogger(__name__)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self.run, name=self.thread_name, daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run(self) -> None:
        raise NotImplementedError


class FlushTimer(_LoopThread):
    """Flushes the coalescing buffer once per interval."""

    thread_name = "flush-timer"

    def __init__(self, buffer: "CoalescingBuffer", interval: float, stop_event: threading.Event):
        """Initialize the flush timer.

        Args:
            buffer: Buffer to flush
            interval: Seconds between flushes
            stop_event: Shared flag; the loop exits once it is set
        """
        super().__init__(stop_event)
        self.buffer = buffer
        self.interval = interval

    def run(self) -> None:
        self.logger.debug(f"Started publish timer ({self.interval}s interval)")
        while not self.stop_event.wait(self.interval):
            try:
                self.buffer.flush()
            except Exception as e:
                self.logger.error(f"Error flushing buffered data: {e}", exc_info=True)
        self.logger.debug("Stopped publish timer")


class Supervisor(_LoopThread):
    """Polls the connection state and reconnects after a fixed delay.

    This is the only retry mechanism for a lost or failed broker connection.
    """

    thread_name = "supervisor"

    def __init__(
        self,
        connection: "ConnectionManager",
        reconnect_delay: float,
        stop_event: threading.Event,
        check_interval: float = SUPERVISOR_CHECK_INTERVAL,
    ):
        super().__init__(stop_event)
        self.connection = connection
        self.reconnect_delay = reconnect_delay
        self.check_interval = check_interval

    def run(self) -> None:
        while not self.stop_event.wait(self.check_interval):
            try:
                self.check()
            except Exception as e:
                self.logger.error(f"Error supervising MQTT connection: {e}", exc_info=True)

    def check(self) -> bool:
        """Reconnect once if the broker connection is down.

        The state is checked again after the delay so a session that came up
        in the meantime is left alone.

        Returns:
            True if a reconnection attempt was made
        """
        if self._session_up():
            return False

        self.logger.warning(
            f"MQTT connection lost, attempting to reconnect in {self.reconnect_delay}s..."
        )
        if self.stop_event.wait(self.reconnect_delay):
            return False
        if self._session_up():
            self.logger.debug("MQTT connection recovered during reconnect delay")
            return False

        self.connection.connect(reconnect=True)
        return True

    def _session_up(self) -> bool:
        return self.connection.is_connected or self.connection.handshake_pending
