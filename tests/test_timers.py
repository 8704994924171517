"""Tests for the flush timer and reconnect supervisor."""

import threading
import time
from unittest.mock import Mock, PropertyMock

from src.mqtt.buffer import CoalescingBuffer
from src.mqtt.connection import ConnectionManager
from src.mqtt.timers import FlushTimer, Supervisor


def mock_connection(connected_states, handshake_pending: bool = False) -> Mock:
    connection = Mock(spec=ConnectionManager)
    type(connection).is_connected = PropertyMock(side_effect=connected_states)
    type(connection).handshake_pending = PropertyMock(return_value=handshake_pending)
    return connection


class TestSupervisor:
    """Test reconnection after connection loss."""

    def test_connected_does_nothing(self):
        connection = mock_connection([True])
        stop_event = Mock(spec=threading.Event)
        supervisor = Supervisor(connection, 5, stop_event)

        assert supervisor.check() is False
        connection.connect.assert_not_called()
        stop_event.wait.assert_not_called()

    def test_reconnects_after_exactly_reconnect_delay(self):
        connection = mock_connection([False, False])
        stop_event = Mock(spec=threading.Event)
        stop_event.wait.return_value = False
        supervisor = Supervisor(connection, 5, stop_event)

        assert supervisor.check() is True

        stop_event.wait.assert_called_once_with(5)
        connection.connect.assert_called_once_with(reconnect=True)

    def test_retries_repeatedly_until_connected(self):
        connection = mock_connection([False, False, False, False, False, False, True])
        stop_event = Mock(spec=threading.Event)
        stop_event.wait.return_value = False
        supervisor = Supervisor(connection, 3, stop_event)

        results = [supervisor.check() for _ in range(4)]

        assert results == [True, True, True, False]
        assert connection.connect.call_count == 3
        assert [c.args for c in stop_event.wait.call_args_list] == [(3,), (3,), (3,)]

    def test_stop_during_delay_skips_connect(self):
        connection = mock_connection([False])
        stop_event = Mock(spec=threading.Event)
        stop_event.wait.return_value = True
        supervisor = Supervisor(connection, 5, stop_event)

        assert supervisor.check() is False
        connection.connect.assert_not_called()

    def test_session_up_during_delay_not_reconnected(self):
        connection = mock_connection([False, True])
        stop_event = Mock(spec=threading.Event)
        stop_event.wait.return_value = False
        supervisor = Supervisor(connection, 5, stop_event)

        assert supervisor.check() is False

        stop_event.wait.assert_called_once_with(5)
        connection.connect.assert_not_called()

    def test_pending_handshake_not_interrupted(self):
        connection = mock_connection(lambda: False, handshake_pending=True)
        stop_event = Mock(spec=threading.Event)
        supervisor = Supervisor(connection, 5, stop_event)

        assert supervisor.check() is False

        stop_event.wait.assert_not_called()
        connection.connect.assert_not_called()

    def test_thread_exits_when_stopped(self):
        connection = mock_connection(lambda: True)
        stop_event = threading.Event()
        supervisor = Supervisor(connection, 1, stop_event, check_interval=0.01)

        supervisor.start()
        stop_event.set()
        supervisor.join(timeout=1)

        assert supervisor._thread is None


class TestFlushTimer:
    """Test periodic buffer flushing."""

    def test_flushes_until_stopped(self):
        buffer = Mock(spec=CoalescingBuffer)
        stop_event = threading.Event()
        timer = FlushTimer(buffer, 0.01, stop_event)

        timer.start()
        deadline = time.monotonic() + 2
        while buffer.flush.call_count < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        stop_event.set()
        timer.join(timeout=1)

        assert buffer.flush.call_count >= 2

    def test_flush_error_does_not_stop_timer(self):
        calls = []

        def flush():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        buffer = Mock(spec=CoalescingBuffer)
        buffer.flush.side_effect = flush
        stop_event = threading.Event()
        timer = FlushTimer(buffer, 0.01, stop_event)

        timer.start()
        deadline = time.monotonic() + 2
        while buffer.flush.call_count < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        stop_event.set()
        timer.join(timeout=1)

        assert buffer.flush.call_count >= 2

    def test_no_flush_when_already_stopped(self):
        buffer = Mock(spec=CoalescingBuffer)
        stop_event = threading.Event()
        stop_event.set()
        timer = FlushTimer(buffer, 0.01, stop_event)

        timer.start()
        timer.join(timeout=1)

        buffer.flush.assert_not_called()
