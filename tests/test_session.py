import threading
import time
import unittest
from unittest import mock

import serial

from pmeeprom.errors import (
    ConnectionLostError,
    ErrorKind,
    OperationCancelledError,
    ResponseTimeoutError,
    ResponseValidationError,
    SessionDisposedError,
)
from pmeeprom.transport import SessionState, TransportSession, matches_pattern

from .doubles import ScriptedPort, connected_session, fast_config

REQUEST = bytes([0x83, 0x00, 0x05, 0xB1, 0x9C])
ANSWER = bytes([0xA0, 0x00, 0x08, 0x72, 0x00, 0x05, 0x12, 0x34])


class ClosingPort(ScriptedPort):
    """Scripted port that fails like pyserial once it has been closed."""

    @property
    def in_waiting(self) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        return super().in_waiting


class MatchesPatternTests(unittest.TestCase):
    def test_accepts_matching_prefix(self) -> None:
        self.assertTrue(matches_pattern(b"\xa0\x00\x03\xff", b"\xa0\x00\x03"))

    def test_rejects_any_single_differing_byte(self) -> None:
        pattern = b"\xa0\x00\x03"
        for index in range(len(pattern)):
            response = bytearray(pattern)
            response[index] ^= 0x01
            with self.subTest(index=index):
                self.assertFalse(matches_pattern(bytes(response), pattern))

    def test_rejects_short_response(self) -> None:
        self.assertFalse(matches_pattern(b"\xa0\x00", b"\xa0\x00\x03"))


class ExchangeTests(unittest.TestCase):
    def test_exchange_returns_full_response(self) -> None:
        port = ScriptedPort([ANSWER])
        with connected_session(port) as session:
            self.assertEqual(session.exchange(REQUEST), ANSWER)
        self.assertEqual(port.writes, [REQUEST])

    def test_exchange_discards_stale_bytes_before_sending(self) -> None:
        port = ScriptedPort([ANSWER], stale=b"\xde\xad")
        with connected_session(port) as session:
            self.assertEqual(session.exchange(REQUEST), ANSWER)

    def test_times_out_after_configured_resends(self) -> None:
        port = ScriptedPort()
        with connected_session(port, response_timeout=0.02, resend_attempts=2) as session:
            started = time.monotonic()
            with self.assertRaises(ResponseTimeoutError) as ctx:
                session.exchange(REQUEST)
            elapsed = time.monotonic() - started
        self.assertEqual(ctx.exception.resends, 2)
        self.assertIs(ctx.exception.kind, ErrorKind.TIMEOUT)
        self.assertEqual(port.writes, [REQUEST] * 3)
        self.assertGreaterEqual(elapsed, 3 * 0.02)

    def test_succeeds_when_device_answers_second_resend(self) -> None:
        port = ScriptedPort([ANSWER], silent_writes=2)
        with connected_session(port) as session:
            self.assertEqual(session.exchange(REQUEST), ANSWER)
        self.assertEqual(port.writes, [REQUEST] * 3)

    def test_exchange_and_check_returns_raw_bytes(self) -> None:
        port = ScriptedPort([ANSWER])
        with connected_session(port) as session:
            response = session.exchange_and_check(REQUEST, ANSWER[:6])
        self.assertEqual(response[:6], ANSWER[:6])

    def test_exchange_and_check_rejects_wrong_prefix(self) -> None:
        corrupted = bytes([0xA0, 0x00, 0x09]) + ANSWER[3:]
        port = ScriptedPort([corrupted])
        with connected_session(port) as session:
            with self.assertRaises(ResponseValidationError) as ctx:
                session.exchange_and_check(REQUEST, ANSWER[:6])
        self.assertEqual(ctx.exception.response, corrupted)

    def test_serial_failure_detaches_port(self) -> None:
        port = ScriptedPort()
        port.write = mock.Mock(side_effect=serial.SerialException("device vanished"))
        session = connected_session(port)
        try:
            with self.assertRaises(ConnectionLostError):
                session.exchange(REQUEST)
            self.assertIs(session.state, SessionState.DISCONNECTED)
            self.assertEqual(port.close_calls, 1)
        finally:
            session.close()


class CancellationTests(unittest.TestCase):
    def test_cancel_while_waiting_for_connection(self) -> None:
        opener = mock.Mock(side_effect=serial.SerialException("no link"))
        session = TransportSession("loop://", fast_config(), opener=opener, maintain=False)
        cancel = threading.Event()
        timer = threading.Timer(0.02, cancel.set)
        timer.start()
        try:
            with self.assertRaises(OperationCancelledError):
                session.exchange(REQUEST, cancel)
        finally:
            timer.cancel()
            session.close()

    def test_cancel_while_waiting_for_response_releases_token(self) -> None:
        port = ScriptedPort([ANSWER], silent_writes=1)
        with connected_session(port, response_timeout=5.0) as session:
            cancel = threading.Event()
            timer = threading.Timer(0.02, cancel.set)
            timer.start()
            try:
                with self.assertRaises(OperationCancelledError):
                    session.exchange(REQUEST, cancel)
            finally:
                timer.cancel()
            self.assertEqual(session.exchange(REQUEST), ANSWER)

    def test_exchange_waits_for_token_held_by_another_exchange(self) -> None:
        port = ScriptedPort([ANSWER])
        with connected_session(port) as session:
            session._token.acquire()
            cancel = threading.Event()
            timer = threading.Timer(0.02, cancel.set)
            timer.start()
            try:
                with self.assertRaises(OperationCancelledError):
                    session.exchange(REQUEST, cancel)
            finally:
                timer.cancel()
                session._token.release()
        self.assertEqual(port.writes, [])


class LifecycleTests(unittest.TestCase):
    def test_disposed_session_fails_without_touching_link(self) -> None:
        opener = mock.Mock()
        session = TransportSession("loop://", fast_config(), opener=opener, maintain=False)
        session.close()
        with self.assertRaises(SessionDisposedError):
            session.exchange(REQUEST)
        with self.assertRaises(SessionDisposedError):
            session.exchange_and_check(REQUEST, b"\xa0")
        with self.assertRaises(SessionDisposedError):
            session.ensure_connected()
        opener.assert_not_called()

    def test_close_is_idempotent_and_closes_port_once(self) -> None:
        port = ScriptedPort()
        session = connected_session(port)
        session.close()
        session.close()
        self.assertEqual(port.close_calls, 1)
        self.assertIs(session.state, SessionState.DISPOSED)

    def test_close_during_exchange_closes_port_once(self) -> None:
        port = ClosingPort(silent_writes=1)
        session = connected_session(port, response_timeout=5.0)
        errors = []

        def run() -> None:
            try:
                session.exchange(REQUEST)
            except Exception as exc:
                errors.append(exc)

        worker = threading.Thread(target=run)
        worker.start()
        deadline = time.monotonic() + 2.0
        while not port.writes and time.monotonic() < deadline:
            time.sleep(0.001)
        session.close()
        worker.join(timeout=2.0)

        self.assertFalse(worker.is_alive())
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], SessionDisposedError)
        self.assertEqual(port.close_calls, 1)

    def test_failed_open_returns_to_disconnected(self) -> None:
        opener = mock.Mock(side_effect=serial.SerialException("busy"))
        session = TransportSession("loop://", fast_config(), opener=opener, maintain=False)
        try:
            with self.assertRaises(serial.SerialException):
                session.ensure_connected()
            self.assertIs(session.state, SessionState.DISCONNECTED)
        finally:
            session.close()

    def test_dead_port_is_replaced(self) -> None:
        first, second = ScriptedPort(), ScriptedPort([ANSWER])
        opener = mock.Mock(side_effect=[first, second])
        session = TransportSession("loop://", fast_config(), opener=opener, maintain=False)
        try:
            self.assertTrue(session.ensure_connected())
            first.is_open = False
            self.assertTrue(session.ensure_connected())
            self.assertEqual(first.close_calls, 1)
            self.assertEqual(session.exchange(REQUEST), ANSWER)
        finally:
            session.close()

    def test_dead_port_is_kept_while_exchange_holds_token(self) -> None:
        port = ScriptedPort()
        opener = mock.Mock(return_value=port)
        session = TransportSession("loop://", fast_config(), opener=opener, maintain=False)
        try:
            session.ensure_connected()
            port.is_open = False
            session._token.acquire()
            try:
                self.assertFalse(session.ensure_connected())
            finally:
                session._token.release()
            self.assertEqual(opener.call_count, 1)
            self.assertEqual(port.close_calls, 0)
        finally:
            session.close()

    def test_maintenance_thread_connects_in_background(self) -> None:
        port = ScriptedPort()
        opener = mock.Mock(side_effect=[serial.SerialException("not yet"), port])
        session = TransportSession("loop://", fast_config(), opener=opener)
        try:
            deadline = time.monotonic() + 2.0
            while not session.connected and time.monotonic() < deadline:
                time.sleep(0.005)
            self.assertTrue(session.connected)
        finally:
            session.close()
        self.assertEqual(port.close_calls, 1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
