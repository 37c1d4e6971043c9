"""Serialized request/response session over an unreliable serial link."""

from __future__ import annotations

import functools
import logging
import threading
import time
from enum import Enum, auto
from typing import Any, Callable, Optional

import serial

from ..config import SessionConfig
from ..errors import (
    ConnectionLostError,
    OperationCancelledError,
    ResponseTimeoutError,
    ResponseValidationError,
    SessionDisposedError,
    TransportError,
)

PortOpener = Callable[[str], Any]

_LOGGER = logging.getLogger(__name__)


def open_serial_port(
    endpoint: str, *, baudrate: int = 9600, write_timeout: float = 1.0
) -> serial.SerialBase:
    """Open *endpoint* (a device path or pyserial URL) in non-blocking read mode."""

    return serial.serial_for_url(
        endpoint,
        baudrate=baudrate,
        timeout=0,
        write_timeout=write_timeout,
    )


def matches_pattern(response: bytes, pattern: bytes) -> bool:
    """Return ``True`` when *response* starts with every byte of *pattern*."""

    if len(response) < len(pattern):
        return False
    return all(response[i] == expected for i, expected in enumerate(pattern))


def _port_alive(port: Any) -> bool:
    try:
        return bool(port.is_open)
    except Exception:
        return False


class SessionState(Enum):
    """Lifecycle states of a :class:`TransportSession`."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    DISPOSED = auto()


class TransportSession:
    """Owns the link to one device and serializes every exchange on it.

    A daemon thread keeps trying to reach ``CONNECTED`` every
    ``maintenance_interval`` seconds until :meth:`close` is called. Exchanges
    take a capacity-1 semaphore for their whole duration, so at most one
    request is on the wire at any time. The same semaphore must be held to
    replace a port handle that is already published as connected.

    Usage::

        with TransportSession("/dev/ircomm0") as session:
            response = session.exchange(frame, cancel_event)
    """

    def __init__(
        self,
        endpoint: str,
        config: Optional[SessionConfig] = None,
        *,
        opener: Optional[PortOpener] = None,
        maintain: bool = True,
    ) -> None:
        self.endpoint = endpoint
        self.config = config or SessionConfig()
        self._opener: PortOpener = opener or functools.partial(
            open_serial_port, baudrate=self.config.baudrate
        )
        self._port: Optional[Any] = None
        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._token = threading.Semaphore(1)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        if maintain:
            self.start_maintenance()

    # -- State -------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._state is SessionState.DISPOSED

    @property
    def connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def __enter__(self) -> "TransportSession":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _raise_if_disposed(self) -> None:
        if self.disposed:
            raise SessionDisposedError(f"Session to {self.endpoint} is closed")

    def _detach(self, port: Any) -> None:
        """Unpublish and close *port* if it is still the current handle.

        A handle already taken over by :meth:`close` is left alone so the
        port is closed exactly once.
        """

        with self._state_lock:
            if self._port is not port:
                return
            self._port = None
            if self._state is not SessionState.DISPOSED:
                self._state = SessionState.DISCONNECTED
        try:
            port.close()
        except Exception:
            _LOGGER.debug("Failed to close port %s", self.endpoint, exc_info=True)

    # -- Connection maintenance --------------------------------------------------
    def start_maintenance(self) -> None:
        """Start the background thread that keeps the link connected."""

        self._raise_if_disposed()
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._maintenance_loop,
            name=f"TransportSession[{self.endpoint}]",
            daemon=True,
        )
        self._thread.start()

    def _maintenance_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.ensure_connected()
            except Exception:
                _LOGGER.debug(
                    "Connection attempt to %s failed", self.endpoint, exc_info=True
                )
            self._stop.wait(self.config.maintenance_interval)

    def ensure_connected(self) -> bool:
        """Run one maintenance step; return ``True`` when the link is usable.

        Opens the port when none is published, and replaces a published
        handle whose liveness check fails. Replacement is skipped while an
        exchange holds the access token.

        Raises:
            SessionDisposedError: If the session was closed.
            Exception: Whatever the port opener raised.
        """

        self._raise_if_disposed()
        with self._state_lock:
            state = self._state
            port = self._port

        if state is SessionState.CONNECTED and port is not None:
            if _port_alive(port):
                return True
            if not self._token.acquire(blocking=False):
                return False
            try:
                _LOGGER.warning("Port %s reports closed, reopening", self.endpoint)
                self._detach(port)
            finally:
                self._token.release()

        with self._state_lock:
            if self._state is SessionState.DISPOSED:
                return False
            self._state = SessionState.CONNECTING

        try:
            new_port = self._opener(self.endpoint)
        except Exception:
            with self._state_lock:
                if self._state is SessionState.CONNECTING:
                    self._state = SessionState.DISCONNECTED
            raise

        with self._state_lock:
            disposed = self._state is SessionState.DISPOSED
            if not disposed:
                self._port = new_port
                self._state = SessionState.CONNECTED
        if disposed:
            try:
                new_port.close()
            except Exception:
                _LOGGER.debug("Failed to close late port", exc_info=True)
            return False

        _LOGGER.info("Connected to %s", self.endpoint)
        return True

    # -- Exchanges ---------------------------------------------------------------
    def exchange(self, send: bytes, cancel: Optional[threading.Event] = None) -> bytes:
        """Write *send* and return the raw bytes the device answers with.

        Args:
            send: Complete command frame.
            cancel: Optional event observed at every wait inside the exchange.

        Returns:
            Every byte received until the link went quiet.

        Raises:
            SessionDisposedError: If the session is (or becomes) closed.
            OperationCancelledError: If *cancel* was set before completion.
            ResponseTimeoutError: If the device stayed silent through every resend.
            ConnectionLostError: If the port failed mid-exchange.
        """

        self._raise_if_disposed()
        self._acquire_token(cancel)
        try:
            port = self._wait_until_connected(cancel)
            try:
                self._flush(port, cancel)
                return self._transact(port, send, cancel)
            except TransportError:
                raise
            except (serial.SerialException, OSError) as exc:
                self._detach(port)
                self._raise_if_disposed()
                raise ConnectionLostError(
                    f"Port {self.endpoint} failed during exchange: {exc}"
                ) from exc
        finally:
            self._token.release()

    def exchange_and_check(
        self,
        send: bytes,
        pattern: bytes,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Exchange *send* and require the response to start with *pattern*."""

        response = self.exchange(send, cancel)
        if not matches_pattern(response, pattern):
            raise ResponseValidationError(
                f"Response {response.hex(' ') or '(empty)'} does not start with "
                f"{pattern.hex(' ')}",
                response,
            )
        return response

    def _check_cancel(self, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Exchange cancelled")

    def _acquire_token(self, cancel: Optional[threading.Event]) -> None:
        while True:
            self._check_cancel(cancel)
            if self._token.acquire(timeout=self.config.poll_interval):
                return

    def _wait_until_connected(self, cancel: Optional[threading.Event]) -> Any:
        while True:
            with self._state_lock:
                state = self._state
                port = self._port
            if state is SessionState.DISPOSED:
                raise SessionDisposedError(f"Session to {self.endpoint} is closed")
            if state is SessionState.CONNECTED and port is not None:
                return port
            self._check_cancel(cancel)
            time.sleep(self.config.poll_interval)

    def _flush(self, port: Any, cancel: Optional[threading.Event]) -> None:
        while port.in_waiting:
            self._check_cancel(cancel)
            stale = port.read(port.in_waiting)
            if self.config.trace:
                _LOGGER.debug("Discarded stale bytes: %s", stale.hex(" "))

    def _write(self, port: Any, data: bytes) -> None:
        if self.config.trace:
            _LOGGER.debug("TX %s", data.hex(" "))
        port.write(data)
        port.flush()

    def _transact(
        self, port: Any, send: bytes, cancel: Optional[threading.Event]
    ) -> bytes:
        cfg = self.config
        self._write(port, send)
        resends = 0
        started = time.monotonic()
        while not port.in_waiting:
            self._check_cancel(cancel)
            time.sleep(cfg.poll_interval)
            if time.monotonic() - started >= cfg.response_timeout:
                if resends >= cfg.resend_attempts:
                    raise ResponseTimeoutError(resends)
                resends += 1
                _LOGGER.debug(
                    "No response within %.3fs, resending (%d/%d)",
                    cfg.response_timeout,
                    resends,
                    cfg.resend_attempts,
                )
                self._write(port, send)
                started = time.monotonic()
        response = self._drain(port, cancel)
        if cfg.trace:
            _LOGGER.debug("RX %s (%d bytes)", response.hex(" "), len(response))
        return response

    def _drain(self, port: Any, cancel: Optional[threading.Event]) -> bytes:
        # No length field in the protocol: the response ends when the line goes quiet.
        buffer = bytearray()
        quiet_since = time.monotonic()
        while True:
            waiting = port.in_waiting
            if waiting:
                self._check_cancel(cancel)
                buffer.extend(port.read(waiting))
                quiet_since = time.monotonic()
                continue
            if time.monotonic() - quiet_since >= self.config.quiet_interval:
                return bytes(buffer)
            time.sleep(self.config.poll_interval)

    # -- Teardown ----------------------------------------------------------------
    def close(self) -> None:
        """Dispose the session. Idempotent and never raises."""

        with self._state_lock:
            if self._state is SessionState.DISPOSED:
                return
            self._state = SessionState.DISPOSED
            port = self._port
            self._port = None
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None
        if port is not None:
            try:
                port.close()
            except Exception:
                _LOGGER.debug("Failed to close port %s", self.endpoint, exc_info=True)
        _LOGGER.debug("Session to %s closed", self.endpoint)
