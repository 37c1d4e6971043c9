"""EEPROM access commands built on a transport session."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Tuple

from ..errors import ResponseValidationError
from .frames import (
    ACK,
    ACK_DATA,
    DATA_OFFSET,
    DATA_RESPONSE_LENGTH,
    CommandKind,
    build_frame,
    set_address_frame,
)

Word = Tuple[int, int]

_LOGGER = logging.getLogger(__name__)


class Exchanger(Protocol):
    def exchange_and_check(
        self,
        send: bytes,
        pattern: bytes,
        cancel: Optional[threading.Event] = None,
    ) -> bytes: ...


class EEPROMDevice:
    """Reads and writes EEPROM words through set-address/read/write commands.

    A word access is two exchanges (set address, then read or write). The
    session only serializes single exchanges, so the composite accessors hold
    a per-device lock to keep two word accesses from interleaving.
    """

    def __init__(self, session: Exchanger) -> None:
        self._session = session
        self._composite_lock = threading.Lock()

    def set_address(self, address: int, cancel: Optional[threading.Event] = None) -> None:
        self._session.exchange_and_check(set_address_frame(address), ACK, cancel)

    def read_word(self, cancel: Optional[threading.Event] = None) -> Word:
        response = self._session.exchange_and_check(
            build_frame(CommandKind.READ_BYTES), ACK_DATA, cancel
        )
        if len(response) < DATA_RESPONSE_LENGTH:
            raise ResponseValidationError(
                f"Read response too short ({len(response)} bytes): {response.hex(' ')}",
                response,
            )
        return response[DATA_OFFSET], response[DATA_OFFSET + 1]

    def write_word(
        self, b0: int, b1: int, cancel: Optional[threading.Event] = None
    ) -> None:
        self._session.exchange_and_check(
            build_frame(CommandKind.WRITE_BYTES, b0, b1), ACK, cancel
        )

    def read_word_at(
        self, address: int, cancel: Optional[threading.Event] = None
    ) -> Word:
        """Select *address* and return the two bytes stored there."""

        with self._composite_lock:
            self.set_address(address, cancel)
            word = self.read_word(cancel)
        _LOGGER.debug("Read %04X: %02X %02X", address, *word)
        return word

    def write_word_at(
        self,
        address: int,
        b0: int,
        b1: int,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Select *address* and store *b0*, *b1* there."""

        with self._composite_lock:
            self.set_address(address, cancel)
            self.write_word(b0, b1, cancel)
        _LOGGER.debug("Wrote %04X: %02X %02X", address, b0, b1)
