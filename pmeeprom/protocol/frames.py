"""Command frame templates and acknowledgement patterns.

Frame layouts (hex)::

    SetAddress   82 00 0A B1 00 72 00 05 <addr lo> <addr hi>
    ReadBytes    83 00 05 B1 9C
    WriteBytes   82 00 0A B1 9C 72 00 05 <b0> <b1>

Acknowledgements::

    ACK          A0 00 03                    (SetAddress, WriteBytes)
    ACK_DATA     A0 00 08 72 00 05 <d0> <d1> (ReadBytes)
"""

from __future__ import annotations

from enum import Enum

ACK = bytes([0xA0, 0x00, 0x03])
ACK_DATA = bytes([0xA0, 0x00, 0x08, 0x72, 0x00, 0x05])

DATA_OFFSET = 6
DATA_RESPONSE_LENGTH = DATA_OFFSET + 2
PAYLOAD_OFFSET = 8


class CommandKind(Enum):
    """Device commands; each value is the immutable frame template."""

    SET_ADDRESS = bytes([0x82, 0x00, 0x0A, 0xB1, 0x00, 0x72, 0x00, 0x05, 0x00, 0x00])
    READ_BYTES = bytes([0x83, 0x00, 0x05, 0xB1, 0x9C])
    WRITE_BYTES = bytes([0x82, 0x00, 0x0A, 0xB1, 0x9C, 0x72, 0x00, 0x05, 0x00, 0x00])

    @property
    def has_payload(self) -> bool:
        return len(self.value) == PAYLOAD_OFFSET + 2

    @property
    def expected_response(self) -> bytes:
        return ACK_DATA if self is CommandKind.READ_BYTES else ACK


def _check_byte(name: str, value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must fit in one byte, got {value}")
    return value


def build_frame(kind: CommandKind, b0: int = 0, b1: int = 0) -> bytes:
    """Return a fresh frame for *kind* with *b0*, *b1* in its payload slots.

    Raises:
        ValueError: If a payload is given for a command without slots, or a
            value does not fit in a byte.
    """

    frame = bytearray(kind.value)
    if not kind.has_payload:
        if b0 or b1:
            raise ValueError(f"{kind.name} takes no payload")
        return bytes(frame)
    frame[PAYLOAD_OFFSET] = _check_byte("b0", b0)
    frame[PAYLOAD_OFFSET + 1] = _check_byte("b1", b1)
    return bytes(frame)


def set_address_frame(address: int) -> bytes:
    """SetAddress frame with *address* stored little-endian."""

    if not 0 <= address <= 0xFFFF:
        raise ValueError(f"Address must fit in 16 bits, got {address}")
    return build_frame(CommandKind.SET_ADDRESS, address & 0xFF, (address >> 8) & 0xFF)
