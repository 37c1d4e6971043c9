"""Protocol layer: command frames and the EEPROM word accessors."""

from .device import EEPROMDevice
from .frames import ACK, ACK_DATA, CommandKind, build_frame, set_address_frame

__all__ = [
    "ACK",
    "ACK_DATA",
    "CommandKind",
    "EEPROMDevice",
    "build_frame",
    "set_address_frame",
]
