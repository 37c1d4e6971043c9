"""Transport layer: link discovery and the serialized exchange session."""

from .discovery import discover_one_device, list_candidate_ports, wait_for_device
from .session import (
    SessionState,
    TransportSession,
    matches_pattern,
    open_serial_port,
)

__all__ = [
    "SessionState",
    "TransportSession",
    "discover_one_device",
    "list_candidate_ports",
    "matches_pattern",
    "open_serial_port",
    "wait_for_device",
]
