"""Locate the serial endpoint of an infrared adapter."""

from __future__ import annotations

import glob
import logging
import os
import threading
import time
from typing import Callable, List, Optional

import serial.tools.list_ports

from ..errors import OperationCancelledError

DiscoverFn = Callable[[Optional[str]], Optional[str]]

# IrCOMM channels are not enumerated by list_ports on Linux.
IRCOMM_GLOB = "/dev/ircomm*"
IRDA_MARKERS = ("ircomm", "irda")

_LOGGER = logging.getLogger(__name__)


def _looks_like_irda(info: object) -> bool:
    fields = (
        getattr(info, "device", "") or "",
        getattr(info, "description", "") or "",
        getattr(info, "hwid", "") or "",
    )
    text = " ".join(fields).lower()
    return any(marker in text for marker in IRDA_MARKERS)


def list_candidate_ports() -> List[str]:
    """Return IrDA-looking serial ports, IrCOMM device nodes first."""

    ports = sorted(glob.glob(IRCOMM_GLOB))
    try:
        infos = list(serial.tools.list_ports.comports())
    except Exception as exc:
        _LOGGER.debug("Serial port enumeration failed: %s", exc)
        infos = []
    for info in infos:
        device = getattr(info, "device", None)
        if device and device not in ports and _looks_like_irda(info):
            ports.append(device)
    return ports


def discover_one_device(port: Optional[str] = None) -> Optional[str]:
    """Return the endpoint to talk to, or ``None`` if no device is present yet.

    With an explicit *port* only that endpoint is considered: pyserial URLs
    are returned as-is, device paths once they exist.
    """

    if port:
        if "://" in port or os.path.exists(port):
            return port
        try:
            listed = [info.device for info in serial.tools.list_ports.comports()]
        except Exception as exc:
            _LOGGER.debug("Serial port enumeration failed: %s", exc)
            return None
        return port if port in listed else None
    candidates = list_candidate_ports()
    return candidates[0] if candidates else None


def wait_for_device(
    port: Optional[str] = None,
    *,
    interval: float = 0.1,
    cancel: Optional[threading.Event] = None,
    discover: DiscoverFn = discover_one_device,
) -> str:
    """Poll *discover* every *interval* seconds until it finds an endpoint.

    Raises:
        OperationCancelledError: If *cancel* is set before a device shows up.
    """

    while True:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("Device discovery cancelled")
        found = discover(port)
        if found:
            _LOGGER.debug("Discovered device endpoint %s", found)
            return found
        if cancel is not None:
            cancel.wait(interval)
        else:
            time.sleep(interval)
