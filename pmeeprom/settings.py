"""Shared constants and logging setup for pm-eeprom."""

from __future__ import annotations

import logging

CONFIG_FILE = "pm_eeprom.json"
DEFAULT_DUMP_FILE = "eeprom_dump.hex"
LOG_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# EEPROM words are two bytes wide; every address range advances by this step.
WORD_SIZE = 2
MAX_ADDRESS = 0xFFFF


def configure_logging(
    *, level: int = LOG_LEVEL, fmt: str = LOG_FORMAT, force: bool = False
) -> None:
    """Initialize the root logger used across pm-eeprom."""

    if force:
        logging.basicConfig(level=level, format=fmt, force=True)
        return

    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=fmt)
