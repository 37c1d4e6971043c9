"""pm-eeprom: EEPROM access for Polimaster pagers over an infrared link."""

from __future__ import annotations

__all__ = ["main"]


def main() -> None:
    """Run the pm-eeprom command line and exit with its status."""

    from .cli import main as _cli_main

    raise SystemExit(_cli_main())
