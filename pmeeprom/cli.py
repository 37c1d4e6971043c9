"""Command-line entry point for reading, writing and verifying the EEPROM."""

from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import click

from .batch import AddressRange, BatchOrchestrator, BatchResult, BatchStatus, Operation
from .config import load_config, save_config
from .errors import DumpFileError, OperationCancelledError
from .protocol import EEPROMDevice
from .settings import CONFIG_FILE, DEFAULT_DUMP_FILE, MAX_ADDRESS, configure_logging
from .storage import DumpFile
from .transport import TransportSession, wait_for_device

EXIT_OK = 0
EXIT_BAD_OPTIONS = 29
EXIT_BAD_OPERATION = 30
EXIT_BAD_RANGE = 31
EXIT_FILE_ERROR = 32
EXIT_BATCH_FAILED = 33
EXIT_CANCELLED = 130

_PROGRESS_LABELS = {
    Operation.READ: "reading",
    Operation.WRITE: "writing",
    Operation.VERIFY: "verifying",
}

_LOGGER = logging.getLogger(__name__)


def _install_shutdown_handlers(cancel: threading.Event) -> Dict[int, Any]:
    """Translate SIGINT/SIGTERM into *cancel*; return the handlers replaced."""

    def handler(signum: int, _frame: object) -> None:
        _LOGGER.info("Received signal %d, stopping after the current word", signum)
        cancel.set()

    previous: Dict[int, Any] = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, handler)
        except (ValueError, OSError):
            _LOGGER.debug("Cannot install handler for signal %d", sig, exc_info=True)
    return previous


def _restore_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        try:
            signal.signal(sig, handler)
        except (ValueError, OSError):
            _LOGGER.debug("Cannot restore handler for signal %d", sig, exc_info=True)


def _report(result: BatchResult, dump_path: Path) -> int:
    if result.status is BatchStatus.FAILED:
        _LOGGER.error(
            "%s aborted at address %s (%s); %d of %d words done",
            result.operation.name.lower(),
            result.failed_address,
            result.error_kind.value if result.error_kind else "unknown",
            result.words_done,
            result.address_range.word_count,
        )
        return EXIT_BATCH_FAILED
    if result.status is BatchStatus.CANCELLED:
        return EXIT_CANCELLED
    if result.operation is Operation.READ:
        _LOGGER.info("output to file %s", dump_path)
    elif result.operation is Operation.VERIFY:
        _LOGGER.info("verified: %d errors", result.error_count)
    _LOGGER.info("operation done")
    return EXIT_OK


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--start",
    "-s",
    type=click.IntRange(0, MAX_ADDRESS),
    default=0,
    show_default=True,
    help="Operation's start address.",
)
@click.option(
    "--end",
    "-e",
    type=click.IntRange(0, MAX_ADDRESS),
    default=1024,
    show_default=True,
    help="Operation's end address (exclusive).",
)
@click.option(
    "--operation",
    "-o",
    type=click.Choice([op.value for op in Operation], case_sensitive=False),
    default=Operation.READ.value,
    show_default=True,
    help="r to read, w to write, v to verify.",
)
@click.option(
    "--file",
    "-f",
    "dump_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_DUMP_FILE,
    show_default=True,
    help="Output file for reads, input file for writes and verification.",
)
@click.option(
    "--port",
    "-p",
    default=None,
    help="Serial device or pyserial URL of the IrDA link. Discovered when omitted.",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=CONFIG_FILE,
    show_default=True,
    help="JSON file with link and timing settings.",
)
@click.option(
    "--save-config",
    "save_settings",
    is_flag=True,
    default=False,
    help="Write the effective settings back to the config file.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    start: int,
    end: int,
    operation: str,
    dump_path: Path,
    port: Optional[str],
    config_path: Path,
    save_settings: bool,
    verbose: bool,
) -> None:
    """Read, write or verify the EEPROM of Polimaster PM1703 and PM1401 pagers."""

    configure_logging(level=logging.DEBUG if verbose else logging.INFO)

    try:
        address_range = AddressRange(start, end)
    except ValueError as exc:
        _LOGGER.error("%s", exc)
        ctx.exit(EXIT_BAD_RANGE)
    op = Operation(operation.lower())

    config = load_config(config_path)
    if port:
        config.port = port
    if save_settings:
        save_config(config, config_path)

    dump = DumpFile(dump_path)
    source: Optional[bytes] = None
    if op is not Operation.READ:
        try:
            source = dump.open_and_read_exactly(address_range.size)
        except DumpFileError as exc:
            _LOGGER.error("%s", exc)
            ctx.exit(EXIT_FILE_ERROR)

    cancel = threading.Event()
    previous = _install_shutdown_handlers(cancel)
    try:
        _LOGGER.info("begin continuous scan for IrDA devices...")
        try:
            endpoint = wait_for_device(
                config.port or None,
                interval=config.discovery_interval,
                cancel=cancel,
            )
        except OperationCancelledError:
            _LOGGER.info("scan cancelled")
            ctx.exit(EXIT_CANCELLED)
        _LOGGER.info("device found at %s", endpoint)

        with TransportSession(endpoint, config) as session:
            device = EEPROMDevice(session)
            with click.progressbar(
                length=address_range.word_count, label=_PROGRESS_LABELS[op]
            ) as bar:
                orchestrator = BatchOrchestrator(
                    device, on_progress=lambda _address: bar.update(1)
                )
                try:
                    result = orchestrator.run(
                        op, address_range, dump, cancel, source=source
                    )
                except DumpFileError as exc:
                    _LOGGER.error("%s", exc)
                    ctx.exit(EXIT_FILE_ERROR)
        code = _report(result, dump_path)
    finally:
        _restore_handlers(previous)
    if code != EXIT_OK:
        ctx.exit(code)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line and return the process exit code."""

    try:
        code = cli.main(
            args=list(argv) if argv is not None else None,
            prog_name="pm-eeprom",
            standalone_mode=False,
        )
    except click.BadParameter as exc:
        exc.show()
        if exc.param is not None and exc.param.name == "operation":
            return EXIT_BAD_OPERATION
        return EXIT_BAD_OPTIONS
    except click.ClickException as exc:
        exc.show()
        return EXIT_BAD_OPTIONS
    except click.Abort:
        return EXIT_CANCELLED
    return code or EXIT_OK
