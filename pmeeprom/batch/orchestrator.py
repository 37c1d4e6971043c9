"""Drive an EEPROM address range through read, write or verify."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

from ..errors import ErrorKind, OperationCancelledError, TransportError
from ..settings import MAX_ADDRESS, WORD_SIZE

ProgressCallback = Callable[[int], None]

_LOGGER = logging.getLogger(__name__)


class WordDevice(Protocol):
    def read_word_at(
        self, address: int, cancel: Optional[threading.Event] = None
    ) -> Tuple[int, int]: ...

    def write_word_at(
        self, address: int, b0: int, b1: int, cancel: Optional[threading.Event] = None
    ) -> None: ...


class DumpTarget(Protocol):
    def truncate_and_open_for_append(self) -> None: ...

    def append_bytes(self, data: bytes) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...

    def open_and_read_exactly(self, count: int) -> bytes: ...


class Operation(Enum):
    """Batch modes, valued by their command-line letter."""

    READ = "r"
    WRITE = "w"
    VERIFY = "v"


class BatchStatus(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class AddressRange:
    """Half-open range ``[start, end)`` walked one two-byte word at a time."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start <= MAX_ADDRESS or not 0 <= self.end <= MAX_ADDRESS:
            raise ValueError(
                f"Addresses must be within 0..{MAX_ADDRESS}, got {self.start}..{self.end}"
            )
        if self.end <= self.start:
            raise ValueError("End address is smaller than or equal to the start address")
        if (self.end - self.start) % WORD_SIZE:
            raise ValueError(
                f"Range length {self.end - self.start} is not a multiple of {WORD_SIZE}"
            )

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def word_count(self) -> int:
        return self.size // WORD_SIZE

    def addresses(self) -> range:
        return range(self.start, self.end, WORD_SIZE)


@dataclass(frozen=True)
class Mismatch:
    address: int
    expected: int
    actual: int


@dataclass
class BatchResult:
    """Outcome of one batch run, including how far it got."""

    operation: Operation
    address_range: AddressRange
    status: BatchStatus = BatchStatus.COMPLETED
    words_done: int = 0
    mismatches: List[Mismatch] = field(default_factory=list)
    failed_address: Optional[int] = None
    error: Optional[TransportError] = None

    @property
    def error_count(self) -> int:
        return len(self.mismatches)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def next_address(self) -> int:
        """First address that was not processed."""

        return self.address_range.start + self.words_done * WORD_SIZE


class BatchOrchestrator:
    """Runs one :class:`Operation` over an address range against a device."""

    def __init__(
        self,
        device: WordDevice,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._device = device
        self._on_progress = on_progress

    def run(
        self,
        operation: Operation,
        address_range: AddressRange,
        dump: DumpTarget,
        cancel: Optional[threading.Event] = None,
        *,
        source: Optional[bytes] = None,
    ) -> BatchResult:
        """Process every word of *address_range*.

        Source bytes for write and verify are loaded before the first
        exchange, so dump-file errors surface without touching the device.
        Callers that already hold them pass *source*, which must cover the
        whole range, and the dump is not read again.
        Transport failures end the batch and are reported in the result.

        Raises:
            DumpFileError: If the dump file cannot be read or written.
            ValueError: If *source* is shorter than the range.
        """

        result = BatchResult(operation, address_range)
        if operation is Operation.READ:
            dump.truncate_and_open_for_append()
            source = b""
        elif source is None:
            source = dump.open_and_read_exactly(address_range.size)
        elif len(source) < address_range.size:
            raise ValueError(
                f"Source holds {len(source)} bytes, {address_range.size} are required"
            )

        address = address_range.start
        try:
            for address in address_range.addresses():
                if cancel is not None and cancel.is_set():
                    result.status = BatchStatus.CANCELLED
                    break
                offset = address - address_range.start
                if operation is Operation.READ:
                    self._read_step(address, dump, cancel)
                elif operation is Operation.WRITE:
                    self._device.write_word_at(
                        address, source[offset], source[offset + 1], cancel
                    )
                else:
                    self._verify_step(address, source[offset : offset + 2], result, cancel)
                result.words_done += 1
                if self._on_progress:
                    self._on_progress(address)
        except OperationCancelledError:
            result.status = BatchStatus.CANCELLED
        except TransportError as exc:
            result.status = BatchStatus.FAILED
            result.failed_address = address
            result.error = exc
            _LOGGER.error(
                "%s failed at address %d (%s): %s",
                operation.name.lower(),
                address,
                exc.kind.value,
                exc,
            )
        finally:
            if operation is Operation.READ:
                dump.close()

        if result.status is BatchStatus.CANCELLED:
            _LOGGER.info(
                "%s cancelled at address %d after %d words",
                operation.name.lower(),
                result.next_address,
                result.words_done,
            )
        return result

    def _read_step(
        self, address: int, dump: DumpTarget, cancel: Optional[threading.Event]
    ) -> None:
        b0, b1 = self._device.read_word_at(address, cancel)
        dump.append_bytes(bytes((b0, b1)))
        dump.flush()

    def _verify_step(
        self,
        address: int,
        expected: bytes,
        result: BatchResult,
        cancel: Optional[threading.Event],
    ) -> None:
        actual = self._device.read_word_at(address, cancel)
        for index in range(WORD_SIZE):
            if actual[index] != expected[index]:
                mismatch = Mismatch(address + index, expected[index], actual[index])
                result.mismatches.append(mismatch)
                _LOGGER.warning(
                    "verification error: address %d, expected %d, got %d",
                    mismatch.address,
                    mismatch.expected,
                    mismatch.actual,
                )
