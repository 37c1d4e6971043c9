"""Batch orchestration of EEPROM address ranges."""

from .orchestrator import (
    AddressRange,
    BatchOrchestrator,
    BatchResult,
    BatchStatus,
    Mismatch,
    Operation,
)

__all__ = [
    "AddressRange",
    "BatchOrchestrator",
    "BatchResult",
    "BatchStatus",
    "Mismatch",
    "Operation",
]
