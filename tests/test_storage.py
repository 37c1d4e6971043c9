import tempfile
import unittest
from pathlib import Path

from pmeeprom.errors import DumpFileError, SourceTooShortError
from pmeeprom.storage import DumpFile


class DumpFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "eeprom_dump.hex"

    def test_append_after_truncate(self) -> None:
        self.path.write_bytes(b"stale")
        dump = DumpFile(self.path)
        dump.truncate_and_open_for_append()
        dump.append_bytes(b"\x01\x02")
        dump.flush()
        self.assertEqual(self.path.read_bytes(), b"\x01\x02")
        dump.append_bytes(b"\x03")
        dump.close()
        self.assertEqual(self.path.read_bytes(), b"\x01\x02\x03")

    def test_append_requires_open_file(self) -> None:
        with self.assertRaises(DumpFileError):
            DumpFile(self.path).append_bytes(b"\x00")

    def test_read_exactly_returns_prefix(self) -> None:
        self.path.write_bytes(bytes(range(10)))
        self.assertEqual(DumpFile(self.path).open_and_read_exactly(4), b"\x00\x01\x02\x03")

    def test_read_exactly_rejects_short_file(self) -> None:
        self.path.write_bytes(b"\x00\x01")
        with self.assertRaises(SourceTooShortError) as ctx:
            DumpFile(self.path).open_and_read_exactly(4)
        self.assertEqual((ctx.exception.expected, ctx.exception.actual), (4, 2))

    def test_missing_file_raises_dump_file_error(self) -> None:
        with self.assertRaises(DumpFileError):
            DumpFile(self.path).open_and_read_exactly(2)

    def test_unwritable_target_raises_dump_file_error(self) -> None:
        target = Path(self._tmp.name) / "missing_dir" / "dump.hex"
        with self.assertRaises(DumpFileError):
            DumpFile(target).truncate_and_open_for_append()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
