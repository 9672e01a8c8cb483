import json
import os
import tempfile
from pathlib import Path
from unittest import TestCase

from mediacatalog.ledger import ChangeLedger, fingerprint
from mediacatalog.units import Domain, Section, Unit


def _unit(root: Path, files: list[str], kind: str = "folder") -> Unit:
    return Unit(
        domain=Domain.VIDEO_FOLDER,
        section=Section.SERIES,
        source_paths=files,
        canonical_key="Show.S01",
        output_dir=str(root / "out" / "Show.S01"),
        archive_source=str(root / "src"),
        reference_file=files[0],
        ledger_kind=kind,
    )


class LedgerTests(TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "src").mkdir()
        self.files = []
        for name in ("a.mkv", "b.mkv"):
            path = self.root / "src" / name
            path.write_text("data", encoding="utf-8")
            self.files.append(str(path))
        self.ledger = ChangeLedger()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_vanished_file_gets_zero_fingerprint(self) -> None:
        fp = fingerprint(str(self.root / "missing.mkv"))
        self.assertEqual(fp.size, 0)
        self.assertEqual(fp.mtime_ms, 0)

    def test_record_then_unchanged(self) -> None:
        unit = _unit(self.root, self.files)
        self.assertTrue(self.ledger.record(unit))
        data = json.loads(self.ledger.path_for(unit).read_text(encoding="utf-8"))
        self.assertEqual(data["kind"], "folder")
        self.assertEqual([f["path"] for f in data["files"]], self.files)
        self.assertFalse(self.ledger.has_changed(unit))

    def test_missing_ledger_counts_as_changed(self) -> None:
        self.assertTrue(self.ledger.has_changed(_unit(self.root, self.files)))

    def test_kind_mismatch(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit, kind="file")
        self.assertTrue(self.ledger.has_changed(unit))

    def test_size_change(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit)
        Path(self.files[0]).write_text("longer data", encoding="utf-8")
        self.assertTrue(self.ledger.has_changed(unit))

    def test_mtime_change(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit)
        stat = os.stat(self.files[1])
        os.utime(self.files[1], ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))
        self.assertTrue(self.ledger.has_changed(unit))

    def test_file_count_change(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit)
        extra = self.root / "src" / "c.mkv"
        extra.write_text("data", encoding="utf-8")
        grown = _unit(self.root, self.files + [str(extra)])
        self.assertTrue(self.ledger.has_changed(grown))

    def test_corrupt_ledger_counts_as_changed(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit)
        self.ledger.path_for(unit).write_text("{broken", encoding="utf-8")
        self.assertIsNone(self.ledger.load(unit))
        self.assertTrue(self.ledger.has_changed(unit))

    def test_file_vanishing_after_record(self) -> None:
        unit = _unit(self.root, self.files)
        self.ledger.record(unit)
        os.remove(self.files[0])
        self.assertTrue(self.ledger.has_changed(unit))
