"""Per-unit source fingerprints used to detect changed sources.

Only size and modification time are compared. Reading media payloads to hash
them would cost more than rebuilding, so a rewrite that keeps both values
unchanged goes unnoticed.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .units import FileFingerprint, Unit

LEDGER_SUFFIX = ".srcinfo"


def fingerprint(path: str) -> FileFingerprint:
    try:
        stat = os.stat(path)
    except OSError:
        return FileFingerprint(path=path, size=0, mtime_ms=0)
    return FileFingerprint(path=path, size=stat.st_size, mtime_ms=stat.st_mtime_ns / 1e6)


class ChangeLedger:
    def path_for(self, unit: Unit) -> Path:
        return Path(unit.output_dir) / f"{unit.canonical_key}{LEDGER_SUFFIX}"

    def exists(self, unit: Unit) -> bool:
        return self.path_for(unit).is_file()

    def record(self, unit: Unit, files: list[str] | None = None, kind: str | None = None) -> bool:
        files = unit.source_paths if files is None else files
        payload = {
            "kind": kind or unit.ledger_kind,
            "files": [fingerprint(f).to_dict() for f in files],
        }
        path = self.path_for(unit)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError:
            return False
        return True

    def load(self, unit: Unit) -> dict[str, Any] | None:
        try:
            data = json.loads(self.path_for(unit).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(data, dict) or not isinstance(data.get("files"), list):
            return None
        return data

    def has_changed(
        self,
        unit: Unit,
        files: list[str] | None = None,
        expected_kind: str | None = None,
    ) -> bool:
        files = unit.source_paths if files is None else files
        stored = self.load(unit)
        if stored is None:
            return True
        if stored.get("kind") != (expected_kind or unit.ledger_kind):
            return True
        entries = stored["files"]
        if len(entries) != len(files):
            return True
        by_path = {e.get("path"): e for e in entries if isinstance(e, dict)}
        for path in files:
            prev = by_path.get(path)
            if prev is None:
                return True
            try:
                stat = os.stat(path)
            except OSError:
                return True
            if prev.get("size") != stat.st_size or prev.get("mtimeMs") != stat.st_mtime_ns / 1e6:
                return True
        return False
